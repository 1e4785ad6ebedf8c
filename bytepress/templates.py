from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Optional, Sequence

import jinja2
from markupsafe import Markup

from .config import SiteConfig, menu_items, social_links
from .errors import BuildError, TemplateRenderError
from .markup import render_markdown
from .utils import as_utc, join_url, slugify

BUILTIN_TEMPLATES = Path(__file__).parent / "templates"


def template_dirs(root: Path, config: SiteConfig) -> list[Path]:
    """Lookup order: site templates, theme templates, built-in templates."""
    dirs = [root / "templates"]
    if config.theme:
        dirs.append(root / "themes" / config.theme / "templates")
    dirs.append(BUILTIN_TEMPLATES)
    return [path for path in dirs if path.is_dir()]


def format_date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        value = dt.datetime.fromisoformat(value)
    if isinstance(value, dt.datetime):
        value = as_utc(value)
    return value.strftime(fmt)


def create_environment(root: Path, config: SiteConfig) -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader([str(path) for path in template_dirs(root, config)]),
        autoescape=jinja2.select_autoescape(["html", "xml"]),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )

    def get_url(path: str, trailing_slash: bool = False) -> str:
        if path.startswith(("http://", "https://")):
            return path
        url = join_url(config.base_url, path)
        if trailing_slash and not url.endswith("/"):
            url = f"{url}/"
        return url

    def get_taxonomy_url(kind: str, name: str) -> str:
        return join_url(config.base_url, f"{slugify(kind)}/{slugify(name)}/")

    env.globals.update(
        config=config,
        menu=menu_items(config.extra),
        socials=social_links(config.extra),
        lang=config.default_language,
        get_url=get_url,
        get_taxonomy_url=get_taxonomy_url,
        highlight_stylesheets=[
            {"theme": theme.theme, "filename": theme.filename, "url": get_url(theme.filename)}
            for theme in config.markdown.stylesheets()
        ],
    )
    env.filters["markdown"] = lambda text: Markup(render_markdown(str(text), config.markdown))
    env.filters["date"] = format_date
    env.filters["slugify"] = slugify
    return env


def render_template(
    env: jinja2.Environment, names: Sequence[str], context: dict, required: bool = True
) -> Optional[str]:
    """Render the first template in ``names`` that exists.

    Every template failure is fatal for the build and raised as
    TemplateRenderError naming the template.
    """
    try:
        template = env.select_template(list(names))
    except jinja2.TemplateNotFound as exc:
        if not required:
            return None
        raise TemplateRenderError(" | ".join(names), "template not found") from exc
    except jinja2.TemplateSyntaxError as exc:
        raise TemplateRenderError(exc.name or names[0], f"line {exc.lineno}: {exc.message}") from exc
    try:
        return template.render(**context)
    except jinja2.TemplateError as exc:
        raise TemplateRenderError(template.name or names[0], str(exc)) from exc
    except BuildError:
        raise
    except Exception as exc:
        raise TemplateRenderError(template.name or names[0], f"{type(exc).__name__}: {exc}") from exc
