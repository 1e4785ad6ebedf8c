from __future__ import annotations

import html
import logging
import math
from pathlib import Path

import jinja2

from .library import PAGINATE_PATH, Library, output_path, pager_path
from .taxonomy import taxonomy_slug
from .templates import render_template
from .utils import write_text

logger = logging.getLogger(__name__)


def redirect_html(target: str) -> str:
    target = html.escape(target)
    return "\n".join(
        [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8">',
            f'<link rel="canonical" href="{target}">',
            f'<meta http-equiv="refresh" content="0; url={target}">',
            "<title>Redirect</title>",
            "</head>",
            "<body>",
            f'<p><a href="{target}">Click here</a> to be redirected.</p>',
            "</body>",
            "</html>",
            "",
        ]
    )


def paginate(library: Library, base_path: str, pages: list[dict], paginate_by: int) -> list[dict]:
    """Split ``pages`` into paginator contexts, one per output page."""
    total = max(1, math.ceil(len(pages) / paginate_by))
    pagers = []
    for number in range(1, total + 1):
        chunk = pages[(number - 1) * paginate_by : number * paginate_by]
        path = pager_path(base_path, number)
        pagers.append(
            {
                "pages": chunk,
                "current_index": number,
                "number_pagers": total,
                "paginate_by": paginate_by,
                "total_pages": len(pages),
                "path": path,
                "permalink": library.permalink(path),
                "first": library.permalink(base_path),
                "last": library.permalink(pager_path(base_path, total)),
                "previous": library.permalink(pager_path(base_path, number - 1)) if number > 1 else None,
                "next": library.permalink(pager_path(base_path, number + 1)) if number < total else None,
            }
        )
    return pagers


def _write(output_dir: Path, url_path: str, text: str, written: list[Path]) -> None:
    path = output_path(output_dir, url_path)
    write_text(path, text)
    written.append(path)


def _write_paginated(
    library: Library,
    env: jinja2.Environment,
    output_dir: Path,
    names: list[str],
    context: dict,
    base_path: str,
    pages: list[dict],
    paginate_by: int,
    written: list[Path],
) -> None:
    if not paginate_by:
        _write(output_dir, base_path, render_template(env, names, context), written)
        return
    for pager in paginate(library, base_path, pages, paginate_by):
        page_context = dict(context, paginator=pager, current_url=pager["permalink"], current_path=pager["path"])
        _write(output_dir, pager["path"], render_template(env, names, page_context), written)
    _write(output_dir, f"{base_path}{PAGINATE_PATH}/1/", redirect_html(library.permalink(base_path)), written)


def build_pages(library: Library, env: jinja2.Environment, output_dir: Path) -> list[Path]:
    written: list[Path] = []
    for page in library.pages:
        section = library.section_of(page)
        names = [name for name in (page.template, section.item.page_template, "page.html") if name]
        context = {
            "page": library.page_context(page),
            "section": library.section_context(section),
            "current_url": library.permalink(page.url_path),
            "current_path": page.url_path,
        }
        _write(output_dir, page.url_path, render_template(env, names, context), written)
    return written


def build_sections(library: Library, env: jinja2.Environment, output_dir: Path) -> list[Path]:
    written: list[Path] = []
    for section in library.rendered_sections:
        item = section.item
        default = "index.html" if not item.section_dir else "section.html"
        names = [name for name in (item.template, default) if name]
        section_context = library.section_context(section)
        context = {
            "section": section_context,
            "current_url": library.permalink(item.url_path),
            "current_path": item.url_path,
        }
        _write_paginated(
            library, env, output_dir, names, context, item.url_path, section_context["pages"], item.paginate_by or 0, written
        )
    return written


def build_taxonomies(library: Library, env: jinja2.Environment, output_dir: Path) -> list[Path]:
    written: list[Path] = []
    for taxonomy in library.config.taxonomies:
        if not taxonomy.render:
            continue
        terms = library.taxonomy_index.get(taxonomy.name)
        term_contexts = [library.term_context(term) for term in terms.values()]
        kind = {
            "name": taxonomy.name,
            "feed": taxonomy.feed,
            "paginate_by": taxonomy.paginate_by,
        }
        list_path = f"/{taxonomy_slug(taxonomy.name)}/"
        list_context = {
            "taxonomy": kind,
            "terms": term_contexts,
            "current_url": library.permalink(list_path),
            "current_path": list_path,
        }
        _write(
            output_dir,
            list_path,
            render_template(env, [f"{taxonomy.name}/list.html", "taxonomy_list.html"], list_context),
            written,
        )
        for term in term_contexts:
            context = {
                "taxonomy": kind,
                "term": term,
                "current_url": term["permalink"],
                "current_path": term["path"],
            }
            _write_paginated(
                library,
                env,
                output_dir,
                [f"{taxonomy.name}/single.html", "taxonomy_single.html"],
                context,
                term["path"],
                term["pages"],
                taxonomy.paginate_by or 0,
                written,
            )
    return written


def build_404(library: Library, env: jinja2.Environment, output_dir: Path) -> list[Path]:
    context = {"current_url": library.permalink("/404.html"), "current_path": "/404.html"}
    path = output_dir / "404.html"
    write_text(path, render_template(env, ["404.html"], context))
    return [path]


def build_aliases(library: Library, output_dir: Path) -> list[Path]:
    written: list[Path] = []
    items = [section.item for section in library.rendered_sections] + library.pages
    for item in items:
        for alias in item.aliases:
            _write(output_dir, alias, redirect_html(library.permalink(item.url_path)), written)
    return written


def build_html(library: Library, env: jinja2.Environment, output_dir: Path) -> list[Path]:
    """Render every HTML document of the site."""
    written = build_pages(library, env, output_dir)
    written += build_sections(library, env, output_dir)
    written += build_taxonomies(library, env, output_dir)
    written += build_404(library, env, output_dir)
    written += build_aliases(library, output_dir)
    logger.info("Rendered %d HTML files", len(written))
    return written
