from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import yaml
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from .errors import ConfigError

logger = logging.getLogger(__name__)

FOOTNOTE_PLACEMENTS = ("inline", "end")
SEARCH_FORMATS = ("elasticlunr_json", "elasticlunr_javascript", "fuse_json", "fuse_javascript")
SORT_KEYS = ("date", "update_date", "title", "weight", "none")

KNOWN_KEYS = {
    "base_url",
    "title",
    "description",
    "default_language",
    "theme",
    "output_dir",
    "compile_sass",
    "generate_sitemap",
    "generate_robots_txt",
    "generate_feeds",
    "generate_feed",
    "feed_filenames",
    "feed_filename",
    "feed_limit",
    "build_search_index",
    "ignored_content",
    "taxonomies",
    "markdown",
    "search",
    "extra",
}


@dataclass(frozen=True)
class TaxonomyConfig:
    name: str
    feed: bool = False
    paginate_by: Optional[int] = None
    render: bool = True


@dataclass(frozen=True)
class HighlightThemeCss:
    theme: str
    filename: str


@dataclass(frozen=True)
class MarkdownConfig:
    highlight_code: bool = False
    highlight_theme: str = "default"
    highlight_themes_css: tuple[HighlightThemeCss, ...] = ()
    footnotes: str = "inline"
    smart_punctuation: bool = False

    def stylesheets(self) -> tuple[HighlightThemeCss, ...]:
        """Syntax stylesheets the build emits, empty when highlighting is off."""
        if not self.highlight_code:
            return ()
        if self.highlight_themes_css:
            return self.highlight_themes_css
        return (HighlightThemeCss(self.highlight_theme, "syntax-theme.css"),)


@dataclass(frozen=True)
class SearchConfig:
    include_title: bool = True
    include_description: bool = False
    include_path: bool = False
    include_content: bool = True
    truncate_content_length: Optional[int] = None
    index_format: str = "elasticlunr_javascript"


@dataclass(frozen=True)
class SiteConfig:
    base_url: str
    title: str = ""
    description: str = ""
    default_language: str = "en"
    theme: Optional[str] = None
    output_dir: str = "public"
    compile_sass: bool = False
    generate_sitemap: bool = True
    generate_robots_txt: bool = True
    generate_feeds: bool = False
    feed_filenames: tuple[str, ...] = ("atom.xml",)
    feed_limit: Optional[int] = None
    build_search_index: bool = False
    ignored_content: tuple[str, ...] = ()
    taxonomies: tuple[TaxonomyConfig, ...] = ()
    markdown: MarkdownConfig = field(default_factory=MarkdownConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    extra: dict = field(default_factory=dict)

    def taxonomy(self, name: str) -> Optional[TaxonomyConfig]:
        for taxonomy in self.taxonomies:
            if taxonomy.name == name:
                return taxonomy
        return None

    def with_base_url(self, base_url: str) -> "SiteConfig":
        return replace(self, base_url=_check_base_url(base_url))


def read_config_data(path: Path) -> dict:
    if not path.exists():
        raise ConfigError("Config file not found.", path=path)
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigError(f"Not valid UTF-8: {exc}", path=path) from exc
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML: {exc}", path=path) from exc
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML: {exc}", path=path) from exc
        if data is None:
            data = {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON: {exc}", path=path) from exc
    if not isinstance(data, dict):
        raise ConfigError("Config must be a mapping.", path=path)
    return data


def load_config(path: Path, themes_dir: Optional[Path] = None) -> SiteConfig:
    """Read and validate the site configuration at ``path``.

    ``themes_dir`` defaults to ``themes/`` next to the config file; when the
    config names a theme its ``theme.toml`` ``[extra]`` table supplies
    defaults underneath the site's own ``extra`` values.
    """
    data = read_config_data(path)
    try:
        config = parse_config(data)
    except ConfigError as exc:
        if exc.path is None:
            raise ConfigError(exc.message, field=exc.field, path=path) from exc
        raise
    if config.theme:
        themes_dir = themes_dir or path.parent / "themes"
        theme_dir = themes_dir / config.theme
        if not theme_dir.is_dir():
            raise ConfigError(f"Theme directory not found: {theme_dir}", field="theme", path=path)
        theme_extra = load_theme_extra(theme_dir)
        if theme_extra:
            config = replace(config, extra=merge_extra(theme_extra, config.extra))
    return config


def load_theme_extra(theme_dir: Path) -> dict:
    theme_file = theme_dir / "theme.toml"
    if not theme_file.exists():
        return {}
    data = read_config_data(theme_file)
    extra = data.get("extra") or {}
    if not isinstance(extra, dict):
        raise ConfigError("Theme extra must be a table.", field="extra", path=theme_file)
    return extra


def merge_extra(defaults: dict, overrides: dict) -> dict:
    merged = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_extra(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_config(data: dict) -> SiteConfig:
    for key in sorted(set(data) - KNOWN_KEYS):
        logger.warning("Ignoring unknown config key: %s", key)

    if "base_url" not in data:
        raise ConfigError("Missing required field.", field="base_url")
    base_url = _check_base_url(_expect(data, "base_url", str))

    feed_filenames = data.get("feed_filenames")
    if feed_filenames is None:
        legacy = _expect(data, "feed_filename", str, "atom.xml")
        feed_filenames = [legacy]
    elif not isinstance(feed_filenames, list) or not all(isinstance(name, str) and name for name in feed_filenames):
        raise ConfigError("Expected a list of file names.", field="feed_filenames")

    generate_feeds = data.get("generate_feeds", data.get("generate_feed", False))
    if not isinstance(generate_feeds, bool):
        raise ConfigError("Expected a boolean.", field="generate_feeds")

    ignored = data.get("ignored_content", [])
    if not isinstance(ignored, list) or not all(isinstance(item, str) for item in ignored):
        raise ConfigError("Expected a list of glob patterns.", field="ignored_content")

    extra = data.get("extra", {})
    if not isinstance(extra, dict):
        raise ConfigError("Expected a table.", field="extra")
    menu_items(extra)
    social_links(extra)

    return SiteConfig(
        base_url=base_url,
        title=_expect(data, "title", str, ""),
        description=_expect(data, "description", str, ""),
        default_language=_expect(data, "default_language", str, "en"),
        theme=_expect(data, "theme", str, None) or None,
        output_dir=_expect(data, "output_dir", str, "public"),
        compile_sass=_expect(data, "compile_sass", bool, False),
        generate_sitemap=_expect(data, "generate_sitemap", bool, True),
        generate_robots_txt=_expect(data, "generate_robots_txt", bool, True),
        generate_feeds=generate_feeds,
        feed_filenames=tuple(feed_filenames),
        feed_limit=_expect_positive(data, "feed_limit"),
        build_search_index=_expect(data, "build_search_index", bool, False),
        ignored_content=tuple(ignored),
        taxonomies=parse_taxonomies(data.get("taxonomies", [])),
        markdown=parse_markdown(_expect(data, "markdown", dict, {})),
        search=parse_search(_expect(data, "search", dict, {})),
        extra=extra,
    )


def parse_taxonomies(value: Any) -> tuple[TaxonomyConfig, ...]:
    if not isinstance(value, list):
        raise ConfigError("Expected a list of taxonomy tables.", field="taxonomies")
    taxonomies = []
    seen = set()
    for idx, entry in enumerate(value):
        where = f"taxonomies[{idx}]"
        if not isinstance(entry, dict):
            raise ConfigError("Expected a table with a name.", field=where)
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("Taxonomy name is required.", field=f"{where}.name")
        name = name.strip()
        if name in seen:
            raise ConfigError(f"Duplicate taxonomy name: {name}", field=f"{where}.name")
        seen.add(name)
        taxonomies.append(
            TaxonomyConfig(
                name=name,
                feed=_expect(entry, "feed", bool, False, where),
                paginate_by=_expect_positive(entry, "paginate_by", where),
                render=_expect(entry, "render", bool, True, where),
            )
        )
    return tuple(taxonomies)


def parse_markdown(data: dict) -> MarkdownConfig:
    highlight_code = _expect(data, "highlight_code", bool, False, "markdown")
    highlight_theme = _expect(data, "highlight_theme", str, "default", "markdown")

    themes_css = []
    raw_themes = data.get("highlight_themes_css", [])
    if not isinstance(raw_themes, list):
        raise ConfigError("Expected a list of {theme, filename} tables.", field="markdown.highlight_themes_css")
    filenames = set()
    for idx, entry in enumerate(raw_themes):
        where = f"markdown.highlight_themes_css[{idx}]"
        if not isinstance(entry, dict):
            raise ConfigError("Expected a {theme, filename} table.", field=where)
        theme = entry.get("theme")
        filename = entry.get("filename")
        if not isinstance(theme, str) or not theme:
            raise ConfigError("Missing theme.", field=f"{where}.theme")
        if not isinstance(filename, str) or not filename:
            raise ConfigError("Missing filename.", field=f"{where}.filename")
        if filename in filenames:
            raise ConfigError(f"Duplicate stylesheet filename: {filename}", field=f"{where}.filename")
        filenames.add(filename)
        _check_pygments_style(theme, f"{where}.theme")
        themes_css.append(HighlightThemeCss(theme, filename))

    if highlight_code and not themes_css:
        if highlight_theme == "css":
            raise ConfigError(
                "highlight_theme = \"css\" requires highlight_themes_css entries.",
                field="markdown.highlight_theme",
            )
        _check_pygments_style(highlight_theme, "markdown.highlight_theme")

    if "footnotes" in data:
        footnotes = _expect(data, "footnotes", str, "inline", "markdown")
        if footnotes not in FOOTNOTE_PLACEMENTS:
            raise ConfigError(
                f"Expected one of {', '.join(FOOTNOTE_PLACEMENTS)}.", field="markdown.footnotes"
            )
    else:
        footnotes = "end" if _expect(data, "bottom_footnotes", bool, False, "markdown") else "inline"

    return MarkdownConfig(
        highlight_code=highlight_code,
        highlight_theme=highlight_theme,
        highlight_themes_css=tuple(themes_css),
        footnotes=footnotes,
        smart_punctuation=_expect(data, "smart_punctuation", bool, False, "markdown"),
    )


def parse_search(data: dict) -> SearchConfig:
    index_format = _expect(data, "index_format", str, "elasticlunr_javascript", "search")
    if index_format not in SEARCH_FORMATS:
        raise ConfigError(f"Unsupported index format: {index_format}", field="search.index_format")
    return SearchConfig(
        include_title=_expect(data, "include_title", bool, True, "search"),
        include_description=_expect(data, "include_description", bool, False, "search"),
        include_path=_expect(data, "include_path", bool, False, "search"),
        include_content=_expect(data, "include_content", bool, True, "search"),
        truncate_content_length=_expect_positive(data, "truncate_content_length", "search"),
        index_format=index_format,
    )


def menu_items(extra: dict) -> list[dict]:
    """Menu entries from ``extra.menu``, ordered by weight.

    Entries without a weight follow the weighted ones in their written order.
    """
    raw = extra.get("menu", [])
    if not isinstance(raw, list):
        raise ConfigError("Expected a list of menu entries.", field="extra.menu")
    items = []
    for idx, entry in enumerate(raw):
        where = f"extra.menu[{idx}]"
        if not isinstance(entry, dict) or not entry.get("name") or not entry.get("url"):
            raise ConfigError("Menu entries need a name and a url.", field=where)
        weight = entry.get("weight")
        if weight is not None and (isinstance(weight, bool) or not isinstance(weight, int)):
            raise ConfigError("Expected an integer.", field=f"{where}.weight")
        items.append(
            {
                "name": str(entry["name"]),
                "url": str(entry["url"]),
                "weight": weight,
                "newtab": bool(entry.get("newtab", False)),
            }
        )
    return sorted(items, key=lambda item: (item["weight"] is None, item["weight"] or 0))


def social_links(extra: dict) -> list[dict]:
    raw = extra.get("socials", [])
    if not isinstance(raw, list):
        raise ConfigError("Expected a list of social links.", field="extra.socials")
    links = []
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict) or not entry.get("name") or not entry.get("url"):
            raise ConfigError("Social links need a name and a url.", field=f"extra.socials[{idx}]")
        links.append(
            {
                "name": str(entry["name"]),
                "url": str(entry["url"]),
                "icon": str(entry.get("icon") or entry["name"]),
            }
        )
    return links


def _check_base_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigError(f"Expected an absolute http(s) URL, got {value!r}.", field="base_url")
    return value


def _check_pygments_style(name: str, where: str) -> None:
    try:
        get_style_by_name(name)
    except ClassNotFound as exc:
        raise ConfigError(f"Unknown highlight theme: {name}", field=where) from exc


def _expect(data: dict, key: str, kind: type, default: Any = None, prefix: str = "") -> Any:
    value = data.get(key, default)
    if value is None or value is default:
        return value
    # bool is an int subclass; reject it where an integer is expected and vice versa
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        where = f"{prefix}.{key}" if prefix else key
        raise ConfigError(f"Expected {kind.__name__}, got {type(value).__name__}.", field=where)
    return value


def _expect_positive(data: dict, key: str, prefix: str = "") -> Optional[int]:
    value = _expect(data, key, int, None, prefix)
    if value is not None and value <= 0:
        where = f"{prefix}.{key}" if prefix else key
        raise ConfigError("Expected a positive integer.", field=where)
    return value
