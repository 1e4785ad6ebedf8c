from __future__ import annotations

import datetime as dt
import html
import logging
from pathlib import Path
from typing import Optional

import jinja2

from .library import Library, paginated_paths
from .taxonomy import taxonomy_slug
from .templates import render_template
from .utils import as_utc, write_text

logger = logging.getLogger(__name__)


def sitemap_entries(library: Library) -> list[tuple[str, Optional[dt.datetime]]]:
    """Every rendered location with its last modification, sorted by location."""
    entries: dict[str, Optional[dt.datetime]] = {}
    for page in library.pages:
        entries[library.permalink(page.url_path)] = page.last_modified
    for section in library.rendered_sections:
        for path in paginated_paths(section.item.url_path, len(section.pages), section.item.paginate_by):
            entries[library.permalink(path)] = section.item.last_modified
    for taxonomy in library.config.taxonomies:
        if not taxonomy.render:
            continue
        entries[library.permalink(f"/{taxonomy_slug(taxonomy.name)}/")] = None
        for term in library.taxonomy_index.get(taxonomy.name).values():
            pages = [item for item in term.items if not item.is_section]
            for path in paginated_paths(term.url_path, len(pages), taxonomy.paginate_by):
                entries[library.permalink(path)] = None
    return sorted(entries.items())


def build_sitemap_xml(library: Library) -> str:
    items = []
    for url, lastmod in sitemap_entries(library):
        lines = ["<url>", f"<loc>{html.escape(url)}</loc>"]
        if lastmod:
            lines.append(f"<lastmod>{as_utc(lastmod).date().isoformat()}</lastmod>")
        lines.append("</url>")
        items.append("\n".join(lines))
    return "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
            "",
        ]
    )


def default_robots(library: Library) -> str:
    lines = ["User-agent: *", "Disallow:", "Allow: /"]
    if library.config.generate_sitemap:
        lines.append(f"Sitemap: {library.permalink('/sitemap.xml')}")
    return "\n".join(lines) + "\n"


def build_sitemap(library: Library, env: jinja2.Environment, output_dir: Path) -> list[Path]:
    written = []
    if library.config.generate_sitemap:
        path = output_dir / "sitemap.xml"
        write_text(path, build_sitemap_xml(library))
        written.append(path)
    if library.config.generate_robots_txt:
        path = output_dir / "robots.txt"
        text = render_template(env, ["robots.txt"], {}, required=False)
        write_text(path, text if text is not None else default_robots(library))
        written.append(path)
    logger.info("Wrote %s", ", ".join(path.name for path in written) or "no sitemap files")
    return written
