from __future__ import annotations

import html
import logging
from pathlib import Path

from .content import ContentItem
from .library import Library
from .taxonomy import Term
from .utils import iso_date, join_url, rfc822_date, write_text

logger = logging.getLogger(__name__)


def feed_kind(filename: str) -> str:
    return "atom" if filename.lower().startswith("atom") else "rss"


def feed_items(library: Library, pages: list[ContentItem]) -> list[ContentItem]:
    """Dated pages, newest first, limited to ``feed_limit``."""
    dated = sorted((page for page in pages if page.date), key=lambda page: page.rel_path)
    dated.sort(key=lambda page: page.date, reverse=True)
    limit = library.config.feed_limit
    return dated[:limit] if limit else dated


def _summary(library: Library, page: ContentItem) -> str:
    rendered = library.content(page)
    return rendered.summary or page.description or rendered.html


def build_rss(library: Library, pages: list[ContentItem], feed_url: str, title: str) -> str:
    config = library.config
    items = []
    for page in pages:
        link = library.permalink(page.url_path)
        items.append(
            "\n".join(
                [
                    "<item>",
                    f"<title>{html.escape(page.title)}</title>",
                    f"<link>{link}</link>",
                    f'<guid isPermaLink="true">{link}</guid>',
                    f"<pubDate>{rfc822_date(page.date)}</pubDate>",
                    f"<description>{html.escape(_summary(library, page))}</description>",
                    "</item>",
                ]
            )
        )
    last_build = rfc822_date(pages[0].last_modified) if pages else ""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">',
        "<channel>",
        f"<title>{html.escape(title)}</title>",
        f"<link>{library.permalink('/')}</link>",
        f"<description>{html.escape(config.description)}</description>",
        f"<language>{html.escape(config.default_language)}</language>",
        f'<atom:link href="{feed_url}" rel="self" type="application/rss+xml"/>',
    ]
    if last_build:
        lines.append(f"<lastBuildDate>{last_build}</lastBuildDate>")
    lines.extend(items)
    lines.extend(["</channel>", "</rss>", ""])
    return "\n".join(lines)


def build_atom(library: Library, pages: list[ContentItem], feed_url: str, title: str) -> str:
    config = library.config
    site_url = library.permalink("/")
    # Newest change among listed entries; the epoch keeps empty feeds deterministic
    updated = max((iso_date(page.last_modified) for page in pages), default="1970-01-01T00:00:00Z")
    entries = []
    for page in pages:
        link = library.permalink(page.url_path)
        entries.append(
            "\n".join(
                [
                    f'<entry xml:lang="{html.escape(config.default_language)}">',
                    f"<title>{html.escape(page.title)}</title>",
                    f'<link rel="alternate" type="text/html" href="{link}"/>',
                    f"<id>{link}</id>",
                    f"<published>{iso_date(page.date)}</published>",
                    f"<updated>{iso_date(page.last_modified)}</updated>",
                    f'<summary type="html">{html.escape(_summary(library, page))}</summary>',
                    "</entry>",
                ]
            )
        )
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<feed xmlns="http://www.w3.org/2005/Atom" xml:lang="{html.escape(config.default_language)}">',
        f"<title>{html.escape(title)}</title>",
    ]
    if config.description:
        lines.append(f"<subtitle>{html.escape(config.description)}</subtitle>")
    lines.extend(
        [
            f'<link rel="self" type="application/atom+xml" href="{feed_url}"/>',
            f'<link rel="alternate" type="text/html" href="{site_url}"/>',
            f"<id>{feed_url}</id>",
            f"<updated>{updated}</updated>",
        ]
    )
    lines.extend(entries)
    lines.extend(["</feed>", ""])
    return "\n".join(lines)


def render_feed(library: Library, filename: str, pages: list[ContentItem], base_path: str, title: str) -> str:
    feed_url = join_url(library.permalink(base_path), filename)
    if feed_kind(filename) == "atom":
        return build_atom(library, pages, feed_url, title)
    return build_rss(library, pages, feed_url, title)


def _term_title(library: Library, term: Term) -> str:
    site_title = library.config.title
    return f"{site_title} - {term.name}" if site_title else term.name


def build_feeds(library: Library, output_dir: Path) -> list[Path]:
    config = library.config
    if not config.generate_feeds:
        return []
    written = []
    items = feed_items(library, library.pages)
    for filename in config.feed_filenames:
        path = output_dir / filename
        write_text(path, render_feed(library, filename, items, "/", config.title))
        written.append(path)
    for taxonomy in config.taxonomies:
        if not (taxonomy.feed and taxonomy.render):
            continue
        for term in library.taxonomy_index.get(taxonomy.name).values():
            pages = feed_items(library, [item for item in term.items if not item.is_section])
            for filename in config.feed_filenames:
                path = output_dir / term.url_path.strip("/") / filename
                write_text(path, render_feed(library, filename, pages, term.url_path, _term_title(library, term)))
                written.append(path)
    logger.info("Wrote %d feeds", len(written))
    return written
