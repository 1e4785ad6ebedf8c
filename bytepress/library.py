from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import jinja2
from markupsafe import Markup

from .config import SiteConfig
from .content import ContentItem, Section, build_sections
from .errors import ContentError
from .markup import RenderedContent, render_item
from .taxonomy import TaxonomyIndex, Term, build_taxonomy_index, taxonomy_slug
from .utils import join_url

logger = logging.getLogger(__name__)

PAGINATE_PATH = "page"


def output_path(output_dir: Path, url_path: str) -> Path:
    """``/posts/hello/`` -> ``<output>/posts/hello/index.html``."""
    rel = url_path.strip("/")
    if not rel:
        return output_dir / "index.html"
    return output_dir / rel / "index.html"


def pager_path(base_path: str, number: int) -> str:
    if number == 1:
        return base_path
    return f"{base_path}{PAGINATE_PATH}/{number}/"


def paginated_paths(base_path: str, count: int, paginate_by: Optional[int]) -> list[str]:
    """URL of every pager of a listing with ``count`` pages."""
    if not paginate_by:
        return [base_path]
    total = max(1, math.ceil(count / paginate_by))
    return [pager_path(base_path, number) for number in range(1, total + 1)]


@dataclass
class Library:
    """Everything the emitters read: config, published items, sections, taxonomies and rendered bodies.

    Built once per build and only read afterwards.
    """

    root: Path
    config: SiteConfig
    sections: dict[str, Section]
    taxonomy_index: TaxonomyIndex
    env: jinja2.Environment
    rendered: dict[str, RenderedContent] = field(default_factory=dict)

    @property
    def pages(self) -> list[ContentItem]:
        pages = [page for section in self.sections.values() for page in section.pages]
        return sorted(pages, key=lambda page: page.rel_path)

    @property
    def rendered_sections(self) -> list[Section]:
        return [section for section in self.sections.values() if section.item.render]

    def permalink(self, url_path: str) -> str:
        return join_url(self.config.base_url, url_path)

    def section_of(self, page: ContentItem) -> Section:
        return self.sections[page.section_dir]

    def content(self, item: ContentItem) -> RenderedContent:
        return self.rendered[item.rel_path]

    def page_summary(self, page: ContentItem) -> dict:
        rendered = self.content(page)
        return {
            "title": page.title,
            "description": page.description,
            "date": page.date,
            "updated": page.updated,
            "permalink": self.permalink(page.url_path),
            "path": page.url_path,
            "slug": page.slug,
            "summary": Markup(rendered.summary) if rendered.summary else None,
            "word_count": rendered.word_count,
            "reading_time": rendered.reading_time,
            "taxonomies": self.taxonomy_links(page),
            "extra": page.extra,
            "draft": page.draft,
        }

    def taxonomy_links(self, item: ContentItem) -> dict:
        links = {}
        for taxonomy in self.config.taxonomies:
            terms = []
            for name in item.terms(taxonomy.name):
                term = self.taxonomy_index.term(taxonomy.name, name)
                if term is None:
                    continue
                terms.append({"name": term.name, "slug": term.slug, "permalink": self.permalink(term.url_path)})
            if terms:
                links[taxonomy.name] = terms
        return links

    def page_context(self, page: ContentItem) -> dict:
        rendered = self.content(page)
        context = self.page_summary(page)
        siblings = self.section_of(page).pages
        idx = siblings.index(page)
        neighbours = {
            "lower": siblings[idx + 1] if idx + 1 < len(siblings) else None,
            "higher": siblings[idx - 1] if idx > 0 else None,
        }
        for key, neighbour in neighbours.items():
            context[key] = (
                {"title": neighbour.title, "permalink": self.permalink(neighbour.url_path)} if neighbour else None
            )
        context.update(
            {
                "content": Markup(rendered.html),
                "toc": Markup(rendered.toc),
                "relative_path": page.rel_path,
                "assets": [asset.name for asset in page.assets],
            }
        )
        return context

    def section_context(self, section: Section) -> dict:
        item = section.item
        rendered = self.rendered.get(item.rel_path)
        title = item.title or (self.config.title if not item.section_dir else item.section_dir.rsplit("/", 1)[-1])
        return {
            "title": title,
            "description": item.description,
            "permalink": self.permalink(item.url_path),
            "path": item.url_path,
            "content": Markup(rendered.html) if rendered else Markup(""),
            "toc": Markup(rendered.toc) if rendered else Markup(""),
            "pages": [self.page_summary(page) for page in section.pages],
            "subsections": [
                {
                    "title": self.sections[sub].item.title or sub.rsplit("/", 1)[-1],
                    "permalink": self.permalink(self.sections[sub].item.url_path),
                    "path": self.sections[sub].item.url_path,
                }
                for sub in section.subsections
                if self.sections[sub].item.render
            ],
            "relative_path": item.rel_path,
            "extra": item.extra,
        }

    def term_context(self, term: Term) -> dict:
        return {
            "name": term.name,
            "slug": term.slug,
            "permalink": self.permalink(term.url_path),
            "path": term.url_path,
            "pages": [self.page_summary(page) for page in term.items if not page.is_section],
        }


def published(items: Iterable[ContentItem], include_drafts: bool = False) -> list[ContentItem]:
    """Drop drafts, and every page below a draft section."""
    items = list(items)
    if include_drafts:
        return items
    draft_dirs = [item.section_dir for item in items if item.is_section and item.draft]

    def under_draft(item: ContentItem) -> bool:
        for draft_dir in draft_dirs:
            if not draft_dir:
                return True
            if item.section_dir == draft_dir or item.section_dir.startswith(f"{draft_dir}/"):
                return True
        return False

    return [item for item in items if not item.draft and not under_draft(item)]


def check_collisions(sections: dict[str, Section], index: TaxonomyIndex, config: SiteConfig, content_dir: Path) -> None:
    """Every HTML document of the site must own its URL.

    Covers pages, rendered sections, aliases, taxonomy lists, terms and pagers.
    """
    owners: dict[str, tuple[str, Optional[ContentItem]]] = {}

    def claim(url_path: str, label: str, item: Optional[ContentItem] = None) -> None:
        owner = owners.get(url_path)
        if owner is None:
            owners[url_path] = (label, item)
            return
        if item is not None and owner[1] is item:
            return
        culprit = item or owner[1]
        path = culprit.source if culprit is not None else content_dir
        raise ContentError(path, f"URL {url_path} of {label} is already used by {owner[0]}.")

    def claim_listing(
        base_path: str, count: int, paginate_by: Optional[int], label: str, item: Optional[ContentItem] = None
    ) -> None:
        for url_path in paginated_paths(base_path, count, paginate_by):
            claim(url_path, label, item)
        if paginate_by:
            claim(f"{base_path}{PAGINATE_PATH}/1/", f"{label} (first pager redirect)", item)

    for section in sections.values():
        item = section.item
        if item.render:
            claim_listing(item.url_path, len(section.pages), item.paginate_by, item.rel_path, item)
            for alias in item.aliases:
                claim(alias, f"an alias of {item.rel_path}", item)
        for page in section.pages:
            for url_path in (page.url_path, *page.aliases):
                claim(url_path, page.rel_path, page)

    for taxonomy in config.taxonomies:
        if not taxonomy.render:
            continue
        claim(f"/{taxonomy_slug(taxonomy.name)}/", f"the {taxonomy.name} list")
        for term in index.get(taxonomy.name).values():
            count = len([item for item in term.items if not item.is_section])
            claim_listing(term.url_path, count, taxonomy.paginate_by, f"{taxonomy.name} term {term.name!r}")


def load_library(
    root: Path,
    config: SiteConfig,
    items: Iterable[ContentItem],
    env: jinja2.Environment,
    include_drafts: bool = False,
) -> Library:
    """Index the scanned items and render every published body.

    Content errors surface here, before anything is written.
    """
    items = published(items, include_drafts)
    sections = build_sections(root / "content", items)
    index = build_taxonomy_index(items, config.taxonomies, include_drafts=include_drafts)
    check_collisions(sections, index, config, root / "content")
    library = Library(root=root, config=config, sections=sections, taxonomy_index=index, env=env)
    for section in sections.values():
        targets: list[ContentItem] = list(section.pages)
        if not section.item.implicit:
            targets.append(section.item)
        for item in targets:
            library.rendered[item.rel_path] = render_item(
                item, config.markdown, env, {"page": {"title": item.title, "path": item.url_path, "extra": item.extra}}
            )
    logger.info("Loaded %d pages in %d sections", len(library.pages), len(sections))
    return library
