from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .config import TaxonomyConfig
from .content import ContentItem
from .errors import ContentError
from .utils import slugify

logger = logging.getLogger(__name__)


@dataclass
class Term:
    name: str
    slug: str
    taxonomy: str
    items: list[ContentItem] = field(default_factory=list)

    @property
    def url_path(self) -> str:
        return f"/{self.taxonomy}/{self.slug}/"


@dataclass
class TaxonomyIndex:
    """Read-only view: taxonomy name -> term slug -> Term."""

    taxonomies: tuple[TaxonomyConfig, ...]
    terms: dict[str, dict[str, Term]]

    def get(self, taxonomy: str) -> dict[str, Term]:
        return self.terms.get(taxonomy, {})

    def term(self, taxonomy: str, name: str) -> Optional[Term]:
        return self.get(taxonomy).get(slugify(name))

    def items_for(self, taxonomy: str, name: str) -> list[ContentItem]:
        term = self.term(taxonomy, name)
        return list(term.items) if term else []


def taxonomy_slug(name: str) -> str:
    return slugify(name) or name


def _item_order(item: ContentItem) -> tuple:
    # Newest first, undated last, path as tie breaker
    if item.date is None:
        return (1, 0.0, item.rel_path)
    return (0, -item.date.timestamp(), item.rel_path)


def build_taxonomy_index(
    items: Iterable[ContentItem],
    taxonomies: Iterable[TaxonomyConfig],
    include_drafts: bool = False,
) -> TaxonomyIndex:
    declared = tuple(taxonomies)
    names = {taxonomy.name for taxonomy in declared}
    terms: dict[str, dict[str, Term]] = {taxonomy.name: {} for taxonomy in declared}

    for item in items:
        if item.draft and not include_drafts:
            continue
        for taxonomy, values in item.taxonomies.items():
            if taxonomy not in names:
                raise ContentError(item.source, f"Uses taxonomy '{taxonomy}' which is not declared in the config.")
            for value in values:
                slug = slugify(value)
                if not slug:
                    raise ContentError(item.source, f"Taxonomy term {value!r} has no usable slug.")
                term = terms[taxonomy].get(slug)
                if term is None:
                    term = Term(name=value, slug=slug, taxonomy=taxonomy_slug(taxonomy))
                    terms[taxonomy][slug] = term
                if item not in term.items:
                    term.items.append(item)

    for taxonomy, mapping in terms.items():
        for term in mapping.values():
            term.items.sort(key=_item_order)
        terms[taxonomy] = dict(sorted(mapping.items(), key=lambda entry: (entry[1].name.lower(), entry[0])))
        logger.debug("Taxonomy %s: %d terms", taxonomy, len(terms[taxonomy]))
    return TaxonomyIndex(taxonomies=declared, terms=terms)
