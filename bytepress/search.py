"""Client-side search index.

The ``elasticlunr_*`` formats serialize an index that ``elasticlunr.Index.load``
accepts: a document store plus one inverted-index trie per field, where each
token node carries ``{"docs": {ref: {"tf": sqrt(count)}}, "df": n}``.
The ``fuse_*`` formats are a flat list of documents.
"""

from __future__ import annotations

import json
import logging
import math
import re
from pathlib import Path

from .config import SearchConfig
from .content import ContentItem
from .library import Library
from .utils import write_text

logger = logging.getLogger(__name__)

ELASTICLUNR_VERSION = "0.9.5"
PIPELINE = ["trimmer", "stopWordFilter"]
TOKEN_RE = re.compile(r"\w+", re.UNICODE)

# Stop words from elasticlunr's default English stopWordFilter
STOP_WORDS = frozenset(
    """
    a able about across after all almost also am among an and any are as at be because been but by can
    cannot could dear did do does either else ever every for from get got had has have he her hers him his
    how however i if in into is it its just least let like likely may me might most must my neither no nor
    not of off often on only or other our own rather said say says she should since so some than that the
    their them then there these they this tis to too twas us wants was we were what when where which while
    who whom why will with would yet you your
    """.split()
)


def search_fields(config: SearchConfig) -> list[str]:
    fields = []
    if config.include_title:
        fields.append("title")
    if config.include_description:
        fields.append("description")
    if config.include_path:
        fields.append("path")
    if config.include_content:
        fields.append("body")
    return fields


def tokenize(text: str) -> list[str]:
    return [token for token in TOKEN_RE.findall(text.lower()) if token not in STOP_WORDS]


def _searchable(library: Library) -> list[ContentItem]:
    items = [
        section.item
        for section in library.rendered_sections
        if section.item.in_search_index and not section.item.implicit
    ]
    items.extend(library.pages)
    return sorted(items, key=lambda item: item.url_path)


def search_entries(library: Library) -> list[dict]:
    """One entry per searchable item, holding only the configured fields."""
    config = library.config.search
    entries = []
    for item in _searchable(library):
        rendered = library.content(item)
        entry = {"id": library.permalink(item.url_path)}
        if config.include_title:
            entry["title"] = item.title
        if config.include_description:
            entry["description"] = item.description
        if config.include_path:
            entry["path"] = item.url_path
        if config.include_content:
            body = rendered.text
            if config.truncate_content_length:
                body = body[: config.truncate_content_length]
            entry["body"] = body
        entries.append(entry)
    return entries


def _add_token(root: dict, token: str, ref: str, tf: float) -> None:
    node = root
    for char in token:
        node = node.setdefault(char, {"docs": {}, "df": 0})
    node["docs"][ref] = {"tf": tf}
    node["df"] = len(node["docs"])


def build_elasticlunr_index(entries: list[dict], fields: list[str]) -> dict:
    docs = {}
    doc_info = {}
    index = {field: {"root": {"docs": {}, "df": 0}} for field in fields}
    for entry in entries:
        ref = entry["id"]
        docs[ref] = dict(entry)
        doc_info[ref] = {}
        for field in fields:
            tokens = tokenize(entry.get(field, ""))
            doc_info[ref][field] = len(tokens)
            counts: dict[str, int] = {}
            for token in tokens:
                counts[token] = counts.get(token, 0) + 1
            for token in sorted(counts):
                _add_token(index[field]["root"], token, ref, math.sqrt(counts[token]))
    return {
        "version": ELASTICLUNR_VERSION,
        "fields": fields,
        "ref": "id",
        "documentStore": {"docs": docs, "docInfo": doc_info, "length": len(docs), "save": True},
        "index": index,
        "pipeline": PIPELINE,
    }


def build_fuse_index(entries: list[dict], fields: list[str]) -> list[dict]:
    return [{field: entry[field] for field in fields if field in entry} for entry in entries]


def index_filename(config: SearchConfig, lang: str) -> str:
    extension = "js" if config.index_format.endswith("_javascript") else "json"
    return f"search_index.{lang}.{extension}"


def serialize_index(library: Library) -> str:
    config = library.config.search
    fields = search_fields(config)
    entries = search_entries(library)
    if config.index_format.startswith("elasticlunr"):
        data = build_elasticlunr_index(entries, fields)
    else:
        data = build_fuse_index(entries, fields)
    payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    if config.index_format.endswith("_javascript"):
        return f"window.searchIndex = {payload};\n"
    return payload


def build_search_index(library: Library, output_dir: Path) -> list[Path]:
    if not library.config.build_search_index:
        return []
    path = output_dir / index_filename(library.config.search, library.config.default_language)
    write_text(path, serialize_index(library))
    logger.info("Wrote search index %s", path.name)
    return [path]
