from __future__ import annotations

import datetime as dt
import fnmatch
import html as html_lib
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

import yaml

from .config import SORT_KEYS
from .errors import ContentError
from .utils import as_utc, slugify

TOML_FENCE = "+++"
YAML_FENCE = "---"
SECTION_FILE = "_index.md"
BUNDLE_FILE = "index.md"
DATE_PREFIX_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})[-_](?P<rest>.+)$")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")
WORDS_PER_MINUTE = 200

PAGE_KEYS = {
    "title",
    "description",
    "date",
    "updated",
    "draft",
    "slug",
    "path",
    "weight",
    "taxonomies",
    "template",
    "aliases",
    "extra",
}
SECTION_KEYS = PAGE_KEYS | {"sort_by", "paginate_by", "page_template", "render", "in_search_index"}


@dataclass(frozen=True)
class ContentItem:
    source: Path
    rel_path: str
    kind: str
    title: str
    url_path: str
    section_dir: str
    slug: str = ""
    description: str = ""
    date: Optional[dt.datetime] = None
    updated: Optional[dt.datetime] = None
    draft: bool = False
    weight: Optional[int] = None
    taxonomies: dict = field(default_factory=dict)
    body: str = ""
    template: Optional[str] = None
    aliases: tuple[str, ...] = ()
    extra: dict = field(default_factory=dict)
    assets: tuple[Path, ...] = ()
    sort_by: str = "none"
    paginate_by: Optional[int] = None
    page_template: Optional[str] = None
    render: bool = True
    in_search_index: bool = True
    implicit: bool = False

    @property
    def is_section(self) -> bool:
        return self.kind == "section"

    @property
    def last_modified(self) -> Optional[dt.datetime]:
        return self.updated or self.date

    def terms(self, taxonomy: str) -> tuple[str, ...]:
        return self.taxonomies.get(taxonomy, ())


@dataclass
class Section:
    item: ContentItem
    pages: list[ContentItem] = field(default_factory=list)
    subsections: list[str] = field(default_factory=list)


def split_front_matter(text: str, path: Path) -> tuple[str, dict, str]:
    """Split a document into (format, metadata, body).

    ``+++`` fences hold TOML and ``---`` fences hold YAML. Documents without
    a front-matter block return empty metadata and the full text.
    """
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() not in {TOML_FENCE, YAML_FENCE}:
        return "", {}, clean_text
    fence = lines[0].strip()

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == fence:
            end = i
            break
    if end is None:
        raise ContentError(path, f"Front-matter block opened with {fence} is never closed.")

    raw = "\n".join(lines[1:end])
    body = "\n".join(lines[end + 1 :])
    if fence == TOML_FENCE:
        try:
            meta = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ContentError(path, f"Invalid TOML front-matter: {exc}") from exc
        return "toml", meta, body
    try:
        meta = yaml.safe_load(raw)
    except (yaml.YAMLError, ValueError) as exc:
        raise ContentError(path, f"Invalid YAML front-matter: {exc}") from exc
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise ContentError(path, "Front-matter must be a mapping.")
    return "yaml", meta, body


def extract_title(meta: dict, body: str) -> tuple[str, str]:
    if meta.get("title"):
        return str(meta["title"]), body
    lines = body.splitlines()
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("# "):
            title = stripped[2:].strip()
            new_body = "\n".join(lines[i + 1 :]).lstrip()
            return title, new_body
        if stripped:
            break
    return "", body


def parse_datetime(value: Any, path: Path, key: str) -> Optional[dt.datetime]:
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return as_utc(value)
    if isinstance(value, dt.date):
        return as_utc(dt.datetime.combine(value, dt.time()))
    if isinstance(value, str):
        text = value.strip()
        try:
            if "T" in text or " " in text:
                return as_utc(dt.datetime.fromisoformat(text))
            return as_utc(dt.datetime.combine(dt.date.fromisoformat(text), dt.time()))
        except ValueError as exc:
            raise ContentError(path, f"Invalid {key}: {value!r}") from exc
    raise ContentError(path, f"Invalid {key}: {value!r}")


def parse_taxonomies(value: Any, path: Path) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ContentError(path, "taxonomies must be a table of term lists.")
    assignments: dict[str, tuple[str, ...]] = {}
    for name, terms in value.items():
        if isinstance(terms, str):
            terms = [terms]
        if not isinstance(terms, list) or not all(isinstance(term, str) for term in terms):
            raise ContentError(path, f"taxonomies.{name} must be a list of strings.")
        ordered: list[str] = []
        for term in terms:
            term = term.strip()
            if term and term not in ordered:
                ordered.append(term)
        if ordered:
            assignments[str(name)] = tuple(ordered)
    return assignments


def _field(meta: dict, key: str, kind: type, path: Path, default: Any = None) -> Any:
    value = meta.get(key, default)
    if value is None or value is default:
        return value
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        raise ContentError(path, f"{key} must be of type {kind.__name__}.")
    return value


def normalize_url_path(value: str) -> str:
    value = value.strip().strip("/")
    if not value:
        return "/"
    return f"/{value}/"


def directory_url(section_dir: str) -> str:
    parts = [slugify(part) or part for part in section_dir.split("/") if part]
    return normalize_url_path("/".join(parts))


def read_item(path: Path, root: Path) -> ContentItem:
    """Parse one content document into a ContentItem."""
    rel = path.relative_to(root).as_posix()
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ContentError(path, f"Not valid UTF-8: {exc}") from exc
    _, meta, body = split_front_matter(text, path)
    is_section = path.name == SECTION_FILE
    is_bundle = path.name == BUNDLE_FILE and path.parent != root

    allowed = SECTION_KEYS if is_section else PAGE_KEYS
    unknown = sorted(set(meta) - allowed)
    if unknown:
        raise ContentError(path, f"Unknown front-matter fields: {', '.join(unknown)}")

    title, body = extract_title(meta, body)
    if meta.get("title") is not None and not isinstance(meta["title"], str):
        raise ContentError(path, "title must be of type str.")

    if is_section:
        section_dir = path.parent.relative_to(root).as_posix()
        section_dir = "" if section_dir == "." else section_dir
        stem = path.parent.name if section_dir else ""
    elif is_bundle:
        bundle_parent = path.parent.parent.relative_to(root).as_posix()
        section_dir = "" if bundle_parent == "." else bundle_parent
        stem = path.parent.name
    else:
        parent = path.parent.relative_to(root).as_posix()
        section_dir = "" if parent == "." else parent
        stem = path.stem

    date_value = meta.get("date")
    match = DATE_PREFIX_RE.match(stem) if not is_section else None
    if match:
        stem = match.group("rest")
        if date_value is None:
            date_value = match.group("date")

    explicit_slug = _field(meta, "slug", str, path, "")
    slug = slugify(explicit_slug or stem)
    if not is_section and not slug:
        raise ContentError(path, "Could not derive a slug from the file name; set slug explicitly.")

    explicit_path = _field(meta, "path", str, path, "")
    if is_section:
        url_path = directory_url(section_dir)
    elif explicit_path:
        url_path = normalize_url_path(explicit_path)
    else:
        url_path = normalize_url_path(f"{directory_url(section_dir).strip('/')}/{slug}")

    aliases = _field(meta, "aliases", list, path, [])
    if not all(isinstance(alias, str) and alias.strip("/") for alias in aliases):
        raise ContentError(path, "aliases must be a list of non-empty paths.")

    sort_by = _field(meta, "sort_by", str, path, "none")
    if sort_by not in SORT_KEYS:
        raise ContentError(path, f"sort_by must be one of {', '.join(SORT_KEYS)}.")
    paginate_by = _field(meta, "paginate_by", int, path, None)
    if paginate_by is not None and paginate_by <= 0:
        raise ContentError(path, "paginate_by must be a positive integer.")

    assets: tuple[Path, ...] = ()
    if is_bundle:
        assets = tuple(
            sorted(p for p in path.parent.iterdir() if p.is_file() and p.suffix.lower() != ".md")
        )

    return ContentItem(
        source=path,
        rel_path=rel,
        kind="section" if is_section else "page",
        title=title,
        url_path=url_path,
        section_dir=section_dir,
        slug=slug,
        description=_field(meta, "description", str, path, ""),
        date=parse_datetime(date_value, path, "date"),
        updated=parse_datetime(meta.get("updated"), path, "updated"),
        draft=_field(meta, "draft", bool, path, False),
        weight=_field(meta, "weight", int, path, None),
        taxonomies=parse_taxonomies(meta.get("taxonomies"), path),
        body=body,
        template=_field(meta, "template", str, path, None),
        aliases=tuple(normalize_url_path(alias) for alias in aliases),
        extra=_field(meta, "extra", dict, path, {}),
        assets=assets,
        sort_by=sort_by,
        paginate_by=paginate_by,
        page_template=_field(meta, "page_template", str, path, None),
        render=_field(meta, "render", bool, path, True),
        in_search_index=_field(meta, "in_search_index", bool, path, True),
    )


def _is_bundle_asset(path: Path, root: Path) -> bool:
    if path.parent == root or path.name in {BUNDLE_FILE, SECTION_FILE}:
        return False
    return (path.parent / BUNDLE_FILE).exists()


def scan_content(root: Path, ignored: Iterable[str] = ()) -> Iterator[ContentItem]:
    """Yield every content document below ``root`` in path order.

    Files matching one of the ``ignored`` globs (relative to ``root``) are
    skipped. Malformed documents raise ContentError with their path.
    """
    if not root.is_dir():
        raise ContentError(root, "Content directory not found.")
    patterns = tuple(ignored)
    for path in sorted(root.rglob("*.md"), key=lambda p: p.relative_to(root).as_posix()):
        rel = path.relative_to(root).as_posix()
        if any(fnmatch.fnmatch(rel, pattern) for pattern in patterns):
            continue
        if _is_bundle_asset(path, root):
            continue
        yield read_item(path, root)


def implicit_section(root: Path, section_dir: str) -> ContentItem:
    return ContentItem(
        source=root / section_dir / SECTION_FILE if section_dir else root / SECTION_FILE,
        rel_path=f"{section_dir}/{SECTION_FILE}" if section_dir else SECTION_FILE,
        kind="section",
        title=section_dir.rsplit("/", 1)[-1] if section_dir else "",
        url_path=directory_url(section_dir),
        section_dir=section_dir,
        slug=slugify(section_dir.rsplit("/", 1)[-1]) if section_dir else "",
        implicit=True,
    )


def sort_pages(pages: list[ContentItem], sort_by: str) -> list[ContentItem]:
    """Order a section's pages; undated pages always follow dated ones."""
    by_path = sorted(pages, key=lambda p: p.rel_path)
    if sort_by == "date":
        dated = sorted((p for p in by_path if p.date), key=lambda p: p.date, reverse=True)
        return dated + [p for p in by_path if not p.date]
    if sort_by == "update_date":
        dated = sorted((p for p in by_path if p.last_modified), key=lambda p: p.last_modified, reverse=True)
        return dated + [p for p in by_path if not p.last_modified]
    if sort_by == "title":
        return sorted(by_path, key=lambda p: p.title.lower())
    if sort_by == "weight":
        return sorted(by_path, key=lambda p: (p.weight is None, p.weight or 0))
    return by_path


def build_sections(root: Path, items: Iterable[ContentItem]) -> dict[str, Section]:
    """Group pages under their section, creating implicit sections as needed.

    Every ancestor directory of a section also gets a section so the tree is
    connected up to the root.
    """
    sections: dict[str, Section] = {}
    pages: list[ContentItem] = []
    for item in items:
        if item.is_section:
            sections[item.section_dir] = Section(item)
        else:
            pages.append(item)

    def ensure(section_dir: str) -> None:
        if section_dir in sections:
            return
        sections[section_dir] = Section(implicit_section(root, section_dir))

    ensure("")
    for page in pages:
        ensure(page.section_dir)
    for section_dir in list(sections):
        parts = section_dir.split("/") if section_dir else []
        for depth in range(len(parts)):
            ensure("/".join(parts[:depth]))

    for page in pages:
        sections[page.section_dir].pages.append(page)
    for section_dir, section in sections.items():
        section.pages = sort_pages(section.pages, section.item.sort_by)
        if section_dir:
            parent = section_dir.rsplit("/", 1)[0] if "/" in section_dir else ""
            sections[parent].subsections.append(section_dir)
    for section in sections.values():
        section.subsections.sort()
    return dict(sorted(sections.items()))


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count


def reading_time(words: int) -> int:
    return max(1, -(-words // WORDS_PER_MINUTE)) if words else 0
