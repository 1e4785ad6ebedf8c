from __future__ import annotations

import datetime as dt
import html as html_lib
import re
import shutil
from pathlib import Path

from .errors import BuildError

TAG_RE = re.compile(r"<[^>]+>")
SLUG_STRIP_RE = re.compile(r"[^\w]+", re.UNICODE)


def slugify(text: str) -> str:
    text = text.lower()
    text = SLUG_STRIP_RE.sub("-", text)
    text = text.strip("-_").replace("_", "-")
    return text


def strip_tags(html_text: str) -> str:
    return html_lib.unescape(TAG_RE.sub("", html_text))


def join_url(base: str, path: str) -> str:
    base = base.rstrip("/")
    path = path.lstrip("/")
    if not path:
        return f"{base}/"
    return f"{base}/{path}"


def as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def rfc822_date(value: dt.datetime) -> str:
    return as_utc(value).strftime("%a, %d %b %Y %H:%M:%S %z")


def iso_date(value: dt.datetime) -> str:
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def copy_tree(source: Path, output_dir: Path) -> int:
    """Copy every file below ``source`` into ``output_dir``, overwriting."""
    copied = 0
    for item in sorted(source.rglob("*")):
        if not item.is_file():
            continue
        dest = output_dir / item.relative_to(source)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(item, dest)
        copied += 1
    return copied


def clean_output_dir(output_dir: Path, project_root: Path) -> None:
    if not output_dir.exists():
        return
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise BuildError("Refusing to clean project root.")
    if not output_resolved.is_relative_to(root_resolved):
        raise BuildError(f"Refusing to clean output directory outside project root: {output_dir}")
    shutil.rmtree(output_dir)
