from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

import sass

from .config import SiteConfig
from .errors import AssetError
from .library import Library
from .markup import highlight_css
from .utils import copy_tree, write_text

logger = logging.getLogger(__name__)

SASS_SUFFIXES = {".scss", ".sass"}


def theme_dir(root: Path, config: SiteConfig) -> Optional[Path]:
    if not config.theme:
        return None
    return root / "themes" / config.theme


def asset_dirs(root: Path, config: SiteConfig, name: str) -> list[Path]:
    """Theme directory first so the site's files win on conflicts."""
    dirs = []
    theme = theme_dir(root, config)
    if theme is not None:
        dirs.append(theme / name)
    dirs.append(root / name)
    return [path for path in dirs if path.is_dir()]


def copy_static(root: Path, config: SiteConfig, output_dir: Path) -> int:
    copied = 0
    for static_dir in asset_dirs(root, config, "static"):
        copied += copy_tree(static_dir, output_dir)
    return copied


def copy_bundle_assets(library: Library, output_dir: Path) -> int:
    copied = 0
    for page in library.pages:
        if not page.assets:
            continue
        dest_dir = output_dir / page.url_path.strip("/")
        dest_dir.mkdir(parents=True, exist_ok=True)
        for asset in page.assets:
            shutil.copy2(asset, dest_dir / asset.name)
            copied += 1
    return copied


def sass_targets(sass_dir: Path) -> list[Path]:
    return sorted(
        path
        for path in sass_dir.rglob("*")
        if path.is_file()
        and path.suffix.lower() in SASS_SUFFIXES
        and not any(part.startswith("_") for part in path.relative_to(sass_dir).parts)
    )


def compile_sass(root: Path, config: SiteConfig, output_dir: Path) -> list[Path]:
    """Compile every non-partial Sass file to the same relative ``.css`` path."""
    sources: dict[str, tuple[Path, Path]] = {}
    for sass_dir in asset_dirs(root, config, "sass"):
        for source in sass_targets(sass_dir):
            rel = source.relative_to(sass_dir).with_suffix(".css").as_posix()
            sources[rel] = (sass_dir, source)
    compiled = []
    for rel, (sass_dir, source) in sorted(sources.items()):
        try:
            css = sass.compile(
                filename=str(source),
                output_style="compressed",
                include_paths=[str(sass_dir)],
            )
        except sass.CompileError as exc:
            raise AssetError(source, f"Sass compilation failed: {exc}") from exc
        dest = output_dir / rel
        write_text(dest, css)
        compiled.append(dest)
    return compiled


def write_highlight_css(config: SiteConfig, output_dir: Path) -> list[Path]:
    written = []
    for theme in config.markdown.stylesheets():
        path = output_dir / theme.filename
        write_text(path, highlight_css(theme))
        written.append(path)
    return written


def build_assets(library: Library, output_dir: Path) -> list[Path]:
    written = write_highlight_css(library.config, output_dir)
    if library.config.compile_sass:
        written += compile_sass(library.root, library.config, output_dir)
    logger.info("Wrote %d stylesheets", len(written))
    return written
