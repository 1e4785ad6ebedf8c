from __future__ import annotations

import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .assets import build_assets, copy_bundle_assets, copy_static
from .config import SiteConfig, load_config
from .content import scan_content
from .feeds import build_feeds
from .library import Library, load_library
from .pages import build_html
from .search import build_search_index
from .sitemap import build_sitemap
from .templates import create_environment
from .utils import clean_output_dir

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config.toml"
MAX_WORKERS = 32


@dataclass
class BuildReport:
    output_dir: Path
    pages: int = 0
    sections: int = 0
    terms: int = 0
    files: dict[str, int] = field(default_factory=dict)

    @property
    def total_files(self) -> int:
        return sum(self.files.values())


def resolve_workers(workers: int) -> int:
    if workers <= 0:
        workers = os.cpu_count() or 1
    return max(1, min(workers, MAX_WORKERS))


def prepare(
    root: Path,
    config_file: str = DEFAULT_CONFIG,
    base_url: Optional[str] = None,
    include_drafts: bool = False,
) -> Library:
    """Load config, scan content, index taxonomies and render bodies.

    Nothing is written; every config and content error surfaces here.
    """
    config_path = Path(config_file)
    if not config_path.is_absolute():
        config_path = root / config_path
    config = load_config(config_path, themes_dir=root / "themes")
    if base_url:
        config = config.with_base_url(base_url)
    env = create_environment(root, config)
    items = scan_content(root / "content", config.ignored_content)
    return load_library(root, config, items, env, include_drafts=include_drafts)


def emit(library: Library, output_dir: Path, workers: int = 0) -> dict[str, int]:
    """Write the site: static files first, then the emitters in parallel."""
    root = library.root
    config: SiteConfig = library.config
    clean_output_dir(output_dir, root)
    output_dir.mkdir(parents=True, exist_ok=True)
    files = {"static": copy_static(root, config, output_dir)}
    files["static"] += copy_bundle_assets(library, output_dir)

    env = library.env
    tasks: dict[str, Callable[[], list[Path]]] = {
        "html": lambda: build_html(library, env, output_dir),
        "search": lambda: build_search_index(library, output_dir),
        "feeds": lambda: build_feeds(library, output_dir),
        "sitemap": lambda: build_sitemap(library, env, output_dir),
        "assets": lambda: build_assets(library, output_dir),
    }
    max_workers = min(resolve_workers(workers), len(tasks))
    if max_workers <= 1:
        for name, task in tasks.items():
            files[name] = len(task())
        return files
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {name: executor.submit(task) for name, task in tasks.items()}
        for name, future in futures.items():
            files[name] = len(future.result())
    return files


def make_report(library: Library, output_dir: Path, files: dict[str, int]) -> BuildReport:
    return BuildReport(
        output_dir=output_dir,
        pages=len(library.pages),
        sections=len(library.rendered_sections),
        terms=sum(len(library.taxonomy_index.get(t.name)) for t in library.config.taxonomies),
        files=files,
    )


def build_site(
    root: Path,
    config_file: str = DEFAULT_CONFIG,
    output_dir: Optional[Path] = None,
    base_url: Optional[str] = None,
    include_drafts: bool = False,
    workers: int = 0,
) -> BuildReport:
    root = Path(root)
    library = prepare(root, config_file, base_url=base_url, include_drafts=include_drafts)
    target = Path(output_dir) if output_dir else Path(library.config.output_dir)
    if not target.is_absolute():
        target = root / target
    report = make_report(library, target, emit(library, target, workers))
    logger.info("Built %d pages into %s", report.pages, target)
    return report


def check_site(
    root: Path,
    config_file: str = DEFAULT_CONFIG,
    include_drafts: bool = False,
    workers: int = 0,
) -> BuildReport:
    """Run the whole build into a throwaway directory."""
    root = Path(root)
    library = prepare(root, config_file, include_drafts=include_drafts)
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "public"
        files = emit(library, target, workers)
    return make_report(library, root / library.config.output_dir, files)
