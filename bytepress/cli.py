from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from .errors import BuildError
from .site import DEFAULT_CONFIG, build_site, check_site


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bytepress", description="Static site generator for Markdown blogs.")
    parser.add_argument("--root", default=".", help="Site directory containing the config and content/.")
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="Path to site config file (TOML/YAML/JSON).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Build the site into the output directory.")
    build.add_argument("-o", "--output-dir", default=None, help="Output directory (default: config output_dir).")
    build.add_argument("-u", "--base-url", default=None, help="Override base_url from the config.")
    build.add_argument("--drafts", action="store_true", help="Include draft content.")
    build.add_argument(
        "--build-workers",
        default=0,
        type=int,
        help="Number of worker threads for the output stage (0 = auto).",
    )

    check = subparsers.add_parser("check", help="Run a full build without writing the output directory.")
    check.add_argument("--drafts", action="store_true", help="Include draft content.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    root = Path(args.root)
    start = time.perf_counter()
    try:
        if args.command == "check":
            report = check_site(root, args.config, include_drafts=args.drafts)
        else:
            report = build_site(
                root,
                args.config,
                output_dir=Path(args.output_dir) if args.output_dir else None,
                base_url=args.base_url,
                include_drafts=args.drafts,
                workers=args.build_workers,
            )
    except BuildError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    elapsed = time.perf_counter() - start
    if args.command == "check":
        print(f"Site is valid: {report.pages} pages, {report.sections} sections, {report.terms} terms.")
        return 0
    print(f"Build completed in {elapsed:.2f}s.")
    print(f"Site generated in: {report.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
