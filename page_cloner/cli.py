"""Command-line entry point for the page cloner."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, List, Sequence

from .cloner import clone_page, write_static_variant
from .config import CloneConfig
from .errors import ClonerError
from .models import CloneResult

logger = logging.getLogger("page_cloner.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("clone", *argv)


def _configure_logging(verbose: bool, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    if quiet and not verbose:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _add_clone_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("urls", nargs="+", help="One or more page URLs to clone")
    parser.add_argument(
        "--output",
        default="output",
        type=Path,
        help="Directory under which one folder per clone is created",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window instead of running headless",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Navigation timeout in seconds",
    )
    parser.add_argument(
        "--asset-timeout",
        type=float,
        default=30.0,
        help="Per-asset download timeout in seconds",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=8,
        help="Maximum number of simultaneous asset downloads",
    )
    parser.add_argument(
        "--pipeline-timeout",
        type=float,
        default=None,
        help="Abort a clone that takes longer than this many seconds",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging (browser console and network events)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print each clone result to STDOUT as JSON",
    )


def _add_static_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Clone folders containing an index.html",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Clone web pages into self-contained local folders using a headless browser.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    clone_parser = subparsers.add_parser(
        "clone", help="Render pages and save them with their assets"
    )
    _add_clone_arguments(clone_parser)

    static_parser = subparsers.add_parser(
        "static", help="Rebuild index-static.html for existing clone folders"
    )
    _add_static_arguments(static_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> CloneConfig:
    return CloneConfig(
        output_root=Path(args.output).resolve(),
        headless=not args.headed,
        navigation_timeout=args.timeout,
        asset_timeout=args.asset_timeout,
        max_concurrent_downloads=max(1, args.concurrency),
        pipeline_timeout=args.pipeline_timeout,
    )


def _run_clone(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose, quiet=args.json)
    config = _config_from_args(args)

    overall_start = time.perf_counter()
    results: List[CloneResult] = []
    for url in args.urls:
        try:
            result = asyncio.run(clone_page(url, config))
        except ClonerError as exc:
            logger.error("Failed to clone %s: %s", url, exc)
            continue
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected error while cloning %s", url)
            continue
        results.append(result)
        if args.json:
            sys.stdout.write(json.dumps(result.to_dict()) + "\n")
            sys.stdout.flush()
        else:
            logger.info("Saved %s -> %s", url, result.output_path)
    total_elapsed = time.perf_counter() - overall_start

    successes = len(results)
    total_urls = len(args.urls)
    failures = total_urls - successes
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        total_elapsed,
        successes,
        total_urls,
        failures,
    )
    return 1 if failures else 0


def _run_static(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    failures = 0
    for path in args.paths:
        try:
            destination = write_static_variant(path)
        except OSError as exc:
            logger.error("Could not build static variant for %s: %s", path, exc)
            failures += 1
            continue
        logger.info("Wrote %s", destination)
    return 1 if failures else 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    if args.command == "clone":
        return _run_clone(args)
    return _run_static(args)


if __name__ == "__main__":
    sys.exit(main())
