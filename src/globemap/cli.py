"""CLI entrypoint for the globe choropleth builder."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .classify import format_scheme_lines
from .config import AppConfig, load_config
from .errors import PipelineError
from .io_ne import NaturalEarthRepository
from .pipeline import prepare_features, run_build
from .util import ensure_directories, setup_logging

LOGGER = logging.getLogger("globemap.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="globemap",
        description="Interactive orthographic globe of world population.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")
        p.add_argument(
            "--refresh",
            action="store_true",
            help="Download the dataset even when a cached copy exists.",
        )

    build_p = subparsers.add_parser("build", help="Run the full pipeline and write the HTML globe.")
    add_common(build_p)
    build_p.add_argument("--output", default=None, help="Override the output HTML path.")

    fetch_p = subparsers.add_parser("fetch", help="Download the dataset into the cache only.")
    add_common(fetch_p)

    classify_p = subparsers.add_parser(
        "classify",
        help="Run load/normalize/repair/classify and print breaks and legend labels.",
    )
    add_common(classify_p)

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.paths.logs_dir / "globemap.log", verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _run_build(cfg: AppConfig, *, refresh: bool, output: str | None) -> int:
    LOGGER.info("Starting globe build.")
    result = run_build(
        cfg,
        refresh=refresh,
        output_path=Path(output).resolve() if output else None,
    )
    for line in format_scheme_lines(result.scheme, result.frame):
        LOGGER.info(line)
    LOGGER.info("Build finished: %s", result.output_path)
    return 0


def _run_fetch(cfg: AppConfig, *, refresh: bool) -> int:
    repo = NaturalEarthRepository(cfg.source, cfg.paths.cache_dir)
    path = repo.fetch(refresh=refresh)
    LOGGER.info("Dataset available at %s", path)
    return 0


def _run_classify(cfg: AppConfig, *, refresh: bool) -> int:
    result = prepare_features(cfg, refresh=refresh)
    for line in format_scheme_lines(result.scheme, result.frame):
        LOGGER.info(line)
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    try:
        cfg = _load_and_setup(args)
    except (FileNotFoundError, ValueError) as exc:
        setup_logging(verbose=bool(getattr(args, "verbose", False)))
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    command = str(args.command)
    refresh = bool(args.refresh)
    try:
        if command == "build":
            return _run_build(cfg, refresh=refresh, output=args.output)
        if command == "fetch":
            return _run_fetch(cfg, refresh=refresh)
        if command == "classify":
            return _run_classify(cfg, refresh=refresh)
    except PipelineError as exc:
        LOGGER.error("%s", exc)
        LOGGER.error("Run aborted; no artifact was written.")
        return 1
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
