"""
Audioshelf - Entry Point

Runs the library loading sequence once and reports the outcome.

Run with: python -m audioshelf
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from audioshelf import __version__
from audioshelf.config import ConfigError, load_app_config
from audioshelf.core.loading.classifier import FailureKind
from audioshelf.core.loading.orchestrator import (
    Fatal,
    LoadingOrchestrator,
    LoadOutcome,
    Ready,
    RecoverableFailure,
)

EXIT_READY = 0
EXIT_RECOVERABLE = 1
EXIT_FATAL = 70  # EX_SOFTWARE

logger = logging.getLogger("audioshelf")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="audioshelf",
        description="Open, migrate and (if needed) rebuild the audiobook library store",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to an audioshelf.toml (default: bundled configuration)",
    )

    parser.add_argument("--data-dir", type=Path, default=None, help="Directory holding the store")
    parser.add_argument("--media-dir", type=Path, default=None, help="Downloaded media folder")
    parser.add_argument(
        "--settings-dir", type=Path, default=None, help="Directory holding settings scopes"
    )

    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Rebuild a corrupted store from the media folder without asking",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


async def _ask_rebuild(failure: RecoverableFailure) -> bool:
    prompt = (
        "The library database could not be loaded and must be rebuilt.\n"
        "Downloaded audiobooks are kept, but playback positions and ordering are lost.\n"
        "Rebuild now? [y/N] "
    )
    answer = await asyncio.to_thread(input, prompt)
    return answer.strip().lower() in {"y", "yes"}


async def _always_rebuild(failure: RecoverableFailure) -> bool:
    return True


async def run_load(orchestrator: LoadingOrchestrator) -> LoadOutcome:
    """Run the sequence and release the store handle; the CLI only reports."""
    outcome = await orchestrator.perform_load()
    if isinstance(outcome, Ready):
        items = await outcome.store.count_items()
        theme = await outcome.store.get_current_theme()
        logger.info(
            "Library ready: %d item(s), theme %s",
            items,
            theme.title if theme else "(none)",
        )
        await outcome.store.close()
    return outcome


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = load_app_config(
            args.config,
            data_dir=args.data_dir,
            media_dir=args.media_dir,
            settings_dir=args.settings_dir,
        )
        orchestrator = LoadingOrchestrator.from_config(
            config,
            confirm_rebuild=_always_rebuild if args.yes else _ask_rebuild,
        )
    except (OSError, ConfigError) as e:
        logger.error("Could not load configuration: %s", e)
        return EXIT_FATAL

    logger.info("Loading library store %s", config.storage.store_path)
    outcome = asyncio.run(run_load(orchestrator))

    if isinstance(outcome, Ready):
        return EXIT_READY

    if isinstance(outcome, RecoverableFailure):
        if outcome.kind == FailureKind.DISK_FULL:
            logger.error("Not enough free space to open the library. Free some space and retry.")
        else:
            logger.error("Library store was not rebuilt: %s", outcome.error)
        return EXIT_RECOVERABLE

    assert isinstance(outcome, Fatal)
    # Explicit halt: nothing else may run against an inconsistent store.
    logger.critical("Halting: %s", outcome.detail)
    return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
