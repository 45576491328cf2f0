"""Command-line entry point."""

import argparse
import logging
import platform
import sys
from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .cache import CommandCache
from .config import UpdateConfig
from .errors import PreconditionError
from .execution import CommandRunner
from .log import setup_logging
from .orchestrator import Orchestrator
from .summary import compare_summaries, comparison_table, exit_code_for, load_summary, render_summary

logger = logging.getLogger(__name__)

PRECONDITION_EXIT_CODE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devenv-update",
        description=f"Development environment updater v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  devenv-update                          # Update every installed ecosystem
  devenv-update --dry-run                # Show what would run
  devenv-update --parallel               # Run package managers concurrently
  devenv-update --only Winget --only pip # Restrict to some sections
  devenv-update --delta                  # Only packages changed since the baseline
  devenv-update --compare a.json b.json  # Compare two run summaries
        """,
    )
    parser.add_argument("--dry-run", action="store_true", help="Log mutating commands instead of running them")
    parser.add_argument("--parallel", action="store_true", help="Run independent sections concurrently")
    parser.add_argument("--max-parallel", type=int, help="Maximum concurrent sections (default 4)")
    parser.add_argument("--delta", action="store_true", help="Target packages changed since the last baseline")
    parser.add_argument("--only", action="append", default=[], metavar="SECTION", help="Run only these sections")
    parser.add_argument("--skip", action="append", default=[], metavar="SECTION", help="Skip these sections")
    parser.add_argument("--no-cache", action="store_true", help="Do not reuse cached winget listings")
    parser.add_argument("--clear-cache", action="store_true", help="Clear the command cache and exit")
    parser.add_argument("--config", type=Path, help="Path to an alternative config.json")
    parser.add_argument(
        "--compare", nargs=2, type=Path, metavar=("BEFORE", "AFTER"), help="Compare two run summaries and exit"
    )
    parser.add_argument("--verbose", action="store_true", help="Debug-level logging")
    return parser


def overrides_from_args(args) -> dict:
    overrides = {"dry_run": args.dry_run}
    if args.parallel:
        overrides.setdefault("performance", {})["parallel"] = True
    if args.max_parallel:
        overrides.setdefault("performance", {})["max_parallel"] = args.max_parallel
    if args.delta:
        overrides["delta"] = {"enabled": True}
    if args.only or args.skip:
        overrides["sections"] = {"only": args.only, "skip": args.skip}
    if args.no_cache:
        overrides["cache"] = {"enabled": False}
    return overrides


def banner(console: Console, config: UpdateConfig):
    info = Table.grid(padding=1)
    info.add_column(style="cyan")
    info.add_column(style="white")
    info.add_row("🖥️  OS:", f"{platform.system()} {platform.release()}")
    info.add_row("🐍 Python:", platform.python_version())
    info.add_row("⚡ Parallel:", "ON" if config.settings["performance"]["parallel"] else "OFF")
    info.add_row("🔁 Delta:", "ON" if config.settings["delta"]["enabled"] else "OFF")
    console.print(
        Panel(
            info,
            title=f"[bold green]Dev Environment Update v{__version__}[/bold green]",
            border_style="green",
            box=box.ROUNDED,
        )
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    console = Console()

    if args.compare:
        before, after = (load_summary(path) for path in args.compare)
        console.print(comparison_table(compare_summaries(before, after)))
        return 0

    config = UpdateConfig(config_file=args.config) if args.config else UpdateConfig()
    config.update(overrides_from_args(args))
    log_path = setup_logging(config.log_dir, verbose=args.verbose)

    cache = None
    if config.cache_enabled or args.clear_cache:
        cache = CommandCache(config.cache_dir, use_disk=config.settings["cache"]["disk"])
    if args.clear_cache:
        removed = cache.invalidate()
        console.print(f"[green]🗑️  Cleared {removed} cache entries[/green]")
        return 0

    banner(console, config)
    orchestrator = Orchestrator(
        config,
        runner=CommandRunner(dry_run=config.dry_run),
        cache=cache,
        console=console,
        log_path=log_path,
    )
    try:
        results = orchestrator.run()
    except PreconditionError as e:
        logger.error(str(e))
        console.print(f"[red]❌ {e}[/red]")
        return PRECONDITION_EXIT_CODE

    render_summary(results, console, log_path)
    return exit_code_for(results)


if __name__ == "__main__":
    sys.exit(main())
