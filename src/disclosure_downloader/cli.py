import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from disclosure_downloader.config import DownloaderConfig
from disclosure_downloader.data.index_client import load_records
from disclosure_downloader.models.download import DownloadReport, RecordOutcome
from disclosure_downloader.pipeline import run_download, run_index

logger = logging.getLogger(__name__)
console = Console()

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--documents",
        default=None,
        help="Path to the record list YAML (default: data/documents.yml)",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_index_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--years",
        type=int,
        nargs="+",
        default=None,
        help="Index years to fetch (default: 2022 2023 2024)",
    )


def _add_download_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum simultaneous downloads (default: 4)",
    )
    p.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Fetch attempts per document before giving up (default: 3)",
    )
    p.add_argument(
        "--backoff",
        type=float,
        default=None,
        help="Seconds to wait between attempts (default: 5)",
    )
    p.add_argument(
        "--reports-dir",
        default=None,
        help="Root directory for downloaded PDFs",
    )
    p.add_argument(
        "--report",
        default=None,
        help="Where to write the download report (.yml or .json)",
    )
    p.add_argument(
        "--rotate-command",
        default=None,
        help="Command that rotates the network identity (e.g. a VPN script)",
    )
    p.add_argument(
        "--connect-command",
        default=None,
        help="Command run once before downloading starts",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="disclosures",
        description="Fetch financial disclosure filings from the House Clerk",
    )
    sub = p.add_subparsers(dest="command")

    # --- index ---
    index = sub.add_parser("index", help="Build the record list from yearly indexes")
    _add_index_args(index)
    _add_common(index)

    # --- download ---
    download = sub.add_parser("download", help="Download PDFs for the record list")
    _add_download_args(download)
    _add_common(download)

    # --- run (index + download) ---
    run = sub.add_parser("run", help="Build the index, then download")
    _add_index_args(run)
    _add_download_args(run)
    _add_common(run)

    return p


def config_from_args(args: argparse.Namespace) -> DownloaderConfig:
    return DownloaderConfig.from_env(
        documents_path=args.documents,
        years=getattr(args, "years", None),
        concurrency=getattr(args, "concurrency", None),
        max_attempts=getattr(args, "max_attempts", None),
        backoff_seconds=getattr(args, "backoff", None),
        reports_dir=getattr(args, "reports_dir", None),
        report_path=getattr(args, "report", None),
        rotate_command=getattr(args, "rotate_command", None),
        connect_command=getattr(args, "connect_command", None),
    )


def configure_logging(verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    else:
        env_level = os.environ.get("LOG_LEVEL", "info").lower()
        level = LOG_LEVELS.get(env_level, logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _run_index(config: DownloaderConfig) -> None:
    """Execute the index subcommand."""
    with console.status(f"[cyan]Fetching indexes for {config.years}..."):
        path = run_index(config)
    console.print(f"[green]Record list saved to {path}[/green]")


def _run_download(config: DownloaderConfig) -> DownloadReport:
    """Execute the download subcommand."""
    records = load_records(Path(config.documents_path))

    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )
    task_id = progress.add_task("Downloading", total=None)

    def on_start(total: int) -> None:
        progress.update(task_id, total=total)

    def on_progress(outcome: RecordOutcome, _state: object) -> None:
        progress.advance(task_id)

    with progress:
        report = asyncio.run(
            run_download(
                records, config, on_progress=on_progress, on_start=on_start
            )
        )

    render_summary(report, Path(config.report_path))
    return report


def render_summary(report: DownloadReport, report_path: Path) -> None:
    table = Table(title="Download summary")
    table.add_column("Outcome")
    table.add_column("Documents", justify="right")
    table.add_row("[green]successful[/green]", str(len(report.successful)))
    table.add_row("not found", str(len(report.not_found)))
    table.add_row("[yellow]blocked[/yellow]", str(len(report.blocked)))
    table.add_row("[red]failed[/red]", str(len(report.failed)))
    console.print(table)
    console.print(f"[green]Report saved to {report_path}[/green]")


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.verbose)

    try:
        config = config_from_args(args)
        logger.info("Starting %s", args.command)
        if args.command in ("index", "run"):
            _run_index(config)
        if args.command in ("download", "run"):
            _run_download(config)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
