from __future__ import annotations

import argparse
import asyncio
import subprocess
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .core import db
from .core.config import Settings, get_settings
from .core.http import create_async_client
from .core.logging import configure_logging
from .core.storage import get_storage
from .media import probe_duration
from .services import bulk
from .services.intake_service import IntakeService
from .workers import tasks
from .workers.upload_processor import UploadProcessor

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    configure_logging(settings.log_level)
    args.func(args, settings)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="adreel ingestion and processing CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    worker_parser = subparsers.add_parser("worker", help="Run the upload processor loop")
    worker_parser.add_argument("--once", action="store_true", help="Process a single batch and exit")
    worker_parser.set_defaults(func=_cmd_worker)

    ingest_parser = subparsers.add_parser("ingest", help="Discover candidates from the configured feeds")
    ingest_parser.add_argument("--source", action="append", dest="sources", help="Feed URL (repeatable)")
    ingest_parser.add_argument("--max-items", type=int, default=None, help="Candidates to ingest per run")
    ingest_parser.set_defaults(func=_cmd_ingest)

    sweep_parser = subparsers.add_parser("sweep", help="Run due repost/refresh jobs once")
    sweep_parser.set_defaults(func=_cmd_sweep)

    probe_parser = subparsers.add_parser("probe", help="Print the rounded duration of a media file")
    probe_parser.add_argument("file", help="Path to the source media file")
    probe_parser.set_defaults(func=_cmd_probe)

    bulk_parser = subparsers.add_parser("bulk-upload", help="Upload a folder of MP4s and create catalog entries")
    bulk_parser.add_argument("--dir", default="videos", help="Folder with .mp4 files (default: ./videos)")
    bulk_parser.add_argument("--bucket", default=None, help="Target bucket (default: the published bucket)")
    long_group = bulk_parser.add_mutually_exclusive_group()
    long_group.add_argument("--trim", action="store_true", help="Trim files longer than the limit")
    long_group.add_argument("--skip-long", action="store_true", help="Skip files longer than the limit (default)")
    bulk_parser.set_defaults(func=_cmd_bulk_upload)

    export_parser = subparsers.add_parser("export-short", help="Download published short entries to a folder")
    export_parser.add_argument("--out", default="videos", help="Destination folder (default: ./videos)")
    export_parser.add_argument("--limit", type=int, default=6, help="Maximum entries to download")
    export_parser.set_defaults(func=_cmd_export_short)

    requeue_parser = subparsers.add_parser("requeue", help="Clear the error on an intake record so it is retried")
    requeue_parser.add_argument("upload_id", help="Intake record identifier")
    requeue_parser.set_defaults(func=_cmd_requeue)
    return parser


def _cmd_worker(args: argparse.Namespace, settings: Settings) -> None:
    async def _run() -> None:
        async with db.lifespan(settings) as database, create_async_client(settings) as client:
            processor = UploadProcessor(settings, database.session_factory, get_storage(settings), client)
            if args.once:
                handled = await processor.poll_once()
                console.print(f"[green]Processed {handled} intake record(s)[/]")
                return
            await processor.run_forever()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[dim]Worker stopped[/]")


def _cmd_ingest(args: argparse.Namespace, settings: Settings) -> None:
    ingested = asyncio.run(tasks.ingest(args.sources, args.max_items))
    table = Table(title=f"Ingested {len(ingested)} candidate(s)")
    table.add_column("ad_id")
    table.add_column("duration")
    table.add_column("source_url")
    for row in ingested:
        table.add_row(row["ad_id"] or "-", str(row["duration_sec"] or "?"), row["source_url"])
    console.print(table)


def _cmd_sweep(args: argparse.Namespace, settings: Settings) -> None:
    report = asyncio.run(tasks.sweep())
    console.print_json(data=report)


def _cmd_probe(args: argparse.Namespace, settings: Settings) -> None:
    media_path = Path(args.file).expanduser().resolve()
    if not media_path.exists():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    duration = probe_duration(media_path)
    if duration is None:
        console.print("[red]Duration unavailable[/]")
        sys.exit(3)
    verdict = "[green]short-form[/]" if duration <= settings.max_duration_s else "[yellow]too long[/]"
    console.print(f"{media_path.name}: {duration}s ({verdict})")


def _cmd_bulk_upload(args: argparse.Namespace, settings: Settings) -> None:
    directory = Path(args.dir).expanduser().resolve()
    if not directory.is_dir():
        console.print(f"[red]Directory not found: {directory}[/]")
        sys.exit(2)

    async def _run() -> bulk.BulkResult:
        async with db.lifespan(settings) as database:
            return await bulk.bulk_upload(
                settings,
                database.session_factory,
                get_storage(settings),
                directory,
                bucket=args.bucket,
                trim=args.trim,
            )

    result = asyncio.run(_run())
    console.print(
        f"[green]Created {len(result.created)}[/], skipped {len(result.skipped)}, [red]failed {len(result.failed)}[/]"
    )


def _cmd_export_short(args: argparse.Namespace, settings: Settings) -> None:
    out_dir = Path(args.out).expanduser().resolve()

    async def _run() -> list[Path]:
        async with db.lifespan(settings) as database, create_async_client(settings) as client:
            return await bulk.export_short(
                database.session_factory,
                client,
                out_dir,
                limit=args.limit,
                max_duration_s=settings.max_duration_s,
            )

    saved = asyncio.run(_run())
    for path in saved:
        console.print(f"[green]Saved[/] {path}")
    if not saved:
        console.print("[dim]No eligible ads found[/]")


def _cmd_requeue(args: argparse.Namespace, settings: Settings) -> None:
    async def _run():
        async with db.lifespan(settings) as database, create_async_client(settings) as client:
            async with database.session_factory() as session:
                service = IntakeService(settings, get_storage(settings), session, client)
                return await service.requeue(args.upload_id)

    upload = asyncio.run(_run())
    if upload is None:
        console.print(f"[red]Intake record not found: {args.upload_id}[/]")
        sys.exit(2)
    if upload.processed:
        console.print(f"[yellow]{upload.id} is already processed[/]")
        return
    console.print(f"[green]{upload.id} requeued[/]")


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    checks = {
        "ffmpeg": ["ffmpeg", "-version"],
        "ffprobe": ["ffprobe", "-version"],
    }
    results = {}
    for label, cmd in checks.items():
        try:
            subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
            results[label] = True
        except (OSError, subprocess.CalledProcessError):
            results[label] = False

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg and make sure it is on PATH.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
