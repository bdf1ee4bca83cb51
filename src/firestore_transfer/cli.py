"""
CLI Entrypoint for Firestore Transfer

Provides command-line interface for validating service account keys,
backing up Firestore collections and uploading JSON data files.

Usage:
    firestore-transfer validate KEY_FILE [OPTIONS]
    firestore-transfer backup KEY_FILE [OPTIONS]
    firestore-transfer upload KEY_FILE DATA_FILES... [OPTIONS]
    firestore-transfer serve [OPTIONS]
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import httpx
import structlog
import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from firestore_transfer.firestore.config import TransferConfig, load_config
from firestore_transfer.firestore.errors import FirestoreTransferError
from firestore_transfer.firestore.processor import TransferProcessor, TransferProgress
from firestore_transfer.firestore.validator import VerificationResult, parse_service_account
from firestore_transfer.models import CollectionListing, DataFile, UploadReport

app = typer.Typer(
    name="firestore-transfer",
    help="Migrate JSON data into and out of Cloud Firestore over REST",
    add_completion=False,
)

console = Console()

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to settings.yaml configuration file",
    exists=True,
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Show debug logging")


def _setup(config_path: Optional[Path], verbose: bool) -> TransferConfig:
    """Configure logging and load settings."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))

    try:
        return load_config(config_path)
    except ValueError as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        raise typer.Exit(1) from e


def _read_key(key_file: Path) -> Any:
    try:
        return json.loads(key_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON format in service account file:[/] {e}")
        raise typer.Exit(1) from e


def _print_checks(result: VerificationResult) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Check")
    table.add_column("Result")

    for name, passed in vars(result.checks).items():
        table.add_row(name, "[green]passed[/]" if passed else "[red]failed[/]")

    console.print(table)

    for issue in result.errors:
        console.print(f"  [red]{issue.type}:[/] {issue.message} - {issue.details}")
    for warning in result.warnings:
        console.print(f"  [yellow]{warning.type}:[/] {warning.message} - {warning.details}")


@app.command()
def validate(
    key_file: Path = typer.Argument(..., help="Service account key JSON file", exists=True),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Validate a service account key against Google APIs.

    Checks the key structure, exchanges it for an access token, and probes
    the Firebase project, the Firestore database and the key's validity window.
    """
    settings = _setup(config, verbose)
    candidate = _read_key(key_file)

    async def run() -> VerificationResult:
        async with httpx.AsyncClient() as http:
            return await TransferProcessor(http, settings).validate(candidate)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("Validating service account...", total=None)
        result = asyncio.run(run())

    _print_checks(result)

    if not result.valid:
        console.print("\n[bold red]Service account validation failed[/]")
        raise typer.Exit(1)

    info = result.account_info or {}
    console.print("\n[bold green]Service account validated successfully[/]")
    console.print(f"  Email: {info.get('email')}")
    console.print(f"  Project: {info.get('projectId')}")
    key_info = info.get("keyInfo")
    if key_info:
        console.print(f"  Key expires in: {key_info['daysUntilExpiry']} days")


@app.command()
def backup(
    key_file: Path = typer.Argument(..., help="Service account key JSON file", exists=True),
    output: Path = typer.Option(
        Path("backup"),
        "--output",
        "-o",
        help="Directory receiving one <collection>.json per collection",
    ),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Back up every root collection of the key's project.

    Each collection is written as a JSON array of documents, each carrying
    its id under "id".
    """
    settings = _setup(config, verbose)

    try:
        key = parse_service_account(
            _read_key(key_file), settings.validation.service_account_domain
        )
    except FirestoreTransferError as e:
        console.print(f"[red]{e.message}:[/] {e.details}")
        raise typer.Exit(1) from e

    async def run() -> List[CollectionListing]:
        async with httpx.AsyncClient() as http:
            return await TransferProcessor(http, settings).backup(key)

    console.print(f"[bold blue]Backing up project:[/] {key.project_id}")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("Reading collections...", total=None)
        try:
            listings = asyncio.run(run())
        except FirestoreTransferError as e:
            console.print(f"[red]Backup failed:[/] {e.message}")
            if e.details:
                console.print(f"[dim]{e.details}[/]")
            raise typer.Exit(1) from e

    output.mkdir(parents=True, exist_ok=True)
    for listing in listings:
        path = output / f"{listing.collection}.json"
        payload = [doc.to_native() for doc in listing.documents]
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"  [green]Saved:[/] {path} ({len(listing.documents)} documents)")
        if listing.truncated:
            console.print(
                f"  [yellow]Warning:[/] {listing.collection} has more documents than were read"
            )

    console.print(f"\n[bold green]Backup complete![/] {len(listings)} collections")


@app.command()
def upload(
    key_file: Path = typer.Argument(..., help="Service account key JSON file", exists=True),
    data_files: List[Path] = typer.Argument(
        ..., help="JSON data files; each becomes the collection named after it", exists=True
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", min=1, max=500, help="Documents per batch (default 15)"
    ),
    write_mode: Optional[str] = typer.Option(
        None, "--write-mode", "-m", help="commit (atomic batches) or patch (one request per document)"
    ),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Upload JSON data files into Firestore collections.

    The key is fully validated first; nothing is written unless it passes.
    """
    settings = _setup(config, verbose)
    if write_mode is not None:
        settings.writer.write_mode = write_mode
        try:
            settings.validate()
        except ValueError as e:
            console.print(f"[red]{e}[/]")
            raise typer.Exit(1) from e

    candidate = _read_key(key_file)
    files = [
        DataFile(filename=path.name, content=path.read_bytes())
        for path in data_files
    ]

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Validating service account...", total=None)

        def update_progress(prog: TransferProgress) -> None:
            desc = (
                f"{(prog.current_stage or 'starting').capitalize()}: {prog.current_file} "
                f"({prog.processed_files}/{prog.total_files})"
            )
            progress.update(task, description=desc)

        async def run() -> Optional[UploadReport]:
            async with httpx.AsyncClient() as http:
                processor = TransferProcessor(http, settings)
                result = await processor.validate(candidate)
                if not result.valid or result.session is None:
                    _print_checks(result)
                    return None
                return await processor.upload_files(
                    result.session,
                    files,
                    batch_size=batch_size,
                    progress_callback=update_progress,
                )

        try:
            report = asyncio.run(run())
        except FirestoreTransferError as e:
            console.print(f"[red]Upload failed:[/] {e.message}")
            raise typer.Exit(1) from e

    if report is None:
        console.print("[bold red]Service account validation failed; nothing was uploaded[/]")
        raise typer.Exit(1)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Collection")
    table.add_column("Uploaded", justify="right")
    table.add_column("Result")
    for result in report.results:
        status = "[green]ok[/]" if result.success else f"[red]{result.error}[/]"
        table.add_row(
            result.collection,
            f"{result.documents_uploaded}/{result.total_documents}",
            status,
        )
    console.print(table)

    summary = report.summary
    console.print("\n[bold]Summary:[/]")
    console.print(f"  Files: {summary.successful_files}/{summary.total_files} succeeded")
    console.print(f"  Documents uploaded: {summary.total_documents_uploaded}")

    if summary.failed_files > 0 and summary.successful_files == 0:
        raise typer.Exit(1)
    elif summary.failed_files > 0:
        raise typer.Exit(2)  # Partial success


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8080, "--port", "-p", help="Port to run the HTTP service on"),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Run the HTTP service (validate, backup and upload endpoints).
    """
    import uvicorn

    from firestore_transfer.firestore.service import create_app

    settings = _setup(config, verbose)
    console.print(f"[bold blue]Starting Firestore transfer service on {host}:{port}...[/]")
    uvicorn.run(create_app(settings), host=host, port=port)


if __name__ == "__main__":
    app()
