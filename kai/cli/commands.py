"""CLI commands for kAI."""

import asyncio
import json
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from kai import __logo__, __version__

app = typer.Typer(
    name="kai",
    help=f"{__logo__} kAI - intent detection and action dispatch",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} kAI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show kAI runtime logs"),
):
    """kAI - intent detection and action dispatch."""
    if logs:
        logger.enable("kai")
    else:
        logger.disable("kai")


def _print_json(data: dict) -> None:
    console.print_json(json.dumps(data, ensure_ascii=False, default=str))


# ============================================================================
# Detection
# ============================================================================


@app.command()
def detect(
    message: str = typer.Argument(..., help="Message to classify"),
    file: list[Path] = typer.Option(None, "--file", "-f", help="Attach a file (repeatable)"),
    tenant: str = typer.Option("", "--tenant", help="Tenant id (needed to execute)"),
    workspace: str = typer.Option("", "--workspace", help="Workspace id (needed to execute)"),
    execute: bool = typer.Option(False, "--execute", help="Execute the detected action after confirmation"),
):
    """Detect the action behind MESSAGE and show its preview."""
    from kai.actions.types import Attachment, IntentContext
    from kai.errors import EmptyInputError
    from kai.pipeline import ActionPipeline
    from kai.storage.database import dispose_engine

    attachments = [Attachment.from_path(p) for p in (file or [])]
    for a in attachments:
        if a.path is not None and not a.path.exists():
            console.print(f"[red]File not found: {a.path}[/red]")
            raise typer.Exit(1)

    async def run() -> None:
        pipeline = ActionPipeline.from_settings()
        try:
            try:
                pending = await pipeline.detect(message, attachments, IntentContext(tenant_id=tenant or None))
            except EmptyInputError as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(1) from e

            action = pending.action
            table = Table(title=f"{__logo__} Detected action", show_header=False)
            table.add_column("Field", style="cyan")
            table.add_column("Value")
            table.add_row("type", action.type.value)
            table.add_row("confidence", f"{action.confidence:.2f}")
            table.add_row("requires confirmation", "yes" if action.requires_confirmation else "no")
            for key, value in action.params.items():
                table.add_row(f"param: {key}", value)
            console.print(table)
            if pending.preview is not None:
                _print_json(pending.preview.to_dict())

            if not execute:
                return
            if not tenant or not workspace:
                console.print("[red]--tenant and --workspace are required with --execute[/red]")
                raise typer.Exit(1)
            if action.requires_confirmation and not typer.confirm("Execute this action?"):
                console.print("[dim]Cancelled[/dim]")
                return
            with console.status("[dim]Executing...[/dim]", spinner="dots"):
                result = await pipeline.confirm(pending, tenant, workspace)
            style = "green" if result.success else "red"
            console.print(f"[{style}]{result.message}[/{style}]")
            if result.data:
                _print_json(result.data)
        finally:
            await pipeline.aclose()
            await dispose_engine()

    asyncio.run(run())


# ============================================================================
# Analysis
# ============================================================================


@app.command("analyze-csv")
def analyze_csv(
    path: Path = typer.Argument(..., help="CSV export to analyze"),
):
    """Detect the platform and metrics of a CSV export."""
    from kai.actions.types import Attachment
    from kai.analysis.tabular import TabularClassifier
    from kai.errors import EmptyInputError
    from kai.settings import get_settings

    if not path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)

    classifier = TabularClassifier(sample_rows=get_settings().csv_sample_rows)
    try:
        result = asyncio.run(classifier.analyze_csv(Attachment.from_path(path)))
    except EmptyInputError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    console.print(f"{__logo__} [bold]{result.platform.value}[/bold] ({result.confidence:.2f}), "
                  f"{result.preview.total_rows} rows")
    preview = result.preview
    table = Table(*preview.columns)
    for row in preview.sample_data:
        table.add_row(*(row.get(c, "") for c in preview.columns))
    console.print(table)
    console.print(f"Metrics: {', '.join(preview.metrics_detected) or '[dim]none[/dim]'}")
    if preview.date_range is not None:
        console.print(f"Dates (sampled): {preview.date_range.start} → {preview.date_range.end}")


@app.command("analyze-url")
def analyze_url(
    url: str = typer.Argument(..., help="Link to analyze"),
):
    """Categorise a link and extract its content."""
    from kai.analysis.links import LinkClassifier

    async def run():
        classifier = LinkClassifier.from_settings()
        return await classifier.analyze_url(url)

    result = asyncio.run(run())
    if result.degraded:
        console.print("[yellow]Extraction failed; showing a minimal result[/yellow]")
    _print_json(result.to_dict())


# ============================================================================
# Storage
# ============================================================================


@app.command("init-db")
def init_db():
    """Create the kAI tables in the configured database."""
    from kai.settings import get_settings
    from kai.storage.database import create_all_tables, dispose_engine

    async def run():
        try:
            await create_all_tables()
        finally:
            await dispose_engine()

    asyncio.run(run())
    console.print(f"[green]✓[/green] Tables created in {get_settings().database_url.split('@')[-1]}")


@app.command()
def imports(
    tenant: str = typer.Argument(..., help="Tenant id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries"),
):
    """Show the most recent metrics imports of a tenant."""
    from kai.storage.database import dispose_engine, get_session_factory
    from kai.storage.repository import ImportHistoryRepo

    async def run():
        try:
            async with get_session_factory()() as session:
                return await ImportHistoryRepo(session).list_recent(tenant, limit=limit)
        finally:
            await dispose_engine()

    entries = asyncio.run(run())
    if not entries:
        console.print("[dim]No imports yet[/dim]")
        return

    table = Table(title=f"{__logo__} Imports for {tenant}")
    table.add_column("When", style="cyan")
    table.add_column("Platform")
    table.add_column("Rows", justify="right")
    table.add_column("File")
    table.add_column("Status")
    for e in entries:
        table.add_row(
            e.created_at.strftime("%Y-%m-%d %H:%M"), e.platform, str(e.records_count), e.file_name, e.status,
        )
    console.print(table)


if __name__ == "__main__":
    app()
