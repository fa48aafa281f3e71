"""Deck importer CLI application."""

import asyncio
from datetime import UTC, datetime

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from packages.common.config import Settings, load_settings
from packages.common.exceptions import ConfigurationError, DeckImportError
from packages.common.logging import configure_logging

app = typer.Typer(
    name="deck-importer",
    help="Import Anki deck exports into the vocabulary trainer",
    no_args_is_help=True,
)

console = Console()

VERSION = "0.1.0"


def _settings(
    store: str | None,
    api_url: str | None,
    frequency: str | None = None,
    sheet: int | None = None,
    batch_size: int | None = None,
) -> Settings:
    """Apply command-line overrides on top of environment settings."""
    try:
        settings = load_settings(
            store_path=store,
            api_url=api_url,
            frequency_path=frequency,
            frequency_sheet_index=sheet,
            batch_size=batch_size,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1) from None
    if store is not None and api_url is None:
        # An explicit local store wins over an API URL from the environment
        settings = settings.model_copy(update={"api_url": None})
    configure_logging(debug=settings.debug)
    return settings


def _format_ms(value: object) -> str:
    if not isinstance(value, int | float):
        return "never"
    return datetime.fromtimestamp(value / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


StoreOption = typer.Option(None, "--store", help="SQLite file for the local card store")
ApiUrlOption = typer.Option(None, "--api-url", help="REST backend URL (overrides --store)")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"deck-importer {VERSION}")


@app.command("import")
def import_deck(
    source: str = typer.Argument(..., help="Path or URL of a .apkg/.colpkg file"),
    store: str | None = StoreOption,
    api_url: str | None = ApiUrlOption,
    frequency: str | None = typer.Option(
        None,
        "--frequency",
        "-f",
        help="Word frequency spreadsheet (.xlsx)",
    ),
    sheet: int | None = typer.Option(
        None,
        "--sheet",
        help="Zero-based sheet index of the frequency list",
    ),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        help="Cards per storage batch",
    ),
) -> None:
    """Import a deck, replacing cards with the same note ID."""
    settings = _settings(store, api_url, frequency, sheet, batch_size)
    asyncio.run(_import_async(source, settings))


async def _import_async(source: str, settings: Settings) -> None:
    """Async import implementation."""
    from packages.importer.service import ImportService
    from packages.storage import create_sink

    sink = create_sink(settings)
    service = ImportService(sink, settings)

    console.print(f"Importing from: {source}")
    try:
        with Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=console,
        ) as bar:
            task = bar.add_task("Starting...", total=100)
            result = await service.import_deck(
                source,
                lambda percent, message: bar.update(task, completed=percent, description=message),
            )
    except DeckImportError as e:
        console.print(f"[red]Import error:[/red] {e}")
        raise typer.Exit(1) from None
    finally:
        await sink.close()

    table = Table(title="Deck Import")
    table.add_column("Entity", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Cards", str(result.cards))
    table.add_row("Physical cards", str(result.physical_cards))
    table.add_row("Reviews", str(result.reviews))
    table.add_row("Media files", str(result.media_files))
    table.add_row("Ranked cards", str(result.ranked_cards))
    table.add_row("Batches", str(result.batches))
    table.add_row("Duration (ms)", str(result.duration_ms))

    console.print(table)


@app.command("sync-stats")
def sync_stats(
    source: str = typer.Argument(..., help="Path or URL of a .apkg/.colpkg file"),
    store: str | None = StoreOption,
    api_url: str | None = ApiUrlOption,
) -> None:
    """Update review history and scheduling of already imported cards."""
    settings = _settings(store, api_url)
    asyncio.run(_sync_stats_async(source, settings))


async def _sync_stats_async(source: str, settings: Settings) -> None:
    """Async stats sync implementation."""
    from packages.importer.service import ImportService
    from packages.storage import create_sink

    sink = create_sink(settings)
    service = ImportService(sink, settings)

    console.print(f"Syncing stats from: {source}")
    try:
        result = await service.sync_stats(source)
    except DeckImportError as e:
        console.print(f"[red]Sync error:[/red] {e}")
        raise typer.Exit(1) from None
    finally:
        await sink.close()

    table = Table(title="Stats Sync")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Cards updated", str(result.cards_updated))
    table.add_row("Not in store", str(result.cards_missing))
    table.add_row("Reviews", str(result.reviews))
    table.add_row("Duration (ms)", str(result.duration_ms))

    console.print(table)

    if result.cards_missing:
        console.print(
            f"[yellow]Warning:[/yellow] {result.cards_missing} notes are not imported yet; "
            "run a full import to add them"
        )


@app.command()
def history(
    store: str | None = StoreOption,
    api_url: str | None = ApiUrlOption,
) -> None:
    """Show when the last import and stats sync ran."""
    settings = _settings(store, api_url)
    asyncio.run(_history_async(settings))


async def _history_async(settings: Settings) -> None:
    """Async history implementation."""
    from packages.importer.service import ImportService
    from packages.storage import LAST_ANKI_SYNC, LAST_FULL_IMPORT, TOTAL_CARDS, create_sink

    sink = create_sink(settings)
    try:
        data = await ImportService(sink, settings).get_import_history()
    except DeckImportError as e:
        console.print(f"[red]History error:[/red] {e}")
        raise typer.Exit(1) from None
    finally:
        await sink.close()

    table = Table(title="Import History")
    table.add_column("Item", style="cyan")
    table.add_column("Value", justify="right", style="green")

    table.add_row("Last full import", _format_ms(data[LAST_FULL_IMPORT]))
    table.add_row("Last Anki sync", _format_ms(data[LAST_ANKI_SYNC]))
    table.add_row("Total cards", str(data[TOTAL_CARDS] or 0))

    console.print(table)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
