import datetime
import logging

import typer
from rich.console import Console
from rich.table import Table

from minefilings.config import ConfigurationError, settings
from minefilings.db.models import create_db_and_tables
from minefilings.db.session import get_session_context
from minefilings.ingestion.models import DiscoveryQuery, ProgressEvent, Status
from minefilings.pipeline import ExtractionPipeline, RunReport

app = typer.Typer(help="Extract mining project economics from regulatory filings.")
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_date(value: str | None, option: str) -> datetime.date | None:
    if value is None:
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"{option} must be YYYY-MM-DD, got {value!r}") from None


def _print_progress(event: ProgressEvent) -> None:
    if event.status is Status.OK and event.stage != "persist":
        return
    style = {"ok": "green", "skipped": "yellow", "failed": "red"}[event.status.value]
    console.print(f"[{style}]{event.stage}[/{style}] {event.filing_id}: {event.message}")


def _render_report(report: RunReport) -> None:
    table = Table("Stage", "Count", title="Run summary")
    table.add_row("Discovered", str(report.discovered))
    table.add_row("Fetched", str(report.fetched))
    table.add_row("Accepted", str(report.accepted))
    table.add_row("Rejected (below threshold)", str(report.rejected))
    table.add_row("Persisted", str(report.persisted))
    console.print(table)

    failures = report.failures_by_category()
    if failures:
        failure_table = Table("Category", "Count", title="Skipped / failed")
        for category, count in failures.items():
            failure_table.add_row(category, str(count))
        console.print(failure_table)


@app.command()
def run(
    limit: int | None = typer.Option(None, "--limit", min=1, help="Max filings to process."),
    symbol: list[str] | None = typer.Option(
        None, "--symbol", help="Ticker symbol or numeric CIK; repeatable."
    ),
    date_from: str | None = typer.Option(None, "--date-from", help="YYYY-MM-DD"),
    date_to: str | None = typer.Option(None, "--date-to", help="YYYY-MM-DD"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """
    Discover filings, extract project economics and upsert them into the projects table.
    """
    _setup_logging(verbose)
    symbols = symbol or []
    query = DiscoveryQuery(
        ciks=[s for s in symbols if s.isdigit()],
        symbols=[s.upper() for s in symbols if not s.isdigit()],
        date_from=_parse_date(date_from, "--date-from"),
        date_to=_parse_date(date_to, "--date-to"),
        limit=limit,
    )

    try:
        pipeline = ExtractionPipeline.from_settings(settings, on_progress=_print_progress)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(code=1) from None

    console.print("Starting filing extraction run...")
    with get_session_context() as db:
        report = pipeline.run(query, db)
    _render_report(report)


@app.command()
def init_db():
    """Initialize the database and create tables."""
    create_db_and_tables()
    console.print("[green]Database initialized successfully.[/green]")


if __name__ == "__main__":
    app()
