"""
Audit Pipeline CLI - Command-line interface.

Log listing, statistics, exports, integrity checks and scheduled retention
from the terminal.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from audit_pipeline import __version__
from audit_pipeline.config import AuditSettings, configure_logging
from audit_pipeline.core.exceptions import AuditPipelineError
from audit_pipeline.events.models import (
    ActivityCategory,
    ActivitySeverity,
    EventFilter,
    ExportFormat,
    StatisticsFilters,
    StatisticsPeriod,
)
from audit_pipeline.services import AuditServices

app = typer.Typer(
    name="audit-pipeline",
    help="Audit Pipeline - ingestion, retention and export of audit events",
    no_args_is_help=True,
)
retention_app = typer.Typer(help="Retention policy: archive, purge and compress", no_args_is_help=True)
app.add_typer(retention_app, name="retention")

console = Console()


def _services(db: Optional[Path]) -> AuditServices:
    """Build the pipeline from the environment, exiting cleanly on bad config."""
    try:
        overrides = {"db_path": db} if db is not None else {}
        settings = AuditSettings.from_env(**overrides)
    except AuditPipelineError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)

    configure_logging(settings.log_level)
    return AuditServices.build(settings)


def _fail(message: str, services: AuditServices) -> None:
    console.print(f"[red]{message}[/red]")
    services.close()
    raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"Audit Pipeline v{__version__}")


@app.command()
def stats(
    period: StatisticsPeriod = typer.Option(StatisticsPeriod.MONTH, "--period", "-p", help="Grouping period"),
    date_from: Optional[datetime] = typer.Option(None, "--from", help="Inclusive lower bound"),
    date_to: Optional[datetime] = typer.Option(None, "--to", help="Inclusive upper bound"),
    db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)"),
):
    """Show event counts grouped by period."""
    services = _services(db)
    result = services.analytics.get_statistics(
        StatisticsFilters(period=period, date_from=date_from, date_to=date_to)
    )
    if not result.success:
        _fail(f"{result.message}: {result.error}", services)

    table = Table(title=f"Activity by {period.value}")
    table.add_column("Period", style="cyan")
    table.add_column("Events", justify="right", style="green")
    for row in result.data["stats"]:
        table.add_row(row["period_value"], str(row["count"]))

    console.print(table)
    services.close()


@app.command()
def dashboard(db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)")):
    """Show totals, success rate and breakdowns."""
    services = _services(db)
    result = services.analytics.get_dashboard_data()
    if not result.success:
        _fail(f"{result.message}: {result.error}", services)

    data = result.data
    console.print(
        Panel.fit(
            f"[bold blue]Audit Dashboard[/bold blue]\n"
            f"Total events: {data['total_events']}\n"
            f"Success rate: {data['success_rate']:.1%}",
        )
    )

    for title, breakdown in (("Categories", data["categories"]), ("Severity", data["severity_breakdown"])):
        table = Table(title=title)
        table.add_column("Value", style="cyan")
        table.add_column("Events", justify="right", style="green")
        for key, count in breakdown.items():
            table.add_row(key, str(count))
        console.print(table)

    if data["recent_trend"]:
        trend = Table(title="Recent trend")
        trend.add_column("Date", style="cyan")
        trend.add_column("Events", justify="right")
        for point in data["recent_trend"]:
            trend.add_row(point["date"], str(point["count"]))
        console.print(trend)

    services.close()


@app.command()
def anomaly(
    user_id: Optional[int] = typer.Option(None, "--user", "-u", help="Scope to one user"),
    window_hours: float = typer.Option(1.0, "--window", "-w", help="Observed window in hours"),
    multiplier: float = typer.Option(3.0, "--multiplier", "-m", help="Threshold multiplier"),
    db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)"),
):
    """Check recent volume against the trailing baseline. Exits 1 when anomalous."""
    services = _services(db)
    result = services.analytics.detect_anomaly(user_id, window_hours, multiplier)
    if not result.success:
        _fail(f"{result.message}: {result.error}", services)

    data = result.data
    verdict = "[red]ANOMALOUS[/red]" if data["anomalous"] else "[green]normal[/green]"
    console.print(f"Observed: {data['value']}  Expected: {data['expected']:.2f}  Verdict: {verdict}")
    services.close()

    if data["anomalous"]:
        raise typer.Exit(1)


@app.command()
def logs(
    user_id: Optional[int] = typer.Option(None, "--user", "-u", help="Show one user's history"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Case-insensitive text search"),
    page: int = typer.Option(1, "--page", help="1-based page number"),
    limit: int = typer.Option(50, "--limit", "-n", help="Page size, capped at 1000"),
    db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)"),
):
    """List stored activity logs, newest first."""
    services = _services(db)
    filters = EventFilter(user_id=user_id)
    if search is not None:
        result = services.retrieval.search_activities(search, filters, page=page, limit=limit)
    elif user_id is not None:
        result = services.retrieval.get_user_activity_history(user_id, page=page, limit=limit)
    else:
        result = services.retrieval.get_activity_logs(filters, page=page, limit=limit)
    if not result.success:
        _fail(f"{result.message}: {result.error}", services)

    pagination = result.data.pagination
    table = Table(title=f"Activity logs (page {pagination.page} of {max(pagination.total_pages, 1)})")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Created", style="cyan")
    table.add_column("User", justify="right")
    table.add_column("Action", style="green")
    table.add_column("Severity")
    table.add_column("Description")
    for event in result.data.events:
        table.add_row(
            str(event.id),
            event.created_at.isoformat() if event.created_at else "",
            str(event.user_id) if event.user_id is not None else "",
            event.action,
            event.severity.value,
            event.description or "",
        )

    console.print(table)
    console.print(f"{pagination.total} matching events")
    services.close()


@app.command()
def export(
    output: Path = typer.Argument(..., help="Output file"),
    fmt: ExportFormat = typer.Option(ExportFormat.CSV, "--format", "-f", help="Output format"),
    user_id: Optional[int] = typer.Option(None, "--user", "-u", help="Filter by user"),
    date_from: Optional[datetime] = typer.Option(None, "--from", help="Inclusive lower bound"),
    date_to: Optional[datetime] = typer.Option(None, "--to", help="Inclusive upper bound"),
    severity: Optional[ActivitySeverity] = typer.Option(None, "--severity", help="Filter by severity"),
    category: Optional[ActivityCategory] = typer.Option(None, "--category", help="Filter by category"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Rows per batch"),
    include_metadata: bool = typer.Option(False, "--metadata", help="Include redacted metadata"),
    db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)"),
):
    """Export activity logs to a file."""
    services = _services(db)
    filters = EventFilter(
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        severity=severity,
        category=category,
    )

    try:
        result = services.exporter.export(fmt, filters, batch_size, include_metadata=include_metadata)
    except AuditPipelineError as e:
        _fail(f"Export failed: {e}", services)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.buffer)
    console.print(
        f"[green]Exported {result.total_rows} rows[/green] "
        f"({result.byte_length} bytes, {result.duration_ms:.0f} ms) to {output}"
    )
    services.close()


@app.command()
def verify(
    date_from: Optional[datetime] = typer.Option(None, "--from", help="Inclusive lower bound"),
    date_to: Optional[datetime] = typer.Option(None, "--to", help="Inclusive upper bound"),
    db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)"),
):
    """Validate id ordering and timestamps. Exits 1 on failure."""
    services = _services(db)
    try:
        valid = services.retention.validate_integrity(date_from, date_to)
    except AuditPipelineError as e:
        _fail(f"Integrity check failed: {e}", services)

    services.close()
    if valid:
        console.print("[green]Integrity check passed[/green]")
    else:
        console.print("[red]Integrity check failed[/red]")
        raise typer.Exit(1)


@retention_app.command("archive")
def retention_archive(
    age_days: Optional[int] = typer.Option(None, "--age-days", help="Override AUDIT_ARCHIVE_AGE_DAYS"),
    db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)"),
):
    """Archive old events into gzip files."""
    services = _services(db)
    try:
        paths = services.retention.archive_older_than(age_days)
    except AuditPipelineError as e:
        _fail(f"Archive failed: {e}", services)

    if not paths:
        console.print("[yellow]No events eligible for archival[/yellow]")
    for path in paths:
        console.print(f"[green]Archived:[/green] {path}")
    services.close()


@retention_app.command("purge")
def retention_purge(
    age_days: Optional[int] = typer.Option(None, "--age-days", help="Override AUDIT_DELETE_AGE_DAYS"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)"),
):
    """Delete expired events."""
    services = _services(db)
    days = services.settings.delete_age_days if age_days is None else age_days
    if not yes and not typer.confirm(f"Delete events older than {days} days?"):
        services.close()
        raise typer.Exit(1)

    try:
        deleted = services.retention.delete_expired(days)
    except AuditPipelineError as e:
        _fail(f"Delete failed: {e}", services)

    console.print(f"[green]Deleted {deleted} events[/green]")
    services.close()


@retention_app.command("compress")
def retention_compress(
    age_days: Optional[int] = typer.Option(None, "--age-days", help="Override AUDIT_COMPRESS_THRESHOLD_DAYS"),
    db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)"),
):
    """Flag old events as compressed."""
    services = _services(db)
    try:
        updated = services.retention.mark_compressed(age_days)
    except AuditPipelineError as e:
        _fail(f"Compression bookkeeping failed: {e}", services)

    console.print(f"[green]Marked {updated} events as compressed[/green]")
    services.close()


@retention_app.command("run")
def retention_run(db: Optional[Path] = typer.Option(None, "--db", help="Event store path (default: AUDIT_DB_PATH)")):
    """Run archive, purge and compress in order. Exits 1 if any stage fails."""
    services = _services(db)
    report = services.retention.run_cycle()
    services.close()

    table = Table(title="Retention cycle")
    table.add_column("Stage", style="cyan")
    table.add_column("Result", justify="right")
    table.add_row("Archive files", str(len(report.archived_files)))
    table.add_row("Archived rows", str(report.archived_rows))
    table.add_row("Deleted", str(report.deleted_count))
    table.add_row("Compressed", str(report.compressed_count))
    console.print(table)

    for error in report.errors:
        console.print(f"[red]{error}[/red]")
    if not report.success:
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn

    console.print(f"[bold blue]Audit Pipeline API[/bold blue] on http://{host}:{port}")
    uvicorn.run("audit_pipeline.api.app:create_app", host=host, port=port, factory=True)


if __name__ == "__main__":
    app()
