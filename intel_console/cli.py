from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import typer
from sqlalchemy import text
from sqlalchemy.engine import Engine

from intel_console.config import load_console_config
from intel_console.contracts import (
    AlertDto,
    AlertSeverity,
    AlertStatus,
    CreateAlertCommand,
    DeleteAlertCommand,
    GetAlertByIdQuery,
    GetAlertSummaryQuery,
    GetAllAlertsQuery,
    Request,
    UpdateAlertCommand,
)
from intel_console.db.repo import AlertRepository
from intel_console.db.session import get_session, init_db, make_engine, make_session_factory
from intel_console.export import default_export_path, write_alerts_csv
from intel_console.errors import Result
from intel_console.mediator import Mediator, build_mediator
from intel_console.observability import configure_logging, render_summary_text

app = typer.Typer(add_completion=False, help="Intel Console — alert management CLI")


def _state(ctx: typer.Context) -> Dict[str, Any]:
    return ctx.ensure_object(dict)


def _database_url(ctx: typer.Context) -> str:
    return _state(ctx).get("database_url") or load_console_config().database_url


async def _dispatch(engine: Engine, request: Request) -> Result[Any]:
    mediator: Mediator = build_mediator(AlertRepository(make_session_factory(engine)))
    return await mediator.send(request)


def _resolve_actor(actor: Optional[str]) -> str:
    value = actor or load_console_config().default_actor
    if not value or not value.strip():
        raise typer.BadParameter("An actor is required (--actor or INTEL_CONSOLE_ACTOR)")
    return value.strip()


def _send(ctx: typer.Context, request: Request) -> Any:
    engine = make_engine(_database_url(ctx))
    try:
        init_db(engine)
        result = asyncio.run(_dispatch(engine, request))
    finally:
        engine.dispose()
    if result.is_error:
        for error in result.errors:
            typer.echo(f"Error [{error.code}]: {error.description}", err=True)
        raise typer.Exit(code=1)
    return result.value


def _fmt_dt(value: Any) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _render_row(alert: AlertDto) -> str:
    return (
        f"{alert.id}  {alert.severity.value:<9}  {alert.status.value:<12}  "
        f"{_fmt_dt(alert.triggered_at)}  {alert.alert_name} ({alert.source})"
    )


def _render_detail(alert: AlertDto) -> str:
    lines = [
        f"ID:           {alert.id}",
        f"Name:         {alert.alert_name}",
        f"Description:  {alert.description}",
        f"Severity:     {alert.severity.value}",
        f"Status:       {alert.status.value}",
        f"Source:       {alert.source}",
        f"Triggered:    {_fmt_dt(alert.triggered_at)}",
        f"Acknowledged: {_fmt_dt(alert.acknowledged_at)} by {alert.acknowledged_by or '-'}",
        f"Resolved:     {_fmt_dt(alert.resolved_at)} by {alert.resolved_by or '-'}",
        f"Resolution:   {alert.resolution or '-'}",
        f"Modified:     {_fmt_dt(alert.modified_at)} by {alert.last_modified_by or '-'}",
        f"Version:      {alert.version}",
    ]
    if alert.notes:
        lines.append("Notes:")
        lines.extend(f"  {line}" for line in alert.notes.splitlines())
    return "\n".join(lines)


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


@app.callback()
def main(
    ctx: typer.Context,
    database_url: Optional[str] = typer.Option(None, help="SQLAlchemy URL (or env DATABASE_URL)"),
) -> None:
    """Alert lifecycle management against the configured database."""
    config = load_console_config()
    configure_logging(config.log_level, config.log_json)
    _state(ctx)["database_url"] = database_url


@app.command("init-db")
def init_db_command(ctx: typer.Context) -> None:
    """Create the alert tables if they do not exist."""
    engine = make_engine(_database_url(ctx))
    try:
        init_db(engine)
    finally:
        engine.dispose()
    typer.echo("Database initialized")


@app.command("db-check")
def db_check(ctx: typer.Context) -> None:
    """Check DB connectivity."""
    with get_session(_database_url(ctx)) as session:
        session.execute(text("SELECT 1"))
    typer.echo("DB OK")


@app.command("create")
def create(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Short alert label"),
    description: str = typer.Option(..., help="Alert description"),
    severity: AlertSeverity = typer.Option(AlertSeverity.warning, case_sensitive=False, help="Alert severity"),
    source: str = typer.Option(..., help="Originating system or sensor"),
) -> None:
    """Create a new alert in Active status."""
    alert_id = _send(
        ctx,
        CreateAlertCommand(alert_name=name, description=description, severity=severity, source=source),
    )
    typer.echo(alert_id)


@app.command("list")
def list_alerts(
    ctx: typer.Context,
    severity: Optional[AlertSeverity] = typer.Option(None, case_sensitive=False, help="Filter by severity"),
    status: Optional[AlertStatus] = typer.Option(None, case_sensitive=False, help="Filter by status"),
    search: Optional[str] = typer.Option(None, help="Search name, description and source"),
    take: int = typer.Option(100, help="Max alerts"),
    skip: int = typer.Option(0, help="Alerts to skip"),
    include_deleted: bool = typer.Option(False, help="Include soft-deleted alerts"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """List alerts, most recently triggered first."""
    alerts: List[AlertDto] = _send(
        ctx,
        GetAllAlertsQuery(
            severity=severity,
            status=status,
            search_text=search,
            take=take,
            skip=skip or None,
            include_deleted=include_deleted,
        ),
    )
    if as_json:
        _echo_json([a.model_dump(mode="json") for a in alerts])
        return
    if not alerts:
        typer.echo("No alerts found.")
        return
    for alert in alerts:
        typer.echo(_render_row(alert))


@app.command("show")
def show(
    ctx: typer.Context,
    alert_id: str = typer.Argument(..., help="Alert ID"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Show one alert."""
    alert: AlertDto = _send(ctx, GetAlertByIdQuery(alert_id=alert_id))
    if as_json:
        _echo_json(alert.model_dump(mode="json"))
    else:
        typer.echo(_render_detail(alert))


def _transition(
    ctx: typer.Context,
    alert_id: str,
    status: AlertStatus,
    actor: Optional[str],
    notes: Optional[str] = None,
    resolution_notes: Optional[str] = None,
) -> AlertDto:
    return _send(
        ctx,
        UpdateAlertCommand(
            alert_id=alert_id,
            new_status=status,
            updated_by=_resolve_actor(actor),
            notes=notes,
            resolution_notes=resolution_notes,
        ),
    )


@app.command("ack")
def acknowledge(
    ctx: typer.Context,
    alert_id: str = typer.Argument(..., help="Alert ID"),
    actor: Optional[str] = typer.Option(None, help="Acting user (or env INTEL_CONSOLE_ACTOR)"),
    notes: Optional[str] = typer.Option(None, help="Note to append"),
) -> None:
    """Acknowledge an active alert."""
    alert = _transition(ctx, alert_id, AlertStatus.acknowledged, actor, notes=notes)
    typer.echo(f"Alert {alert.id} acknowledged by {alert.acknowledged_by}")


@app.command("resolve")
def resolve(
    ctx: typer.Context,
    alert_id: str = typer.Argument(..., help="Alert ID"),
    notes: str = typer.Option(..., "--notes", help="Resolution notes (required)"),
    actor: Optional[str] = typer.Option(None, help="Acting user (or env INTEL_CONSOLE_ACTOR)"),
) -> None:
    """Resolve an alert."""
    alert = _transition(ctx, alert_id, AlertStatus.resolved, actor, resolution_notes=notes)
    typer.echo(f"Alert {alert.id} resolved by {alert.resolved_by}")


@app.command("escalate")
def escalate(
    ctx: typer.Context,
    alert_id: str = typer.Argument(..., help="Alert ID"),
    actor: Optional[str] = typer.Option(None, help="Acting user (or env INTEL_CONSOLE_ACTOR)"),
    notes: Optional[str] = typer.Option(None, help="Note to append"),
) -> None:
    """Escalate an alert."""
    alert = _transition(ctx, alert_id, AlertStatus.escalated, actor, notes=notes)
    typer.echo(f"Alert {alert.id} escalated")


@app.command("reactivate")
def reactivate(
    ctx: typer.Context,
    alert_id: str = typer.Argument(..., help="Alert ID"),
    actor: Optional[str] = typer.Option(None, help="Acting user (or env INTEL_CONSOLE_ACTOR)"),
    notes: Optional[str] = typer.Option(None, help="Note to append"),
) -> None:
    """Return an acknowledged alert to Active."""
    alert = _transition(ctx, alert_id, AlertStatus.active, actor, notes=notes)
    typer.echo(f"Alert {alert.id} is active again")


@app.command("update")
def update(
    ctx: typer.Context,
    alert_id: str = typer.Argument(..., help="Alert ID"),
    name: Optional[str] = typer.Option(None, "--name", help="New alert name"),
    description: Optional[str] = typer.Option(None, help="New description"),
    source: Optional[str] = typer.Option(None, help="New source"),
    severity: Optional[AlertSeverity] = typer.Option(None, case_sensitive=False, help="New severity"),
    note: Optional[str] = typer.Option(None, help="Note to append"),
    expected_version: Optional[int] = typer.Option(None, help="Fail if the alert changed since this version"),
    actor: Optional[str] = typer.Option(None, help="Acting user (or env INTEL_CONSOLE_ACTOR)"),
) -> None:
    """Edit alert fields and/or append a note."""
    alert: AlertDto = _send(
        ctx,
        UpdateAlertCommand(
            alert_id=alert_id,
            updated_by=_resolve_actor(actor),
            alert_name=name,
            description=description,
            source=source,
            severity=severity,
            notes=note,
            expected_version=expected_version,
        ),
    )
    typer.echo(f"Alert {alert.id} updated (version {alert.version})")


@app.command("delete")
def delete(
    ctx: typer.Context,
    alert_id: str = typer.Argument(..., help="Alert ID"),
    actor: Optional[str] = typer.Option(None, help="Acting user (or env INTEL_CONSOLE_ACTOR)"),
) -> None:
    """Soft-delete an alert."""
    _send(ctx, DeleteAlertCommand(alert_id=alert_id, deleted_by=_resolve_actor(actor)))
    typer.echo(f"Alert {alert_id} deleted")


@app.command("summary")
def summary(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Counts of open alerts by severity and of all alerts by status."""
    result = _send(ctx, GetAlertSummaryQuery())
    if as_json:
        _echo_json(result.model_dump(mode="json"))
    else:
        typer.echo(render_summary_text(result))


@app.command("export")
def export(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(None, help="CSV path (default output/alerts_<timestamp>.csv)"),
    severity: Optional[AlertSeverity] = typer.Option(None, case_sensitive=False, help="Filter by severity"),
    status: Optional[AlertStatus] = typer.Option(None, case_sensitive=False, help="Filter by status"),
    search: Optional[str] = typer.Option(None, help="Search name, description and source"),
    take: int = typer.Option(1000, help="Max alerts"),
) -> None:
    """Export alerts to CSV."""
    alerts = _send(
        ctx,
        GetAllAlertsQuery(severity=severity, status=status, search_text=search, take=take),
    )
    path = write_alerts_csv(alerts, output or default_export_path())
    typer.echo(f"Exported {len(alerts)} alert(s) to {path}")


if __name__ == "__main__":
    app()
