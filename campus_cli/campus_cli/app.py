"""campus-billing CLI -- Typer-based operator interface.

Provides the commands an external scheduler (cron) and operators run
against the billing database directly: table creation, operator
bootstrap, the daily bill generation pass, the reminder list and the
financial rollup.  Human-readable output goes to *stderr* via Rich; with
``--json`` the machine-readable result goes to *stdout*.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any, TypeVar

import typer
from campus_core.exceptions import CampusBillingError
from campus_core.state.database import create_tables, get_engine, get_session, get_session_factory
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from campus_cli.display import display_generation_report, display_reminders, display_rollup

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="campus-billing",
    help="Campus Billing - rent bills, reminders and rollups for hostel operators",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_database_url: str | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Database URL; defaults to the API setting.",
        envvar="CAMPUS_DATABASE_URL",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO level to stderr."),
) -> None:
    """Global options applied to every command."""
    global _json_output, _database_url  # noqa: PLW0603
    _json_output = json_mode
    _database_url = database_url
    if verbose:
        logging.basicConfig(level=logging.INFO, stream=sys.stderr)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings():
    from campus_api.config import load_api_settings

    return load_api_settings()


def _parse_date(value: str, label: str) -> date:
    """Parse a YYYY-MM-DD string into a :class:`date`, raising on failure."""
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        console.print(f"[red]Invalid {label} date '{value}': {exc}[/red]")
        raise typer.Exit(code=3) from exc


def _run_with_db(work: Callable[[AsyncEngine], Awaitable[T]]) -> T:
    """Open an engine for the configured database, run *work*, dispose.

    Storage and domain errors are reported on the console and turned into
    exit code 3.
    """
    url = _database_url or _settings().database_url

    async def _main() -> T:
        engine = get_engine(url)
        try:
            return await work(engine)
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_main())
    except CampusBillingError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(code=3) from exc
    except SQLAlchemyError as exc:
        console.print(f"[red]Database error: {exc}[/red]")
        raise typer.Exit(code=3) from exc


def _emit_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")


# ---------------------------------------------------------------------------
# init-db
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db() -> None:
    """Create every billing table that does not yet exist."""

    async def _work(engine: AsyncEngine) -> None:
        await create_tables(engine)

    _run_with_db(_work)
    if _json_output:
        _emit_json({"initialised": True})
    else:
        console.print("[green]Database tables created/verified.[/green]")


# ---------------------------------------------------------------------------
# create-operator
# ---------------------------------------------------------------------------


@app.command("create-operator")
def create_operator(
    full_name: str = typer.Argument(..., help="Operator's full name."),
    email: str | None = typer.Option(None, "--email", help="Contact email."),
    phone: str | None = typer.Option(None, "--phone", help="Contact phone."),
) -> None:
    """Register an operator and print its id.

    Notification consent starts off; turn it on through the API settings
    endpoint once the operator agrees.
    """
    from campus_api.services.operator_service import OperatorService

    async def _work(engine: AsyncEngine) -> dict[str, Any]:
        async with get_session(engine) as session:
            return await OperatorService(session).register(full_name, email=email, phone=phone)

    operator = _run_with_db(_work)
    if _json_output:
        _emit_json(operator)
    else:
        console.print(f"[green]Created operator[/green] [bold]{operator['operator_id']}[/bold]")


# ---------------------------------------------------------------------------
# generate-bills
# ---------------------------------------------------------------------------


@app.command("generate-bills")
def generate_bills(
    run_date: str | None = typer.Option(
        None,
        "--date",
        help="Run as if today were this date (YYYY-MM-DD). Defaults to today in the billing timezone.",
    ),
    operator_id: str | None = typer.Option(
        None,
        "--operator",
        help="Only generate for this operator's tenants. Defaults to every operator.",
    ),
    show_all: bool = typer.Option(False, "--all", help="Also list tenants whose billing day is not today."),
) -> None:
    """Run one bill generation pass.

    Safe to repeat: tenants already billed for the cycle are reported as
    ``exists``.  Exits with code 1 when any tenant failed.
    """
    from campus_api.services.bill_generator import BillGenerator
    from campus_core.billing.anchoring import today_in

    settings = _settings()
    day = _parse_date(run_date, "run") if run_date else today_in(settings.billing_timezone)

    async def _work(engine: AsyncEngine):
        generator = BillGenerator(get_session_factory(engine), settings.grace_period_days, operator_id=operator_id)
        return await generator.generate(day)

    report = _run_with_db(_work)

    if _json_output:
        _emit_json(report.model_dump(mode="json"))
    else:
        display_generation_report(console, report, show_all=show_all)

    if report.failed:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# reminders
# ---------------------------------------------------------------------------


@app.command()
def reminders(
    operator_id: str = typer.Option(..., "--operator", help="Operator whose bills to list."),
    campus_id: str | None = typer.Option(None, "--campus", help="Restrict to one campus."),
    as_of: str | None = typer.Option(None, "--date", help="Evaluate as of this date (YYYY-MM-DD)."),
) -> None:
    """List unpaid bills inside the reminder window, nearest due date first."""
    from campus_api.services.reminder_service import ReminderService

    settings = _settings()
    today = _parse_date(as_of, "as-of") if as_of else None

    async def _work(engine: AsyncEngine) -> list[dict[str, Any]]:
        async with get_session_factory(engine)() as session:
            service = ReminderService(
                session, operator_id, settings.billing_timezone, settings.reminder_window_days
            )
            return await service.list_reminders(campus_id=campus_id, today=today)

    rows = _run_with_db(_work)
    if _json_output:
        _emit_json(rows)
    else:
        display_reminders(console, rows)


# ---------------------------------------------------------------------------
# rollup
# ---------------------------------------------------------------------------


@app.command()
def rollup(
    operator_id: str = typer.Option(..., "--operator", help="Operator whose figures to aggregate."),
    months: int = typer.Option(6, "--months", help="Trailing window length in months (1-36)."),
    campus_id: str | None = typer.Option(None, "--campus", help="Restrict to one campus."),
    as_of: str | None = typer.Option(None, "--date", help="Evaluate as of this date (YYYY-MM-DD)."),
) -> None:
    """Print monthly revenue, expenses and profit with window totals."""
    from campus_api.services.rollup_service import RollupService

    settings = _settings()
    today = _parse_date(as_of, "as-of") if as_of else None

    async def _work(engine: AsyncEngine) -> dict[str, Any]:
        async with get_session_factory(engine)() as session:
            service = RollupService(session, operator_id, settings.billing_timezone)
            return await service.get_financial_rollup(campus_id=campus_id, months=months, today=today)

    result = _run_with_db(_work)
    if _json_output:
        _emit_json(result)
    else:
        display_rollup(console, result)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address. Defaults to the API setting."),
    port: int | None = typer.Option(None, "--port", help="Bind port. Defaults to the API setting."),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes (development only)."),
) -> None:
    """Run the billing API server in the foreground."""
    import uvicorn

    settings = _settings()
    bind_host = host or settings.host
    bind_port = port or settings.port

    server = uvicorn.Server(
        uvicorn.Config(
            "campus_api.main:app",
            host=bind_host,
            port=bind_port,
            reload=reload,
            log_level="info",
            access_log=False,
        )
    )

    console.print(f"[green]✓[/green] API server starting on http://{bind_host}:{bind_port}")
    console.print(f"[green]✓[/green] Readiness probe at http://{bind_host}:{bind_port}/ready")
    try:
        server.run()
    except KeyboardInterrupt:
        console.print("[yellow]Server stopped.[/yellow]")
