"""Rich output formatting for the campus-billing CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that JSON output on *stdout* is never polluted with
human-readable decoration.
"""

from __future__ import annotations

from typing import Any

from campus_core.billing.templates import format_amount
from campus_core.models.billing import GenerationReport, GenerationStatus
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# ---------------------------------------------------------------------------
# Status colour mapping
# ---------------------------------------------------------------------------

_GENERATION_COLOURS: dict[GenerationStatus, str] = {
    GenerationStatus.CREATED: "green",
    GenerationStatus.EXISTS: "dim",
    GenerationStatus.NOT_DUE: "dim",
    GenerationStatus.ERROR: "red",
}

_PAYMENT_COLOURS: dict[str, str] = {
    "Overdue": "red",
    "Pending": "yellow",
    "Paid": "green",
}


def _coloured(value: str, colour: str) -> str:
    return f"[{colour}]{value}[/{colour}]"


def _rupees(amount: float) -> str:
    return f"Rs. {format_amount(amount)}"


def _change(percent: int) -> str:
    if percent > 0:
        return _coloured(f"+{percent}%", "green")
    if percent < 0:
        return _coloured(f"{percent}%", "red")
    return "0%"


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


def display_generation_report(console: Console, report: GenerationReport, show_all: bool = False) -> None:
    """Render a generation run: summary panel plus one row per tenant.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    report:
        The run's report.
    show_all:
        Include tenants whose billing day is not today.  By default only
        created, existing and failed rows are listed.
    """
    header_lines = [
        f"[bold]Run date:[/bold]    {report.run_date.isoformat()}",
        f"[bold]Bill month:[/bold]  {report.bill_month.strftime('%B %Y')}",
    ]
    console.print(Panel("\n".join(header_lines), title="Bill Generation", border_style="blue"))

    rows = [r for r in report.results if show_all or r.status != GenerationStatus.NOT_DUE]
    if rows:
        table = Table(show_lines=False, pad_edge=True, expand=False)
        table.add_column("Tenant", style="bold")
        table.add_column("Status")
        table.add_column("Billing Day", justify="right")
        table.add_column("Due Date")
        table.add_column("Detail")
        for result in rows:
            table.add_row(
                result.tenant_name,
                _coloured(result.status.value, _GENERATION_COLOURS[result.status]),
                str(result.billing_day) if result.billing_day is not None else "-",
                result.due_date.isoformat() if result.due_date else "-",
                result.reason or "-",
            )
        console.print(table)
    else:
        console.print("[dim]No tenant has a billing day today.[/dim]")

    parts = [f"[green]{report.created} created[/green]", f"{report.skipped} already billed"]
    if report.not_due:
        parts.append(f"[dim]{report.not_due} not due[/dim]")
    if report.failed:
        parts.append(f"[red]{report.failed} failed[/red]")
    console.print(" | ".join(parts))


# ---------------------------------------------------------------------------
# Financial rollup
# ---------------------------------------------------------------------------


def display_rollup(console: Console, rollup: dict[str, Any]) -> None:
    """Render the monthly series, window totals, occupancy and campus ranking."""
    table = Table(title=f"Last {rollup['months']} month(s)", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Month", style="bold")
    table.add_column("Revenue", justify="right")
    table.add_column("Expenses", justify="right")
    table.add_column("Profit", justify="right")
    for row in rollup["monthly_series"]:
        profit_style = "green" if row["profit"] >= 0 else "red"
        table.add_row(
            row["month"],
            _rupees(row["revenue"]),
            _rupees(row["expenses"]),
            _coloured(_rupees(row["profit"]), profit_style),
        )
    console.print(table)

    occupancy = rollup["occupancy"]
    summary_lines = [
        f"[bold]Revenue:[/bold]   {_rupees(rollup['total_revenue'])}  ({_change(rollup['revenue_change'])})",
        f"[bold]Expenses:[/bold]  {_rupees(rollup['total_expenses'])}  ({_change(rollup['expense_change'])})",
        f"[bold]Profit:[/bold]    {_rupees(rollup['total_profit'])}  ({_change(rollup['profit_change'])})",
        f"[bold]Occupancy:[/bold] {occupancy['rate']}% "
        f"({occupancy['occupied_beds']}/{occupancy['total_beds']} beds)",
    ]
    console.print(Panel("\n".join(summary_lines), title="Totals", border_style="blue"))

    if rollup["campus_ranking"]:
        ranking = Table(title="Revenue by Campus", show_lines=False, pad_edge=True, expand=False)
        ranking.add_column("#", style="dim", width=4, justify="right")
        ranking.add_column("Campus", style="bold")
        ranking.add_column("Revenue", justify="right")
        for idx, entry in enumerate(rollup["campus_ranking"], start=1):
            ranking.add_row(str(idx), entry["campus_name"], _rupees(entry["revenue"]))
        console.print(ranking)


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


def display_reminders(console: Console, reminders: list[dict[str, Any]]) -> None:
    """Render the unpaid bills inside the reminder window."""
    if not reminders:
        console.print("[dim]No bills need a reminder.[/dim]")
        return

    table = Table(title=f"Reminders ({len(reminders)})", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Tenant", style="bold")
    table.add_column("Room")
    table.add_column("Campus")
    table.add_column("Amount", justify="right")
    table.add_column("Due")
    table.add_column("Status")
    table.add_column("Opt-in", justify="center")
    table.add_column("Last Reminder")

    for item in reminders:
        last = item.get("last_reminder_sent")
        table.add_row(
            item["tenant_name"],
            item["room_no"] or "-",
            item["campus_name"],
            _rupees(item["total_amount"]),
            item["due_date"].isoformat(),
            _coloured(item["label"], _PAYMENT_COLOURS.get(item["payment_status"], "white")),
            "yes" if item["notification_opt_in"] else _coloured("no", "yellow"),
            last.strftime("%d %b %Y %H:%M") if last else "-",
        )

    console.print(table)
