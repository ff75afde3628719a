from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.console import Console
from rich import box
import time

from odds_tracker.core.config import Config
from odds_tracker.core.status_reporter import load_status_file


def make_layout():
    layout = Layout()
    layout.split_column(
        Layout(name="header", size=4),
        Layout(name="main", ratio=2),
    )
    layout["main"].split_row(
        Layout(name="cycle", ratio=2),
        Layout(name="errors", ratio=1),
    )
    return layout


def generate_header(state):
    active = state.get("isActive", False)
    status = "[bold green]🟢 Active[/]" if active else "[bold red]🔴 Inactive[/]"
    last_run = state.get("lastRunAt") or "never"

    table = Table.grid(expand=True)
    table.add_column(justify="left")
    table.add_column(justify="center")
    table.add_column(justify="right")

    table.add_row(
        f"Status: {status}",
        f"Market Odds Tracker [dim](Last run: {last_run})[/]",
        f"Cycle: [bold cyan]{state.get('cycleState', 'IDLE')}[/]",
    )
    return Panel(table, style="white on blue", box=box.ROUNDED)


def generate_cycle(state):
    table = Table(expand=True, box=box.SIMPLE_HEAD)
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    if not state:
        table.add_row("[dim]No status file yet[/]", "")
        return Panel(table, title="Last Cycle", border_style="yellow")

    outcome = state.get("lastOutcome") or "-"
    color = {"COMPLETED": "green", "PARTIALLY_FAILED": "yellow", "FAILED": "red"}.get(outcome, "white")
    table.add_row("Outcome", f"[{color}]{outcome}[/]")
    table.add_row("Open positions", str(state.get("totalPositions", 0)))
    table.add_row("Unique markets", str(state.get("uniqueMarkets", 0)))
    table.add_row("Updated", str(state.get("updatedCount", 0)))
    table.add_row("Balances", str(state.get("balanceUpdates", 0)))
    table.add_row("Duration", f"{state.get('durationMs', 0):.0f}ms")
    table.add_row("Runs", str(state.get("runCount", 0)))
    return Panel(table, title="Last Cycle", border_style="yellow")


def generate_errors(state):
    table = Table(expand=True, box=box.SIMPLE)
    table.add_column("Kind")
    table.add_column("Count", justify="right")

    errors = state.get("errorCount", 0)
    color = "red" if errors else "green"
    table.add_row("Total", f"[{color}]{errors}[/]")
    table.add_row("Fetch", str(state.get("fetchErrors", 0)))
    table.add_row("Persist", str(state.get("persistErrors", 0)))
    table.add_row("Balance", str(state.get("balanceErrors", 0)))
    table.add_row("Skipped ticks", str(state.get("skippedTicks", 0)))
    if state.get("lastRunFailed"):
        table.add_row("[red]Last error[/]", f"[red]{state.get('lastError', '')}[/]")
    return Panel(table, title="Errors", border_style="magenta")


def render_status(state: dict) -> Layout:
    layout = make_layout()
    layout["header"].update(generate_header(state))
    layout["cycle"].update(generate_cycle(state))
    layout["errors"].update(generate_errors(state))
    return layout


def print_status(state: dict, console: Console = None):
    console = console or Console()
    console.print(generate_header(state))
    console.print(generate_cycle(state))
    console.print(generate_errors(state))


def run_monitor(status_file: str = None, refresh_seconds: float = 1.0):
    status_file = status_file or Config().TRACKER_STATUS_FILE

    with Live(render_status(load_status_file(status_file)), refresh_per_second=4, screen=True) as live:
        while True:
            live.update(render_status(load_status_file(status_file)))
            time.sleep(refresh_seconds)


if __name__ == "__main__":
    run_monitor()
