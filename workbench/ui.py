"""Colorized console output for the workbench CLI.

Thin wrapper around :mod:`rich`; ``LOGGER.*`` calls are kept for structured
logging, user-facing status lines flow through here.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from rich.console import Console
from rich.table import Table

console = Console(stderr=False, force_terminal=None)

_PASS = "[bold green]✓[/]"
_FAIL = "[bold red]✗[/]"
_WARN = "[bold yellow]⚠[/]"
_ARROW = "[bold cyan]›[/]"

STATUS_STYLES = {"reachable": "green", "pending": "yellow", "error": "red"}


def ok(msg: str) -> None:
    console.print(f"  {_PASS} {msg}")


def fail(msg: str) -> None:
    console.print(f"  {_FAIL} [red]{msg}[/]")


def warn(msg: str) -> None:
    console.print(f"  {_WARN} [yellow]{msg}[/]")


def step(msg: str) -> None:
    console.print(f"  {_ARROW} {msg}")


def accounts_table(accounts: Iterable[Dict[str, Any]]) -> None:
    """Print accounts with their status and bucket count."""
    table = Table(title="Data source accounts")
    table.add_column("Account")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Buckets", justify="right")
    for account in accounts:
        status = account.get("status", "")
        style = STATUS_STYLES.get(status, "")
        table.add_row(
            account.get("id", ""),
            account.get("name", ""),
            f"[{style}]{status}[/]" if style else status,
            str(len(account.get("buckets", []))),
        )
    console.print(table)
