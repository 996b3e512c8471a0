"""CLI output formatters for JSON and Rich tables.

API results are always JSON so they can be piped into other tools.
Everything pexshell reports about itself (users, cache state) is a Rich
table rendered to a string.
"""

import json
from typing import Any, Iterable

from rich.console import Console
from rich.table import Table

from pexshell.cli.config import UserConfig
from pexshell.models.invocation import ResultPage
from pexshell.models.schema import CachedSchema

console = Console()


def format_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def format_record_line(record: dict[str, Any]) -> str:
    """One record per line, used when streaming listings."""
    return json.dumps(record, separators=(",", ":"), ensure_ascii=False)


def format_page(page: ResultPage, single: bool = False) -> str | None:
    """Format the result of a non-streamed operation.

    Args:
        page: Decoded result.
        single: The operation returns one object (get, create, update).

    Returns:
        JSON text, or None when there is nothing to print.
    """
    if page.records:
        if single and len(page.records) == 1:
            return format_json(page.records[0])
        return format_json(list(page.records))
    if page.location:
        return page.location
    return None


def format_records(records: Iterable[dict[str, Any]]) -> str:
    return format_json(list(records))


def format_users_table(users: list[UserConfig]) -> str:
    """Format known users as a Rich table.

    Args:
        users: Users from the config file.

    Returns:
        Rendered table, or a hint when no user is known.
    """
    if not users:
        return "No users. Log in with: pexshell login\n"

    table = Table(title="Users")
    table.add_column("", no_wrap=True)
    table.add_column("Address", style="cyan")
    table.add_column("User", style="white")
    table.add_column("Auth")
    table.add_column("Last used")

    for user in users:
        table.add_row(
            "[green]*[/green]" if user.current else "",
            user.address,
            user.username,
            user.kind.value,
            user.last_used.isoformat(timespec="seconds") if user.last_used else "-",
        )

    with console.capture() as capture:
        console.print(table)
    return capture.get()


def format_cache_summary(cached: CachedSchema) -> str:
    """Format resource counts per API group of a cached schema."""
    counts: dict[str, int] = {}
    for resource in cached.model:
        counts[resource.api] = counts.get(resource.api, 0) + 1

    table = Table(title=f"Schema for {cached.target}")
    table.add_column("API", style="cyan")
    table.add_column("Resources", justify="right")
    for api, count in counts.items():
        table.add_row(api, str(count))
    table.caption = (
        f"fingerprint {cached.fingerprint[:12]} · "
        f"retrieved {cached.retrieved_at.isoformat(timespec='seconds')}"
    )

    with console.capture() as capture:
        console.print(table)
    return capture.get()
