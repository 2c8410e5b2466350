from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich import box
from rich.console import Console
from rich.table import Table

# Identifiers may be quoted with "x", `x` or [x] depending on the dialect.
_IDENT = r'["`\[]?(?P<table>[^"`\]\s(]+)["`\]]?'
_CREATE_TABLE_RE = re.compile(rf"^CREATE TABLE {_IDENT}", re.IGNORECASE)
_ADD_COLUMN_RE = re.compile(rf"^ALTER TABLE {_IDENT} ADD ", re.IGNORECASE)
_CREATE_INDEX_RE = re.compile(rf"^CREATE (?:UNIQUE )?INDEX \S+ ON {_IDENT}", re.IGNORECASE)


def summarize(statements: Sequence[Tuple[str, Tuple[Any, ...]]]) -> List[Dict[str, Any]]:
    """
    Group executed DDL by table.

    Returns one dict per table, in order of first appearance, with the keys
    `table`, `created`, `columns_added`, `indexes_created` and `other`.
    Statements that name no table (raw SQL) are counted under the table `""`.
    """
    by_table: Dict[str, Dict[str, Any]] = {}

    def _entry(table: str) -> Dict[str, Any]:
        if table not in by_table:
            by_table[table] = {
                "table": table,
                "created": False,
                "columns_added": 0,
                "indexes_created": 0,
                "other": 0,
            }
        return by_table[table]

    for sql, _ in statements:
        statement = sql.strip()
        match = _CREATE_TABLE_RE.match(statement)
        if match:
            _entry(match["table"])["created"] = True
            continue
        match = _ADD_COLUMN_RE.match(statement)
        if match:
            _entry(match["table"])["columns_added"] += 1
            continue
        match = _CREATE_INDEX_RE.match(statement)
        if match:
            _entry(match["table"])["indexes_created"] += 1
            continue
        _entry("")["other"] += 1

    return list(by_table.values())


def print_summary(
    statements: Sequence[Tuple[str, Tuple[Any, ...]]],
    dialect: str,
    console: Optional[Console] = None,
) -> None:
    """
    Render the schema changes of a migration run as a rich table.
    """
    console = console or Console()
    rows = summarize(statements)

    if not rows:
        console.print("[green]Schema is up to date; nothing to do.[/green]")
        return

    table = Table(
        title=f"automigrate: {dialect}",
        box=box.ROUNDED,
        caption=f"{len(statements)} statement(s) executed",
    )
    table.add_column("Table", style="cyan", no_wrap=True)
    table.add_column("Created", justify="center", style="bold green")
    table.add_column("Columns added", justify="right", style="magenta")
    table.add_column("Indexes created", justify="right", style="yellow")

    for row in rows:
        if not row["table"]:
            continue
        table.add_row(
            row["table"],
            "yes" if row["created"] else "",
            str(row["columns_added"]),
            str(row["indexes_created"]),
        )

    console.print(table)


__all__ = ["print_summary", "summarize"]
