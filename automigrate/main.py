from __future__ import annotations

import importlib
import sys
from typing import Any, List, Optional

import typer

from automigrate.config import get_settings
from automigrate.db import DB
from automigrate.dialects import available_dialects
from automigrate.infrastructure.executor import DryRunExecutor, RecordingExecutor, connect
from automigrate.reporter import print_summary
from automigrate.utils.logging import configure_logging

app = typer.Typer(help="automigrate CLI: additive schema migrations for pydantic models.")


def load_model(target: str) -> Any:
    """
    Import `module.path:ModelName`.

    Raises
    ------
    typer.BadParameter
        If the target is malformed or cannot be imported.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"expected MODULE:MODEL, got '{target}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"cannot import '{module_name}': {exc}") from exc
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise typer.BadParameter(f"'{module_name}' has no attribute '{attr}'") from exc


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"dialect={settings.dialect} | "
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"singular_table={settings.singular_table} table_options={settings.table_options or ''} "
        f"log_sql={settings.log_sql}"
    )


@app.command()
def dialects() -> None:
    """
    List registered dialects.
    """
    typer.echo("Available dialects: " + ", ".join(available_dialects()))


@app.command()
def migrate(
    targets: List[str] = typer.Argument(..., help="Models to migrate, as MODULE:MODEL."),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Print the DDL instead of running it (the live schema is still read).",
    ),
    offline: bool = typer.Option(
        False,
        "--offline",
        help="With --dry-run, do not connect at all: plan against an empty database.",
    ),
    dialect: Optional[str] = typer.Option(
        None,
        "--dialect",
        "-d",
        help="Override AUTOMIGRATE_DIALECT (e.g., postgres, sqlite3, mssql).",
    ),
) -> None:
    """
    Create missing tables, columns and indexes for the given models.
    """
    settings = get_settings()
    if dialect:
        settings = settings.model_copy(update={"dialect": dialect})
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    models = [load_model(target) for target in targets]

    if dry_run:
        recorder = DryRunExecutor(None if offline else connect(settings))
        db = DB.open(settings, executor=recorder).auto_migrate(*models)
        for sql, values in recorder.statements:
            typer.echo(f"{sql} {list(values)}" if values else sql)
    else:
        recorder = RecordingExecutor(connect(settings))
        db = DB.open(settings, executor=recorder).auto_migrate(*models)

    if db.error is not None:
        for err in db.get_errors():
            typer.echo(f"error: {err}", err=True)
        raise typer.Exit(code=1)

    if not dry_run:
        print_summary(recorder.statements, db.dialect().get_name())
        typer.echo(f"Migrated {len(models)} model(s) with dialect '{db.dialect().get_name()}'.")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
