"""
Root Typer application for the seasarbatis CLI.

Commands:
    describe   Show the table mapping and statement templates of an entity
    query      Run a SELECT (inline or from a SQL file) and print the rows
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from seasarbatis import __version__
from seasarbatis.cli.utils import (
    console,
    load_target,
    make_manager,
    output_rows,
    parse_params,
    print_error,
)
from seasarbatis.core.entity import primary_key_predicate, resolve_metadata
from seasarbatis.core.errors import BatisError, StatementError
from seasarbatis.core.logging import LogContext, clear_context, configure_logging
from seasarbatis.core.settings import get_settings
from seasarbatis.core.sql import (
    build_delete,
    build_insert,
    build_select_by_primary_key,
    build_update,
)

app = typer.Typer(
    name="seasarbatis",
    help="seasarbatis: Seasar2-style data mapping over SQLAlchemy.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("seasarbatis")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"seasarbatis {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """seasarbatis CLI: inspect entity mappings and run queries."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    clear_context()


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def describe(
    target: str = typer.Argument(..., help="Entity class as MODULE:CLASS"),
) -> None:
    """Show how an entity maps to its table."""
    entity_type = load_target(target)
    try:
        metadata = resolve_metadata(entity_type)
    except BatisError as e:
        print_error(e)
        raise typer.Exit(code=1) from e

    console.print(f"[bold]{entity_type.__name__}[/bold] → [cyan]{metadata.qualified_name}[/cyan]")

    table = Table(show_lines=False, pad_edge=False)
    table.add_column("field")
    table.add_column("column")
    table.add_column("key")
    for column, descriptor in metadata.columns.items():
        table.add_row(descriptor.field_name, column, "✓" if descriptor.is_primary_key else "")
    console.print(table)

    sample = {column: column for column in metadata.columns}
    predicate = primary_key_predicate(metadata, list(metadata.primary_key_columns))
    templates = {
        "insert": lambda: build_insert(metadata, sample).sql,
        "update": lambda: build_update(metadata, sample).sql,
        "delete": lambda: build_delete(metadata, predicate).sql,
        "select": lambda: build_select_by_primary_key(metadata, predicate).sql,
    }
    for name, render in templates.items():
        try:
            sql = render()
        except StatementError:
            sql = "[dim](not applicable)[/dim]"
        console.print(f"  [cyan]{name}[/cyan]: {sql}")


@app.command()
def query(
    sql: str = typer.Argument(..., help="SELECT statement, or a SQL file path with --file"),
    from_file: bool = typer.Option(False, "--file", "-f", help="Treat SQL as a SQL-file path"),
    param: list[str] | None = typer.Option(None, "--param", "-p", help="Bind parameter KEY=VALUE"),  # noqa: UP007
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Run a SELECT and print the rows."""
    params = parse_params(param)
    jdbc = make_manager(database)
    try:
        with LogContext(command="query"):
            if from_file:
                rows = jdbc.select_by_sql_file(dict, Path(sql), params)
            else:
                rows = jdbc.select_by_sql(dict, sql, params)
    except BatisError as e:
        print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        jdbc.dispose()
    output_rows(rows, as_json=json_out, title="Query Result")
