"""
CLI utility helpers: output formatting and manager construction.
"""

from __future__ import annotations

import importlib
import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from seasarbatis.core.session import create_batis_engine
from seasarbatis.manager import JdbcManager

console = Console()
err_console = Console(stderr=True)


# ── Manager / target helpers ─────────────────────────────────────────────


def make_manager(database: str | None = None) -> JdbcManager:
    """Manager for ``database``, or from ``BATIS_*`` settings when omitted."""
    if database:
        return JdbcManager(create_batis_engine(database))
    return JdbcManager.from_settings()


def load_target(target: str) -> type:
    """Import ``package.module:ClassName``."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        err_console.print(f"[bold red]Error[/bold red]: expected MODULE:CLASS, got {target!r}")
        raise typer.Exit(code=2)
    try:
        obj: Any = importlib.import_module(module_name)
        for part in attr.split("."):
            obj = getattr(obj, part)
    except (ImportError, AttributeError) as e:
        err_console.print(f"[bold red]Error[/bold red]: cannot load {target}: {e}")
        raise typer.Exit(code=2) from e
    return obj


def parse_params(pairs: list[str] | None) -> dict[str, Any]:
    """Turn ``["k=v", ...]`` into a parameter map; integers and floats are converted."""
    params: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            err_console.print(f"[bold red]Error[/bold red]: bad --param {pair!r}, expected KEY=VALUE")
            raise typer.Exit(code=2)
        params[key] = _coerce(raw)
    return params


def _coerce(raw: str) -> Any:
    for convert in (int, float):
        try:
            return convert(raw)
        except ValueError:
            continue
    return raw


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_rows(rows: list[Any], *, as_json: bool = False, title: str = "") -> None:
    """Render query rows as a Rich table or JSON."""
    if as_json:
        console.print_json(json.dumps([_to_dict(r) for r in rows], default=str))
        return
    if not rows:
        console.print("[dim]No rows.[/dim]")
        return
    _print_table(rows, title=title)


def print_error(error: Exception) -> None:
    err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {error}")


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)
