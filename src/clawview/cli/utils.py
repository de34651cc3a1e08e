"""
CLI utility helpers: settings/storage resolution and output formatting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from clawview.core.settings import ClawviewSettings, get_settings
from clawview.core.storage import FileStateStorage

console = Console()
err_console = Console(stderr=True)

_READINESS_STYLE = {"Ready": "green", "Derived": "cyan", "Gap": "yellow"}


# ── Settings / storage helpers ───────────────────────────────────────────


def resolve_settings(data_dir: Path | None = None) -> ClawviewSettings:
    """Environment settings, optionally pointed at another data directory."""
    settings = get_settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir})
    return settings


def open_storage(settings: ClawviewSettings) -> FileStateStorage:
    storage = FileStateStorage(settings.data_dir)
    storage.ensure_root()
    return storage


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / object with to_dict to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dict-like result as JSON or key/value lines."""
    payload = _to_dict(data)
    if as_json:
        console.print_json(json.dumps(payload, default=str, ensure_ascii=False))
        return
    _print_dict(payload, title=title)


def output_metrics(snapshot: dict[str, Any], *, title: str = "") -> None:
    """Render the readiness-tagged ``metrics`` map of a snapshot as a table."""
    metrics = snapshot.get("metrics") or {}
    if not metrics:
        console.print("[dim]No metrics.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    table.add_column("metric")
    table.add_column("readiness")
    table.add_column("value", overflow="fold")
    table.add_column("note", overflow="fold")
    for key, metric in metrics.items():
        readiness = metric.get("readiness", "")
        style = _READINESS_STYLE.get(readiness, "white")
        table.add_row(
            key,
            f"[{style}]{readiness}[/{style}]",
            str(metric.get("display", "")),
            str(metric.get("note") or ""),
        )
    console.print(table)


def fail(message: str, code: int = 1) -> None:
    """Print an error to stderr and exit non-zero."""
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=code)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
