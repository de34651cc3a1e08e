"""
CLI: ``clawview trigger`` - entry point for gateway hooks.

The hook must never wait on a probe cycle, so an accepted event only
spawns a detached ``clawview probe once`` and returns.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path

import typer

from clawview.cli.utils import console, fail, open_storage, resolve_settings
from clawview.execution.trigger import (
    TriggerController,
    TriggerOutcome,
    detached_probe_command,
    launch_detached,
)

app = typer.Typer(no_args_is_help=True)


@app.command("fire")
def trigger_fire(
    event_type: str = typer.Argument(..., help="Hook event type, e.g. 'message'."),
    action: str = typer.Argument(..., help="Hook event action, e.g. 'sent'."),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
) -> None:
    """Start a debounced, detached probe cycle for a gateway hook event."""
    settings = resolve_settings(data_dir)
    storage = open_storage(settings)
    job = partial(launch_detached, detached_probe_command(settings.data_dir))

    # The job only spawns the child, so leaving the pool is immediate.
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="clawview-trigger") as executor:
        controller = TriggerController(
            storage,
            executor,
            job,
            debounce_ms=settings.probe_debounce_ms,
            enabled=settings.probe_enabled,
        )
        decision = controller.fire(event_type, action)

    if decision.outcome is TriggerOutcome.DEBOUNCED:
        console.print(f"[dim]debounced[/dim] {decision.event} ({decision.remaining_ms} ms left)")
    elif decision.outcome is TriggerOutcome.ACCEPTED:
        error = decision.future.exception() if decision.future else None
        if error is not None:
            fail(f"cannot start probe run: {error}")
        pid = decision.future.result() if decision.future else None
        console.print(f"[green]accepted[/green] {decision.event} (pid {pid})")
    else:
        console.print(f"[dim]{decision.outcome.value}[/dim] {decision.event or '-'}")
