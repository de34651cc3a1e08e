"""
CLI: ``clawview sync`` - push pending facts and the latest snapshot.
"""

from __future__ import annotations

from pathlib import Path

import typer

from clawview.cli.utils import fail, open_storage, output, resolve_settings
from clawview.core.errors import SyncDeliveryError

app = typer.Typer(no_args_is_help=True)


@app.command("once")
def sync_once(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Deliver one batch of API facts and the latest snapshot to the sink."""
    from clawview.sync.transmitter import SyncTransmitter

    settings = resolve_settings(data_dir)
    transmitter = SyncTransmitter.from_settings(settings, open_storage(settings))
    try:
        result = transmitter.sync_once()
    except SyncDeliveryError as e:
        fail(f"sync failed: {e.message}")
    output(result, as_json=json_out, title="Sync")
