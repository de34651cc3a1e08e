"""
Root Typer application for the clawview probe CLI.

Sub-commands import the pipeline lazily so ``clawview --version`` stays
cheap when fired from a hook.
"""

from __future__ import annotations

import typer
from typer import Typer

from clawview.cli.utils import fail
from clawview.core.errors import ConfigError
from clawview.core.logging import configure_logging
from clawview.core.settings import get_settings

app = Typer(
    name="clawview",
    help="clawview-probe: telemetry facts, snapshots and sync for an OpenClaw gateway.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from clawview import __version__

        typer.echo(f"clawview-probe {__version__}")
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
    log_level: str | None = typer.Option(None, "--log-level", help="Override CLAWVIEW_LOG_LEVEL."),
    json_logs: bool | None = typer.Option(None, "--json-logs/--console-logs", help="Log format on stderr."),
) -> None:
    """clawview CLI: probe, sync and hook trigger."""
    try:
        settings = get_settings()
    except ConfigError as e:
        fail(e.message)
    level = log_level or ("DEBUG" if settings.debug else settings.log_level)
    configure_logging(level=level, json_format=json_logs if json_logs is not None else settings.json_logs)


# ── Sub-command registration ─────────────────────────────────────────────

from clawview.cli.probe import app as probe_app  # noqa: E402
from clawview.cli.sync import app as sync_app  # noqa: E402
from clawview.cli.trigger import app as trigger_app  # noqa: E402

app.add_typer(probe_app, name="probe", help="Run the probe pipeline and read its output.")
app.add_typer(sync_app, name="sync", help="Outbound sync to the telemetry sink.")
app.add_typer(trigger_app, name="trigger", help="Debounced hook trigger.")
