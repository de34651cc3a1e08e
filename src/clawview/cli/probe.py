"""
CLI: ``clawview probe`` - run the pipeline and inspect its output.
"""

from __future__ import annotations

import time
from pathlib import Path

import typer

from clawview.cli.utils import console, fail, open_storage, output, output_metrics, resolve_settings
from clawview.core.errors import StorageError
from clawview.core.logging import get_logger

app = typer.Typer(no_args_is_help=True)
logger = get_logger(__name__)


@app.command("once")
def probe_once(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d", help="State directory."),
    log_file: Path | None = typer.Option(None, "--log-file", help="Read gateway logs from a JSONL file."),
    no_sync: bool = typer.Option(False, "--no-sync", help="Skip the outbound sync step."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one probe cycle and print the snapshot."""
    from clawview.execution.pipeline import ProbePipeline

    settings = resolve_settings(data_dir)
    pipeline = ProbePipeline.from_settings(
        settings,
        open_storage(settings),
        log_file=log_file,
        with_sync=False if no_sync else None,
    )
    try:
        run = pipeline.run_once()
    except StorageError as e:
        fail(e.message)

    if run.skipped:
        console.print("[yellow]Skipped[/yellow]: another probe run holds the lock.")
        return
    if json_out:
        output(run.snapshot, as_json=True)
        return
    output_metrics(run.snapshot, title=f"Snapshot {run.snapshot['ts']}")
    if run.sources_down:
        console.print(f"[yellow]Sources down[/yellow]: {', '.join(run.sources_down)}")
    if run.sync_error:
        console.print(f"[red]Sync failed[/red]: {run.sync_error}")


@app.command("loop")
def probe_loop(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    interval_min: float = typer.Option(5.0, "--interval-min", min=0.1, help="Minutes between cycles."),
    duration_min: float = typer.Option(0.0, "--duration-min", min=0.0, help="Stop after this many minutes (0 = forever)."),
    no_sync: bool = typer.Option(False, "--no-sync"),
) -> None:
    """Run probe cycles on a fixed interval."""
    from clawview.execution.pipeline import ProbePipeline

    settings = resolve_settings(data_dir)
    pipeline = ProbePipeline.from_settings(settings, open_storage(settings), with_sync=False if no_sync else None)
    deadline = time.monotonic() + duration_min * 60 if duration_min > 0 else None
    cycles = 0
    while True:
        run = pipeline.run_once()
        cycles += 1
        if run.snapshot is not None:
            console.print(
                f"[dim]{run.snapshot['ts']}[/dim] status={run.snapshot['service_status_now']}"
                f" bytes={run.snapshot['snapshot_bytes']}"
            )
        if deadline is not None and time.monotonic() + interval_min * 60 > deadline:
            break
        time.sleep(interval_min * 60)
    logger.info("probe_loop_finished", cycles=cycles)


@app.command("status")
def probe_status(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the most recent snapshot."""
    from clawview.metrics.snapshots import SnapshotStore

    settings = resolve_settings(data_dir)
    latest = SnapshotStore(open_storage(settings)).latest()
    if latest is None:
        fail("no snapshots yet; run `clawview probe once` first")
    if json_out:
        output(latest, as_json=True)
        return
    output_metrics(latest, title=f"Snapshot {latest['ts']}")


@app.command("summarize")
def probe_summarize(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    day: str | None = typer.Option(None, "--day", help="UTC day (YYYY-MM-DD); defaults to today."),
    interval_min: float = typer.Option(5.0, "--interval-min", min=0.1),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Summarize one day of snapshots into report-YYYY-MM-DD.json."""
    from clawview.metrics.report import write_summary_report

    settings = resolve_settings(data_dir)
    report = write_summary_report(open_storage(settings), day=day, interval_min=interval_min)
    output(report, as_json=json_out, title="Snapshot report")


@app.command("p0-status")
def probe_p0_status(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Write the P0 core metric live-status report."""
    from clawview.metrics.report import write_p0_status_report

    settings = resolve_settings(data_dir)
    report = write_p0_status_report(open_storage(settings))
    if not report["ok"]:
        fail(report.get("reason") or "no snapshots to report on")
    output(report, as_json=json_out, title="P0 core status")
