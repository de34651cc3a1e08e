"""
CLI layer for clawview-probe.

Terminal transport only: argument parsing, coloured output and tables. The
work itself lives in ``clawview.execution`` and ``clawview.sync``.

Entry point::

    clawview --help
"""

from clawview.cli.app import app

__all__ = ["app"]
