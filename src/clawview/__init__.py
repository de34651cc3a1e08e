"""
clawview-probe - telemetry fact pipeline for an OpenClaw gateway.

Subpackages:
- clawview.core: storage, cursors, fact log, retention, settings, logging
- clawview.facts: typed facts and extraction rules
- clawview.sources: upstream collaborators (logs, control plane, cron, skills)
- clawview.metrics: aggregation, readiness, snapshots, reports
- clawview.sync: privacy policy and outbound transmitter
- clawview.execution: lock, retry, trigger, pipeline
"""

__version__ = "1.2.0"
