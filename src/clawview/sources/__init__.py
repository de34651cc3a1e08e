"""Upstream collaborators: logs, control plane, cron, skills."""

from clawview.sources.files import JsonlLogSource, SessionSkillSource
from clawview.sources.openclaw import (
    OpenclawCli,
    OpenclawCronSource,
    OpenclawGatewayProbe,
    OpenclawLogSource,
    OpenclawSkillInventory,
)
from clawview.sources.protocol import (
    ControlPlaneProbe,
    ControlPlaneStatus,
    CronJob,
    CronSource,
    LogSource,
    SessionScan,
    SkillCallSource,
    SkillComponent,
    SkillInventory,
)

__all__ = [
    "ControlPlaneProbe",
    "ControlPlaneStatus",
    "CronJob",
    "CronSource",
    "JsonlLogSource",
    "LogSource",
    "OpenclawCli",
    "OpenclawCronSource",
    "OpenclawGatewayProbe",
    "OpenclawLogSource",
    "OpenclawSkillInventory",
    "SessionScan",
    "SessionSkillSource",
    "SkillCallSource",
    "SkillComponent",
    "SkillInventory",
]
