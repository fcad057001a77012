"""CLI command modules."""

from .buffer import ingest, pending, webhook
from .sweep import cleanup, daemon, sweep
from .tasks import check_duplicate, tasks_cmd

__all__ = [
    "ingest",
    "webhook",
    "pending",
    "sweep",
    "daemon",
    "cleanup",
    "tasks_cmd",
    "check_duplicate",
]
