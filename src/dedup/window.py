"""Recent-task window that duplicate candidates are compared against."""

from datetime import datetime, timedelta

from tasks.models import RecordedTask
from tasks.store import TaskStore

DEFAULT_LOOKBACK_HOURS = 48


class CandidateWindow:
    """Recorded tasks created within the lookback horizon, newest first."""

    def __init__(self, task_store: TaskStore, lookback_hours: float = DEFAULT_LOOKBACK_HOURS):
        self.store = task_store
        self.lookback = timedelta(hours=lookback_hours)

    def recent_tasks(self, now: datetime) -> list[RecordedTask]:
        return self.store.tasks_since(now - self.lookback)
