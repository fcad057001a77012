"""Message-to-task pipeline and its periodic sweep."""

from .orchestrator import ConversationResult, ReceiveResult, SweepResult, TaskPipeline
from .scheduler import SweepScheduler

__all__ = [
    "ConversationResult",
    "ReceiveResult",
    "SweepResult",
    "SweepScheduler",
    "TaskPipeline",
]
