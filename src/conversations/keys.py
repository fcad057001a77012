"""Conversation grouping keys."""

import math
from datetime import datetime

DEFAULT_BUCKET_SECONDS = 300


def conversation_key(
    channel: str,
    thread_id: str | None,
    now: datetime,
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
) -> str:
    """Map (channel, thread, wall-clock time) to a stable grouping key.

    Threaded messages group for the lifetime of the thread. Unthreaded
    messages group by channel within a coarse time bucket; a burst that
    straddles a bucket boundary lands in two conversations.
    """
    if thread_id:
        return f"{channel}:{thread_id}"

    bucket = math.floor(now.timestamp() / bucket_seconds)
    return f"{channel}:general:{bucket}"
