"""Deterministic text rendering of a buffered conversation for extraction."""

from datetime import datetime

from .models import Conversation

_UNITS = (
    ("day", 86400),
    ("hour", 3600),
    ("minute", 60),
    ("second", 1),
)


def humanize_duration(start: datetime, end: datetime) -> str:
    """Largest whole unit between two timestamps, e.g. '3 minutes'."""
    seconds = int(abs((end - start).total_seconds()))
    for unit, size in _UNITS:
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'' if count == 1 else 's'}"
    return "0 seconds"


def _escape_sender(sender: str) -> str:
    return sender.replace("\\", "\\\\").replace(":", "\\:").replace("\n", "\\n")


def _split_sender(chunk: str) -> tuple[str, str]:
    """Split at the first unescaped ': ', undoing _escape_sender."""
    sender = []
    i = 0
    while i < len(chunk):
        ch = chunk[i]
        if ch == "\\" and i + 1 < len(chunk):
            nxt = chunk[i + 1]
            sender.append("\n" if nxt == "n" else nxt)
            i += 2
            continue
        if chunk.startswith(": ", i):
            return "".join(sender), chunk[i + 2 :]
        sender.append(ch)
        i += 1
    return "".join(sender), ""


def render_conversation(conversation: Conversation) -> str:
    """Header plus one ``[n] sender: body`` block per message, oldest first."""
    if not conversation.messages:
        return ""

    label = (conversation.source or "chat").title()
    lines = [f"=== {label} Conversation ===", f"Channel: {conversation.channel}"]
    if conversation.thread_id:
        lines.append(f"Thread: {conversation.thread_id}")
    lines.append(
        "Duration: "
        + humanize_duration(conversation.first_seen_at, conversation.last_seen_at)
    )
    lines.append(f"Messages: {len(conversation.messages)}")

    text = "\n".join(lines) + "\n\n"
    for index, message in enumerate(conversation.messages, start=1):
        # Senders are escaped so parse_rendered can split them back out exactly
        text += f"[{index}] {_escape_sender(message.sender or '')}: {message.body}\n\n"
    return text


def parse_rendered(text: str) -> list[tuple[str, str]]:
    """Recover (sender, body) pairs from render_conversation output.

    Markers are matched in sequence ([1], [2], ...), so bracketed text inside
    a body is left alone.
    """
    header_end = text.find("\n\n")
    if header_end == -1:
        return []
    body = text[header_end + 2 :]

    pairs = []
    index = 1
    pos = 0
    while True:
        marker = f"[{index}] "
        if not body.startswith(marker, pos):
            break
        start = pos + len(marker)
        next_marker = f"\n\n[{index + 1}] "
        end = body.find(next_marker, start)
        if end == -1:
            chunk = body[start:]
            if chunk.endswith("\n\n"):
                chunk = chunk[:-2]
            pos = len(body)
        else:
            chunk = body[start:end]
            pos = end + 2
        pairs.append(_split_sender(chunk))
        index += 1
    return pairs

