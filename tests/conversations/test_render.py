"""Tests for conversation rendering."""

from datetime import datetime, timedelta

from conversations.models import Conversation
from conversations.render import humanize_duration, parse_rendered, render_conversation

T0 = datetime(2025, 3, 10, 9, 0, 0)


def _conv(messages, thread_id=None, source="slack", span=timedelta(minutes=3)):
    conv = Conversation(
        id=7,
        key="C1:x",
        channel="C1",
        thread_id=thread_id,
        first_seen_at=T0,
        last_seen_at=T0,
        source=source,
    )
    for i, (sender, body) in enumerate(messages):
        conv.add_message(sender, body, T0.isoformat(), T0 + span * i / max(1, len(messages) - 1))
    return conv


def test_exact_layout():
    conv = _conv([("alice", "can you review PR 12"), ("bob", "on it")], thread_id="t-1")
    assert render_conversation(conv) == (
        "=== Slack Conversation ===\n"
        "Channel: C1\n"
        "Thread: t-1\n"
        "Duration: 3 minutes\n"
        "Messages: 2\n"
        "\n"
        "[1] alice: can you review PR 12\n\n"
        "[2] bob: on it\n\n"
    )


def test_thread_line_omitted_without_thread():
    text = render_conversation(_conv([("alice", "hi")]))
    assert "Thread:" not in text


def test_empty_conversation_renders_empty():
    assert render_conversation(_conv([])) == ""


def test_missing_sender_rendered_empty():
    text = render_conversation(_conv([("", "hello")]))
    assert "[1] : hello" in text


def test_sender_colon_escaped():
    text = render_conversation(_conv([("ops: bot", "deploy done")]))
    assert "[1] ops\\: bot: deploy done" in text


def test_round_trip_recovers_messages():
    messages = [
        ("alice", "deploy failed: see [2] in the log"),
        ("bob", "multi\nline body"),
        ("carol", "ratio 3:1 and a colon: here"),
        ("dave", "[9] bracketed start"),
        ("ops: bot", "deploy done"),
        ("", "thanks"),
        ("back\\slash\nname", "ok"),
    ]
    assert parse_rendered(render_conversation(_conv(messages))) == messages


def test_humanize_duration_units():
    assert humanize_duration(T0, T0) == "0 seconds"
    assert humanize_duration(T0, T0 + timedelta(seconds=1)) == "1 second"
    assert humanize_duration(T0, T0 + timedelta(seconds=59)) == "59 seconds"
    assert humanize_duration(T0, T0 + timedelta(minutes=2, seconds=30)) == "2 minutes"
    assert humanize_duration(T0, T0 + timedelta(hours=1)) == "1 hour"
    assert humanize_duration(T0, T0 + timedelta(days=3)) == "3 days"
