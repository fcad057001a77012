"""Defensive JSON recovery for LLM responses.

Models wrap JSON in markdown fences, prepend prose, or stop mid-object when
they hit the token limit. These helpers peel off the noise, pull out the
first balanced JSON value, and as a last resort cut a truncated value back
to its last complete member and close it.
"""

import json
import re
from typing import Any, Iterator

import structlog

logger = structlog.get_logger()

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*[ \t]*\n?", re.MULTILINE)
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```[ \t]*$", re.MULTILINE)

_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` wrapper lines."""
    text = text.strip()
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def _balanced_end(text: str, start: int) -> int | None:
    """Index of the bracket closing the one at ``start``, string-aware."""
    stack: list[str] = []
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return None
            stack.pop()
            if not stack:
                return i
    return None


def _opener_positions(text: str, opener: str) -> Iterator[int]:
    pos = text.find(opener)
    while pos != -1:
        yield pos
        pos = text.find(opener, pos + 1)


def extract_balanced(text: str, opener: str = "{") -> str | None:
    """Return the first balanced ``{...}`` (or ``[...]``) block in text."""
    for start in _opener_positions(text, opener):
        end = _balanced_end(text, start)
        if end is not None:
            return text[start : end + 1]
    return None


def repair_truncated(text: str, opener: str = "{") -> Any | None:
    """Close a truncated JSON value at its last complete member.

    Scans from the first ``opener``; every top-level-or-nested comma outside
    a string is a candidate cut point. Tries the whole fragment first (when it
    does not end inside a string), then each cut from last to first, closing
    all open brackets. Returns the parsed value or None.
    """
    start = text.find(opener)
    if start == -1:
        return None
    fragment = text[start:]

    stack: list[str] = []
    cuts: list[tuple[int, str]] = []
    in_string = False
    escape = False
    for i, ch in enumerate(fragment):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return None
            stack.pop()
            if not stack:
                # Balanced after all; nothing to repair.
                return _try_load(fragment[: i + 1])
        elif ch == ",":
            cuts.append((i, "".join(reversed(stack))))

    candidates = []
    if not in_string:
        tail = fragment.rstrip().rstrip(",")
        candidates.append(tail + "".join(reversed(stack)))
    candidates.extend(fragment[:i] + closers for i, closers in reversed(cuts))

    for candidate in candidates:
        value = _try_load(candidate)
        if value is not None:
            logger.info("json_repaired", original_chars=len(fragment), kept_chars=len(candidate))
            return value
    return None


def _try_load(text: str) -> Any | None:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _parse(text: str, opener: str, expected: type) -> Any | None:
    if not text or not text.strip():
        return None
    cleaned = strip_code_fences(text)

    for start in _opener_positions(cleaned, opener):
        end = _balanced_end(cleaned, start)
        if end is None:
            break
        value = _try_load(cleaned[start : end + 1])
        if isinstance(value, expected):
            return value

    value = repair_truncated(cleaned, opener)
    if isinstance(value, expected):
        return value

    logger.warning("json_unrecoverable", preview=cleaned[:200])
    return None


def parse_json_object(text: str) -> dict | None:
    """Best-effort parse of a single JSON object out of an LLM response."""
    return _parse(text, "{", dict)


def parse_json_array(text: str) -> list | None:
    """Best-effort parse of a JSON array out of an LLM response."""
    return _parse(text, "[", list)
