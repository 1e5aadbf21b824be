"""Text helpers shared by the planner and the orchestration loop."""

import re

TRUNCATION_MARKER = "...[truncated]..."

_AGENT_ID_INVALID = re.compile(r"[^a-z0-9]+")
_TASK_KEY_INVALID = re.compile(r"[^a-z0-9._:-]+")

TASK_KEY_MAX_LENGTH = 80
SUMMARY_MAX_LENGTH = 180


def normalize_agent_id(value: str) -> str:
    """Normalize an agent id or display name to a slug ("QA Agent" -> "qa-agent")."""
    return _AGENT_ID_INVALID.sub("-", value.strip().lower()).strip("-")


def normalize_task_key(raw: str | None) -> str | None:
    """Slug-normalize a planner supplied task key.

    Lower-cases, collapses runs of characters outside ``[a-z0-9._:-]`` into a
    single dash, trims dashes, and caps the length.

    Args:
        raw: Task key as written by the planner

    Returns:
        Normalized key, or None when nothing usable remains
    """
    value = (raw or "").strip().lower()
    if not value:
        return None
    normalized = _TASK_KEY_INVALID.sub("-", value)
    normalized = re.sub(r"-+", "-", normalized).strip("-")
    normalized = normalized[:TASK_KEY_MAX_LENGTH]
    return normalized or None


def clamp_text(value: str, max_chars: int) -> str:
    """Clamp text to a character budget keeping its head and its tail.

    The first 70% of the budget is kept from the start of the text and the
    remainder from the end, joined by a truncation marker.
    """
    if len(value) <= max_chars:
        return value
    head = value[: int(max_chars * 0.7)]
    tail_length = max(0, max_chars - len(head) - 20)
    tail = value[-tail_length:] if tail_length else ""
    return f"{head}\n{TRUNCATION_MARKER}\n{tail}"


def summarize_text(value: str, max_chars: int = SUMMARY_MAX_LENGTH) -> str:
    """Collapse whitespace and cap text to a single short line."""
    normalized = re.sub(r"\s+", " ", value).strip()
    if len(normalized) <= max_chars:
        return normalized
    return f"{normalized[: max_chars - 3]}..."


def ensure_trailing_newline(value: str) -> str:
    return value if value.endswith("\n") else f"{value}\n"
