"""Deterministic command parser.

Plain regular expressions, no model calls and no I/O. Patterns are tried in
order and the first match wins; ``None`` means no intent matched.
"""
from __future__ import annotations

import re
from typing import Any, Callable, Dict

from .contracts import ParsedIntent

_CREATE_TASK = re.compile(r"^create task:\s*(.+)$", re.IGNORECASE)
_SUMMARIZE_THREAD = re.compile(r"^summarize thread:\s*(.+)$", re.IGNORECASE)
_SYSTEM_HEALTH = re.compile(r"^system health(?:\s+(details))?$", re.IGNORECASE)
_DRAFT_EMAIL = re.compile(
    r"^draft email to:\s*(\S+)\s+subject:\s*(.+?)\s+context:\s*(.+)$",
    re.IGNORECASE,
)


def _create_task(match: re.Match[str]) -> Dict[str, Any]:
    return {"title": match.group(1).strip()}


def _summarize_thread(match: re.Match[str]) -> Dict[str, Any]:
    return {"threadId": match.group(1).strip()}


def _system_health(match: re.Match[str]) -> Dict[str, Any]:
    return {"includeDetails": match.group(1) is not None}


def _draft_email(match: re.Match[str]) -> Dict[str, Any]:
    return {
        "to": match.group(1).strip(),
        "subject": match.group(2).strip(),
        "context": match.group(3).strip(),
    }


INTENT_PATTERNS: list[tuple[str, re.Pattern[str], Callable[[re.Match[str]], Dict[str, Any]]]] = [
    ("assistant.create_task", _CREATE_TASK, _create_task),
    ("assistant.summarize_inbox_thread", _SUMMARIZE_THREAD, _summarize_thread),
    ("assistant.system_health_check", _SYSTEM_HEALTH, _system_health),
    ("assistant.draft_email", _DRAFT_EMAIL, _draft_email),
]


def parse_intent(text: str) -> ParsedIntent | None:
    trimmed = str(text or "").strip()
    if not trimmed:
        return None
    for tool_id, pattern, build_input in INTENT_PATTERNS:
        match = pattern.match(trimmed)
        if match:
            return ParsedIntent(tool_id=tool_id, input=build_input(match))
    return None
