"""Strict parser for the one-action-per-turn directive protocol.

The planner answers in free text; only lines that start with a recognized
keyword are considered. The first valid line wins, anything else yields
``None`` so the caller can skip the turn.
"""
from __future__ import annotations

import re

from profile_scout.models.research import Action, Conclude, Extract, Navigate, Observe, Search
from profile_scout.tools import web_utils

ARGUMENT_LINE = re.compile(r"^(?P<keyword>SEARCH|NAVIGATE|EXTRACT|OBSERVE):\s*(?P<rest>.*)$")
CONCLUDE_LINE = re.compile(r"^CONCLUDE\s*\.?$")

# Decoration models tend to wrap lines in: bullets, numbering, bold/code marks.
LINE_DECORATION = re.compile(r"^(?:[-*>]\s*|\d+[.)]\s*)?[`*_]*")
TRAILING_DECORATION = re.compile(r"[`*_]+$")
# Closing marks left after the keyword when only the keyword is emphasised.
ARGUMENT_DECORATION = re.compile(r"^[`*_]+")


def _clean_line(line: str) -> str:
    line = LINE_DECORATION.sub("", line.strip(), count=1)
    return TRAILING_DECORATION.sub("", line).strip()


def _parse_line(line: str) -> Action | None:
    if CONCLUDE_LINE.match(line):
        return Conclude()

    match = ARGUMENT_LINE.match(line)
    if not match:
        return None
    keyword = match.group("keyword")
    rest = ARGUMENT_DECORATION.sub("", match.group("rest").strip()).strip()
    if not rest:
        return None

    if keyword == "SEARCH":
        return Search(query=rest)
    if keyword == "NAVIGATE":
        url = rest.strip("<>\"' ")
        if not web_utils.is_valid_url(url):
            return None
        return Navigate(url=url)
    if keyword == "EXTRACT":
        return Extract(instruction=rest)
    return Observe(instruction=rest)


def parse_action(text: str | None) -> Action | None:
    """Return the first well-formed action in ``text``, or ``None`` if there is none."""
    if not text:
        return None
    for raw_line in text.splitlines():
        line = _clean_line(raw_line)
        if not line:
            continue
        action = _parse_line(line)
        if action is not None:
            return action
    return None


def describe(action: Action) -> str:
    """Short label used in logs and the iteration record."""
    if isinstance(action, Search):
        return f"search:{action.query}"
    if isinstance(action, Navigate):
        return f"navigate:{action.url}"
    if isinstance(action, Extract):
        return f"extract:{action.instruction}"
    if isinstance(action, Observe):
        return f"observe:{action.instruction}"
    return "conclude"
