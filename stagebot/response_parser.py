"""Recover structured findings from the reviewer model's free-text reply.

The model is asked for blocks like::

    FILE: src/Foo.cs
    LINE: 42
    SEVERITY: High
    ISSUE: ...
    ---

but it does not reliably follow that shape. Field headers are accepted in
plain (``FILE:``) and bold (``**FILE:**``) notation, in any order, with
repeats (last value wins). Lines that match nothing are ignored.
"""

import logging
import re
from collections.abc import Callable

from .models.review import Finding

logger = logging.getLogger(__name__)

TERMINATOR = "---"
MARKDOWN_PADDING = "*` "

_LEVELS = {"high": "High", "medium": "Medium", "low": "Low"}

RULE_SOURCES: tuple[tuple[str, str], ...] = (
    ("nnf-", "NNF"),
    ("repo-", "Repo"),
    ("team-", "Team"),
)
DEFAULT_RULE_SOURCE = "AI"

Record = dict[str, object]


def rule_source_for(check_id: str) -> str:
    """Provenance label implied by a check id's prefix."""
    lowered = check_id.strip().lower()
    for prefix, source in RULE_SOURCES:
        if lowered.startswith(prefix):
            return source
    return DEFAULT_RULE_SOURCE


def _set_text(field: str) -> Callable[[Record, str], None]:
    def setter(record: Record, value: str) -> None:
        record[field] = value
    return setter


def _set_level(field: str) -> Callable[[Record, str], None]:
    def setter(record: Record, value: str) -> None:
        level = _LEVELS.get(value.lower())
        if level is None:
            logger.debug("[parse] Unrecognized %s %r, keeping default", field, value)
            return
        record[field] = level
    return setter


def _set_line(record: Record, value: str) -> None:
    if value.isascii() and value.isdigit():
        record["line_number"] = int(value)


def _set_check_id(record: Record, value: str) -> None:
    record["check_id"] = value
    record["rule_source"] = rule_source_for(value)


FIELD_SETTERS: dict[str, Callable[[Record, str], None]] = {
    "LINE": _set_line,
    "SEVERITY": _set_level("severity"),
    "CONFIDENCE": _set_level("confidence"),
    "ISSUE": _set_text("issue"),
    "SUGGESTION": _set_text("suggestion"),
    "FIXEDCODE": _set_text("fixed_code"),
    "RULE": _set_text("rule"),
    "CHECKID": _set_check_id,
}

_FIELD_LINE = re.compile(
    r"^(?:\*\*)?(?P<key>FILE|" + "|".join(FIELD_SETTERS) + r")(?:\*\*)?:(?:\*\*)?(?P<value>.*)$",
    re.IGNORECASE,
)


def _has_issue(record: Record | None) -> bool:
    return record is not None and bool(record.get("issue"))


def parse_review_response(reply: str) -> list[Finding]:
    """Parse the model's reply into findings, in the order they appear.

    A ``FILE:`` line starts a new record and flushes any record in progress
    as-is. A ``---`` line, and the end of input, flush the record in
    progress only when it has issue text; otherwise it is discarded.
    Never raises on malformed text.
    """
    findings: list[Finding] = []
    current: Record | None = None

    for raw_line in reply.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if line == TERMINATOR:
            if _has_issue(current):
                findings.append(Finding(**current))
            elif current is not None:
                logger.debug("[parse] Dropping record without issue for %s", current.get("file_path"))
            current = None
            continue

        match = _FIELD_LINE.match(line)
        if not match:
            continue

        key = match.group("key").upper()
        value = match.group("value").strip(MARKDOWN_PADDING)

        if key == "FILE":
            if current is not None:
                findings.append(Finding(**current))
            current = {"file_path": value}
            continue

        if current is None:
            continue
        FIELD_SETTERS[key](current, value)

    if _has_issue(current):
        findings.append(Finding(**current))

    logger.info("[parse] Recovered %d finding(s) from %d chars", len(findings), len(reply))
    return findings
