"""Merge-document format for human conflict resolution.

A merge document is a sequence of YAML blocks, one per session,
separated by a ``---`` line.  Each block carries the fields ``id``,
``client``, ``date``, ``start_time``, ``end_time`` and ``note``::

    id: '12'
    client: Acme
    date: '2026-03-02'
    start_time: 09:00:00
    end_time: '17:30:00'
    note: standup; reviews

An open session has an empty ``end_time``.  A session that ends on a
later calendar day carries the offset after the time, e.g.
``01:30:00 (+1 day)``.

Blocks are parsed with ``yaml.BaseLoader`` so every value stays a string
no matter how the human quotes it.  Parsing is all-or-nothing: one bad
record fails the whole document.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

import yaml
from pydantic import ValidationError

from punch_ledger.errors import MergeParseError
from punch_ledger.models import Client, Session

SEPARATOR = "---"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"
FIELDS = ("id", "client", "date", "start_time", "end_time", "note")

_END_TIME_PATTERN = re.compile(
    r"^(?P<time>\d{1,2}:\d{2}(?::\d{2})?)"
    r"(?:\s*\(\+(?P<days>\d+)\s*days?\))?$"
)
_OPEN_VALUES = {"", "n/a"}


# ------------------------------------------------------------------
# Serialization
# ------------------------------------------------------------------


def session_to_block(session: Session) -> dict[str, str]:
    """Return the editable field mapping for one session."""
    end_time = ""
    if session.end is not None:
        end_time = session.end.strftime(TIME_FORMAT)
        days = (session.end.date() - session.start.date()).days
        if days > 0:
            end_time += f" (+{days} day{'s' if days > 1 else ''})"
    return {
        "id": "" if session.id is None else str(session.id),
        "client": session.client.name,
        "date": session.start.strftime(DATE_FORMAT),
        "start_time": session.start.strftime(TIME_FORMAT),
        "end_time": end_time,
        "note": session.note,
    }


def serialize_lines(sessions: list[Session]) -> list[str]:
    """Serialize *sessions* to document lines (no trailing newlines)."""
    lines: list[str] = []
    for i, session in enumerate(sessions):
        if i > 0:
            lines.append(SEPARATOR)
        block = yaml.safe_dump(
            session_to_block(session),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
            width=1_000_000,
        )
        lines.extend(block.splitlines())
    return lines


def serialize_sessions(sessions: list[Session]) -> str:
    """Serialize *sessions* to a merge document body."""
    lines = serialize_lines(sessions)
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------


def parse_document(text: str) -> list[Session]:
    """Parse a merge document back into sessions.

    Raises:
        MergeParseError: The document is not valid YAML, or any record
            has a bad id, a bad date/time, or ``start >= end``.
    """
    try:
        documents = list(yaml.load_all(text, Loader=yaml.BaseLoader))
    except yaml.YAMLError as exc:
        raise MergeParseError(f"Merge document is not valid YAML: {exc}") from exc

    sessions: list[Session] = []
    for index, document in enumerate(documents, start=1):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise MergeParseError(
                f"Record {index} is not a mapping of session fields"
            )
        sessions.append(block_to_session(document, index))
    return sessions


def block_to_session(block: dict[str, str], index: int = 1) -> Session:
    """Convert one parsed block into a ``Session``."""
    missing = [f for f in ("client", "date", "start_time") if not block.get(f)]
    if missing:
        raise MergeParseError(
            f"Record {index} is missing required field(s): {', '.join(missing)}"
        )

    raw_id = str(block.get("id", "")).strip()
    session_id: int | None = None
    if raw_id:
        if not raw_id.isdigit():
            raise MergeParseError(
                f"Record {index}: invalid ID format for session: {raw_id}"
            )
        session_id = int(raw_id)

    start = _parse_datetime(block["date"], block["start_time"], index)
    end = _parse_end(block["date"], str(block.get("end_time", "")), index)

    if end is not None and start >= end:
        raise MergeParseError(
            f"Record {index}: start time must be before end time"
        )

    try:
        return Session(
            id=session_id,
            client=Client(name=block["client"]),
            start=start,
            end=end,
            note=str(block.get("note", "")),
        )
    except ValidationError as exc:
        raise MergeParseError(f"Record {index}: {exc}") from exc


def _parse_datetime(date: str, clock: str, index: int) -> datetime:
    value = f"{date.strip()} {clock.strip()}"
    for fmt in (f"{DATE_FORMAT} {TIME_FORMAT}", f"{DATE_FORMAT} %H:%M"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise MergeParseError(f"Record {index}: invalid date/time '{value}'")


def _parse_end(date: str, raw: str, index: int) -> datetime | None:
    raw = raw.strip()
    if raw.lower() in _OPEN_VALUES:
        return None
    match = _END_TIME_PATTERN.match(raw)
    if match is None:
        raise MergeParseError(f"Record {index}: invalid end time '{raw}'")
    end = _parse_datetime(date, match.group("time"), index)
    days = int(match.group("days") or 0)
    return end + timedelta(days=days)
