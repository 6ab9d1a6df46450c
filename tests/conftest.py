"""Shared pytest fixtures for punch-ledger tests."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

import pytest
from dotenv import load_dotenv

from punch_ledger.errors import NoChangesMadeError
from punch_ledger.models import Client, RemoteRecord, Session
from punch_ledger.store import SqliteSessionStore

load_dotenv()


MONDAY = datetime(2026, 3, 2)


class RecordingStore(SqliteSessionStore):
    """In-memory store that records every real (non dry-run) write."""

    def __init__(self) -> None:
        super().__init__(":memory:")
        self.writes: list[tuple[str, Optional[int]]] = []

    def insert(self, session: Session, dry_run: bool = False) -> Session:
        stored = super().insert(session, dry_run=dry_run)
        if not dry_run:
            self.writes.append(("insert", stored.id))
        return stored

    def update(self, session: Session, dry_run: bool = False) -> Session:
        stored = super().update(session, dry_run=dry_run)
        if not dry_run:
            self.writes.append(("update", stored.id))
        return stored

    def delete(self, session: Session, dry_run: bool = False) -> None:
        super().delete(session, dry_run=dry_run)
        if not dry_run:
            self.writes.append(("delete", session.id))


class FakeRemote:
    """In-memory ``RemoteMirror`` keyed by row number."""

    def __init__(self, sessions: Optional[list[Session]] = None) -> None:
        self.rows: dict[int, Session] = {}
        self.appended: list[Session] = []
        self.overwritten: list[tuple[int, Session]] = []
        for session in sessions or []:
            self.rows[len(self.rows) + 1] = session

    def read_all(self) -> list[RemoteRecord]:
        return [
            RemoteRecord(session=session, row=row)
            for row, session in sorted(self.rows.items())
        ]

    def append(self, session: Session) -> None:
        self.appended.append(session)
        self.rows[max(self.rows, default=0) + 1] = session

    def overwrite(self, row: int, session: Session) -> None:
        self.overwritten.append((row, session))
        self.rows[row] = session

    def reset_calls(self) -> None:
        self.appended.clear()
        self.overwritten.clear()


class FakeEditor:
    """``InteractiveEditor`` that applies *transform* to the document.

    Raises ``NoChangesMadeError`` when the transform returns the text
    unchanged (the default), like a human quitting without saving.
    """

    def __init__(self, transform: Optional[Callable[[str], str]] = None) -> None:
        self.transform = transform or (lambda text: text)
        self.seen: list[str] = []

    def edit(self, text: str) -> str:
        self.seen.append(text)
        edited = self.transform(text)
        if edited == text:
            raise NoChangesMadeError()
        return edited


class FakeSheetValues:
    """In-memory ``SheetValues`` transport."""

    def __init__(self, rows: Optional[list[list[str]]] = None) -> None:
        self.rows: list[list[str]] = rows if rows is not None else []
        self.appended: list[list[str]] = []
        self.updated: list[tuple[int, list[str]]] = []

    def get_rows(self) -> list[list[str]]:
        return [list(r) for r in self.rows]

    def append_row(self, values: list[str]) -> None:
        self.appended.append(values)
        self.rows.append(values)

    def update_row(self, row: int, values: list[str]) -> None:
        self.updated.append((row, values))
        self.rows[row] = values


HEADER = ["id", "client", "date", "start_time", "end_time", "total_time", "note"]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    """Empty in-memory store that records writes."""
    s = RecordingStore()
    yield s
    s.close()


@pytest.fixture
def acme():
    return Client(name="Acme", pph=50)


@pytest.fixture
def globex():
    return Client(name="Globex", pph=80, currency="EUR")


@pytest.fixture
def at():
    """Build a datetime on Monday 2026-03-02 from ``"HH:MM"``."""

    def _at(clock: str, day: int = 0) -> datetime:
        hours, minutes = (int(p) for p in clock.split(":"))
        return MONDAY.replace(day=MONDAY.day + day, hour=hours, minute=minutes)

    return _at


@pytest.fixture
def fake_remote():
    """Factory for a ``FakeRemote`` pre-filled with sessions."""

    def _create(*sessions: Session) -> FakeRemote:
        return FakeRemote(list(sessions))

    return _create


@pytest.fixture
def fake_editor():
    """Factory for a ``FakeEditor`` with an optional transform."""

    def _create(transform=None) -> FakeEditor:
        return FakeEditor(transform)

    return _create


@pytest.fixture
def sheet_values():
    """Factory for ``FakeSheetValues`` with a default header row."""

    def _create(*rows: list[str], header: Optional[list[str]] = None):
        return FakeSheetValues([list(header or HEADER), *map(list, rows)])

    return _create
