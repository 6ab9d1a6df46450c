"""Local session store.

``SessionStore`` is the capability the clock and the sync engine depend
on; ``SqliteSessionStore`` is the store of record shipped with the
package.

Key design choices:

* **One write, one transaction** -- every mutating call commits on its
  own, so a failure part-way through a sync leaves each record
  individually consistent.
* **Dry runs** -- every mutating call accepts ``dry_run=True`` and runs
  the same validation without touching the database.  The sync engine
  uses this to classify remote sessions before any write happens.
* **Ids are assigned here** -- a session inserted without an id gets the
  next autoincrement value; a session inserted with an id keeps it.
* **One open session per client** -- enforced both by an explicit check
  and by a partial unique index.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Protocol

from .config_schema import DatabaseConfig
from .errors import (
    ClientNotFoundError,
    DuplicateIdError,
    SessionConflictError,
    SessionNotFoundError,
)
from .models import Client, Session

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class SessionStore(Protocol):
    """Protocol that every local session store must satisfy."""

    def insert(self, session: Session, dry_run: bool = False) -> Session:
        """Insert a new session and return it with its id.

        Raises:
            DuplicateIdError: The session's id is already taken.
            SessionConflictError: A similar session exists, or the client
                already has an open session.
        """
        ...  # pragma: no cover

    def upsert(self, session: Session, dry_run: bool = False) -> Session:
        """Update by id, else by similar match, else insert."""
        ...  # pragma: no cover

    def update(self, session: Session, dry_run: bool = False) -> Session:
        """Overwrite the stored session that has the same id."""
        ...  # pragma: no cover

    def delete(self, session: Session, dry_run: bool = False) -> None:
        """Delete the stored session that has the same id."""
        ...  # pragma: no cover

    def get_by_id(self, session_id: int) -> Session:
        """Return the session with *session_id* or raise ``SessionNotFoundError``."""
        ...  # pragma: no cover

    def get_open_session(self, client: Client) -> Session:
        """Return the client's open session or raise ``SessionNotFoundError``."""
        ...  # pragma: no cover

    def get_latest(self, client: Client) -> Session:
        """Return the client's most recent session."""
        ...  # pragma: no cover

    def get_all(self) -> list[Session]:
        """Return every session ordered by start."""
        ...  # pragma: no cover

    def get_between(self, start: datetime, end: datetime) -> list[Session]:
        """Return sessions starting in ``[start, end)``."""
        ...  # pragma: no cover

    def find_similar(self, session: Session) -> Session | None:
        """Return a stored session similar to *session*, if any."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# SQLite implementation
# ---------------------------------------------------------------------------

SCHEMA = """
CREATE TABLE IF NOT EXISTS clients (
    name TEXT PRIMARY KEY COLLATE NOCASE,
    pph INTEGER NOT NULL DEFAULT 0,
    currency TEXT NOT NULL DEFAULT 'USD'
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_name TEXT NOT NULL COLLATE NOCASE,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    note TEXT NOT NULL DEFAULT '',
    FOREIGN KEY (client_name) REFERENCES clients(name)
);

CREATE INDEX IF NOT EXISTS idx_sessions_client ON sessions(client_name);
CREATE INDEX IF NOT EXISTS idx_sessions_started ON sessions(started_at);
CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_one_open
    ON sessions(client_name) WHERE ended_at IS NULL;
"""

_SELECT = """
SELECT s.id, s.client_name, s.started_at, s.ended_at, s.note,
       c.name AS client, c.pph, c.currency
FROM sessions s JOIN clients c ON c.name = s.client_name
"""


def _to_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat(timespec="seconds")


class SqliteSessionStore:
    """SQLite-backed ``SessionStore``.

    Args:
        path: Database file path, or ``":memory:"`` for a throwaway store.
    """

    def __init__(self, path: Path | str = ":memory:") -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._path = str(path)
        self._conn = sqlite3.connect(self._path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA)

    @classmethod
    def from_config(cls, database: DatabaseConfig) -> SqliteSessionStore:
        """Open the store described by a ``database`` config section."""
        path = database.path
        if path != ":memory:":
            path = str(Path(path).expanduser())
        logger.debug("Opening session store at %s", path)
        return cls(path)

    def close(self) -> None:
        """Close the underlying connection."""
        self._conn.close()

    def __enter__(self) -> SqliteSessionStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def add_client(self, client: Client) -> Client:
        """Register *client*, or update its rate and currency if known."""
        with self._conn:
            self._conn.execute(
                "INSERT INTO clients (name, pph, currency) VALUES (?, ?, ?) "
                "ON CONFLICT(name) DO UPDATE SET pph = excluded.pph, "
                "currency = excluded.currency",
                (client.name, client.pph, client.currency),
            )
        return self.get_client(client.name)

    def get_client(self, name: str) -> Client:
        """Return the client registered under *name* (case-insensitive)."""
        row = self._conn.execute(
            "SELECT name, pph, currency FROM clients WHERE name = ?",
            (name.strip(),),
        ).fetchone()
        if row is None:
            raise ClientNotFoundError(f"Client '{name}' not found")
        return Client(
            name=row["name"], pph=row["pph"], currency=row["currency"]
        )

    def list_clients(self) -> list[Client]:
        """Return every registered client ordered by name."""
        rows = self._conn.execute(
            "SELECT name, pph, currency FROM clients ORDER BY name"
        ).fetchall()
        return [
            Client(name=r["name"], pph=r["pph"], currency=r["currency"])
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, session: Session, dry_run: bool = False) -> Session:
        """Insert *session*; see ``SessionStore.insert``."""
        if session.id is not None and self._exists(session.id):
            raise DuplicateIdError(session.id)

        similar = self.find_similar(session)
        if similar is not None:
            raise SessionConflictError(
                f"A similar session already exists (id={similar.id}, "
                f"client={similar.client.name}, start={similar.start})",
                existing=similar,
            )

        if session.is_open:
            self._check_single_open(session)

        if dry_run:
            return session

        try:
            with self._conn:
                self._ensure_client(session.client)
                cursor = self._conn.execute(
                    "INSERT INTO sessions "
                    "(id, client_name, started_at, ended_at, note) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        session.id,
                        session.client.name,
                        _to_text(session.start),
                        _to_text(session.end),
                        session.note,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise SessionConflictError(
                f"Uniqueness violation inserting session for "
                f"'{session.client.name}': {exc}"
            ) from exc

        stored = session.model_copy(update={"id": cursor.lastrowid})
        logger.debug("Inserted session %s", stored.id)
        return stored

    def update(self, session: Session, dry_run: bool = False) -> Session:
        """Overwrite the stored session with the same id."""
        if session.id is None:
            raise SessionNotFoundError("Cannot update a session without an id")
        if not self._exists(session.id):
            raise SessionNotFoundError(f"Session {session.id} not found")

        if session.is_open:
            self._check_single_open(session)

        if dry_run:
            return session

        try:
            with self._conn:
                self._ensure_client(session.client)
                self._conn.execute(
                    "UPDATE sessions SET client_name = ?, started_at = ?, "
                    "ended_at = ?, note = ? WHERE id = ?",
                    (
                        session.client.name,
                        _to_text(session.start),
                        _to_text(session.end),
                        session.note,
                        session.id,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise SessionConflictError(
                f"Uniqueness violation updating session {session.id}: {exc}"
            ) from exc

        logger.debug("Updated session %s", session.id)
        return session

    def upsert(self, session: Session, dry_run: bool = False) -> Session:
        """Update by id, else by similar match (recovering its id), else insert."""
        if session.id is not None and self._exists(session.id):
            return self.update(session, dry_run=dry_run)

        similar = self.find_similar(session)
        if similar is not None:
            logger.debug(
                "Upsert matched session %s by similarity", similar.id
            )
            return self.update(
                session.model_copy(update={"id": similar.id}),
                dry_run=dry_run,
            )

        return self.insert(session, dry_run=dry_run)

    def delete(self, session: Session, dry_run: bool = False) -> None:
        """Delete the stored session with the same id."""
        if session.id is None or not self._exists(session.id):
            raise SessionNotFoundError(f"Session {session.id} not found")
        if dry_run:
            return
        with self._conn:
            self._conn.execute(
                "DELETE FROM sessions WHERE id = ?", (session.id,)
            )
        logger.info("Deleted session %s", session.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, session_id: int) -> Session:
        row = self._conn.execute(
            _SELECT + "WHERE s.id = ?", (session_id,)
        ).fetchone()
        if row is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return self._row_to_session(row)

    def get_open_session(self, client: Client) -> Session:
        row = self._conn.execute(
            _SELECT
            + "WHERE s.client_name = ? AND s.ended_at IS NULL "
            "ORDER BY s.started_at DESC LIMIT 1",
            (client.name,),
        ).fetchone()
        if row is None:
            raise SessionNotFoundError(
                f"No open session for client '{client.name}'"
            )
        return self._row_to_session(row)

    def get_latest(self, client: Client) -> Session:
        row = self._conn.execute(
            _SELECT
            + "WHERE s.client_name = ? "
            "ORDER BY s.started_at DESC, s.id DESC LIMIT 1",
            (client.name,),
        ).fetchone()
        if row is None:
            raise SessionNotFoundError(
                f"No sessions for client '{client.name}'"
            )
        return self._row_to_session(row)

    def get_all(self) -> list[Session]:
        rows = self._conn.execute(
            _SELECT + "ORDER BY s.started_at, s.id"
        ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def get_for_client(self, client: Client) -> list[Session]:
        rows = self._conn.execute(
            _SELECT + "WHERE s.client_name = ? ORDER BY s.started_at, s.id",
            (client.name,),
        ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def get_between(self, start: datetime, end: datetime) -> list[Session]:
        rows = self._conn.execute(
            _SELECT
            + "WHERE s.started_at >= ? AND s.started_at < ? "
            "ORDER BY s.started_at, s.id",
            (_to_text(start), _to_text(end)),
        ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def find_similar(self, session: Session) -> Session | None:
        row = self._conn.execute(
            _SELECT + "WHERE s.client_name = ? AND s.started_at = ?",
            (session.client.name, _to_text(session.start)),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_session(row)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _exists(self, session_id: int) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return row is not None

    def _check_single_open(self, session: Session) -> None:
        row = self._conn.execute(
            "SELECT id FROM sessions WHERE client_name = ? "
            "AND ended_at IS NULL AND id IS NOT ?",
            (session.client.name, session.id),
        ).fetchone()
        if row is not None:
            raise SessionConflictError(
                f"Client '{session.client.name}' already has an open "
                f"session (id={row['id']})"
            )

    def _ensure_client(self, client: Client) -> None:
        """Register an unknown client; never touch a known client's rate."""
        self._conn.execute(
            "INSERT OR IGNORE INTO clients (name, pph, currency) "
            "VALUES (?, ?, ?)",
            (client.name, client.pph, client.currency),
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            client=Client(
                name=row["client"], pph=row["pph"], currency=row["currency"]
            ),
            start=datetime.fromisoformat(row["started_at"]),
            end=(
                datetime.fromisoformat(row["ended_at"])
                if row["ended_at"]
                else None
            ),
            note=row["note"],
        )
