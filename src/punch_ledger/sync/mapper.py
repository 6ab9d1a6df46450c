"""Pair local sessions with remote rows.

Matching resolution:

1. **By id** -- a remote row carrying the session's id wins.
2. **By similarity** -- same client (case-insensitive) and same start
   second, for rows that carry no id or a foreign one.
3. **No match** -- the session is new to the remote.

When several rows share an id or a similarity key, the first row (lowest
row handle) wins.
"""

from __future__ import annotations

from datetime import datetime

from punch_ledger.models import RemoteRecord, Session


def similarity_key(session: Session) -> tuple[str, datetime]:
    """Return the ``(client, start second)`` key used for fallback matching."""
    return session.client.key, session.start.replace(microsecond=0)


class RecordMapper:
    """Index remote records for lookup by id and by similarity.

    Args:
        records: Records as returned by ``RemoteMirror.read_all()``.
    """

    def __init__(self, records: list[RemoteRecord]) -> None:
        self._by_id: dict[int, RemoteRecord] = {}
        self._by_key: dict[tuple[str, datetime], RemoteRecord] = {}
        for record in sorted(records, key=lambda r: r.row):
            if record.session.id is not None:
                self._by_id.setdefault(record.session.id, record)
            self._by_key.setdefault(similarity_key(record.session), record)

    def match(self, session: Session) -> RemoteRecord | None:
        """Return the remote record for *session*, or ``None``."""
        if session.id is not None and session.id in self._by_id:
            return self._by_id[session.id]
        return self._by_key.get(similarity_key(session))

    def pairs(
        self, sessions: list[Session]
    ) -> list[tuple[Session, RemoteRecord | None]]:
        """Pair every session with its remote record (or ``None``)."""
        return [(session, self.match(session)) for session in sessions]
