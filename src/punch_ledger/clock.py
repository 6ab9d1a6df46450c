"""Punch-in / punch-out state machine.

Each client is either **Closed** (no open session) or **Open** (exactly
one session without an end).  ``SessionClock`` moves a client between
the two states and writes exactly one record through the
``SessionStore`` per successful transition.
"""

from __future__ import annotations

import logging
from datetime import datetime, time
from typing import Callable

from .errors import (
    AlreadyEndedError,
    AlreadyStartedError,
    DuplicateIdError,
    InvalidSessionError,
    SessionConflictError,
    SessionNotFoundError,
)
from .models import Client, Session, Transition
from .store import SessionStore

logger = logging.getLogger(__name__)

NOTE_SEPARATOR = "; "


def append_note(existing: str, note: str) -> str:
    """Join *note* onto *existing* with ``"; "``, skipping empty parts."""
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}{NOTE_SEPARATOR}{note}"


def overnight_marker(start: datetime, end: datetime) -> str:
    """Return ``"(+N day[s])"`` when *end* falls on a later calendar day."""
    days = (end.date() - start.date()).days
    if days <= 0:
        return ""
    return f"(+{days} day{'s' if days > 1 else ''})"


class SessionClock:
    """Start, end and toggle sessions for a client.

    Args:
        store: The local session store.
        now: Callable returning the current time; injectable for tests.
    """

    def __init__(
        self,
        store: SessionStore,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self._now = now

    def toggle(
        self, client: Client, note: str = ""
    ) -> tuple[Session, Transition]:
        """End the client's open session, or start a new one.

        Returns:
            The resulting session and the transition that occurred.
        """
        timestamp = self._now()
        try:
            current = self.store.get_latest(client)
        except SessionNotFoundError:
            current = None

        if current is None or not current.is_open:
            return self.start(client, timestamp, note), Transition.STARTED
        return self.end(current, timestamp, note), Transition.ENDED

    def start(
        self, client: Client, timestamp: datetime, note: str = ""
    ) -> Session:
        """Open a new session for *client* at *timestamp*.

        Raises:
            AlreadyStartedError: The client already has an open session.
        """
        try:
            current = self.store.get_open_session(client)
        except SessionNotFoundError:
            current = None

        if current is not None:
            day_start = datetime.combine(timestamp.date(), time.min)
            if current.start >= day_start:
                raise AlreadyStartedError(
                    f"Session for '{client.name}' already started at "
                    f"{current.start:%H:%M:%S}"
                )
            raise AlreadyStartedError(
                f"Session for '{client.name}' started on "
                f"{current.start:%Y-%m-%d} is still open; end it first"
            )

        session = Session(client=client, start=timestamp, note=note)
        try:
            stored = self.store.insert(session)
        except (SessionConflictError, DuplicateIdError) as exc:
            raise AlreadyStartedError(
                f"Session for '{client.name}' already started; "
                f"multiple starts not supported ({exc})"
            ) from exc

        logger.info(
            "Started session %s for %s at %s",
            stored.id,
            client.name,
            stored.start,
        )
        return stored

    def end(
        self, session: Session, timestamp: datetime, note: str = ""
    ) -> Session:
        """Close *session* at *timestamp*, appending *note*.

        Raises:
            AlreadyEndedError: The session already has an end.
            InvalidSessionError: *timestamp* is before the session start.
        """
        if session.end is not None:
            raise AlreadyEndedError(
                f"Session {session.id} already ended at {session.end}"
            )
        if timestamp.replace(microsecond=0) < session.start:
            raise InvalidSessionError(
                f"End time {timestamp} is before start time {session.start}"
            )

        new_note = append_note(session.note, note)
        new_note = append_note(
            new_note, overnight_marker(session.start, timestamp)
        )
        closed = Session(
            id=session.id,
            client=session.client,
            start=session.start,
            end=timestamp,
            note=new_note,
        )
        self.store.update(closed)

        logger.info(
            "Ended session %s for %s after %s",
            closed.id,
            closed.client.name,
            closed.duration,
        )
        return closed

    def end_open(
        self, client: Client, timestamp: datetime, note: str = ""
    ) -> Session:
        """Close the client's open session.

        Raises:
            AlreadyEndedError: The client has no open session.
        """
        try:
            current = self.store.get_open_session(client)
        except SessionNotFoundError:
            raise AlreadyEndedError(
                f"No open session for '{client.name}'"
            ) from None
        return self.end(current, timestamp, note)
