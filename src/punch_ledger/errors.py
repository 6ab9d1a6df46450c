"""Exception taxonomy for the session ledger.

Three families of failure are distinguished:

- **User-input errors** (``AlreadyStartedError``, ``AlreadyEndedError``,
  ``InvalidSessionError``) are returned to the caller verbatim and never
  retried.
- **Matching conflicts** (``DuplicateIdError``, ``SessionConflictError``)
  block a single record; the rest of a batch still proceeds.
- **Irrecoverable merge state** (``MergeAbortedError``,
  ``MergeParseError``, ``PushConflictError``) aborts a whole sync run.

Transport errors raised by a remote mirror are never wrapped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Session
    from .sync.models import SessionConflict


class PunchError(Exception):
    """Base class for every error raised by punch_ledger."""


# ---------------------------------------------------------------------------
# User-input errors
# ---------------------------------------------------------------------------


class AlreadyStartedError(PunchError):
    """A session for the client is already open."""


class AlreadyEndedError(PunchError):
    """The session already has an end timestamp (or none is open)."""


class InvalidSessionError(PunchError, ValueError):
    """The requested change would break a session invariant."""


class SessionNotFoundError(PunchError, LookupError):
    """No session matched the lookup."""


class ClientNotFoundError(PunchError, LookupError):
    """No client is registered under the given name."""


# ---------------------------------------------------------------------------
# Matching conflicts (store level)
# ---------------------------------------------------------------------------


class DuplicateIdError(PunchError):
    """A session with the same id already exists in the store."""

    def __init__(self, session_id: int) -> None:
        super().__init__(f"Session with id {session_id} already exists")
        self.session_id = session_id


class SessionConflictError(PunchError):
    """The store refused a session that clashes with an existing one.

    Raised when a *similar* session (same client, same start second)
    exists, or when the insert would open a second session for a client.
    """

    def __init__(
        self, message: str, existing: Session | None = None
    ) -> None:
        super().__init__(message)
        self.existing = existing


# ---------------------------------------------------------------------------
# Irrecoverable merge state
# ---------------------------------------------------------------------------


class MergeAbortedError(PunchError):
    """The human merge step produced no resolution."""


class NoChangesMadeError(MergeAbortedError):
    """The interactive editor returned the document unchanged."""

    def __init__(self) -> None:
        super().__init__("No changes made")


class MergeParseError(PunchError, ValueError):
    """The edited merge document could not be parsed."""


class RemoteFormatError(PunchError, ValueError):
    """A remote row or header could not be decoded."""


class PushConflictError(PunchError):
    """Local sessions conflict with remote rows that were not resolved.

    Attributes:
        conflicts: The offending local/remote pairs.
    """

    def __init__(self, conflicts: list[SessionConflict]) -> None:
        ids = ", ".join(str(c.local.id) for c in conflicts)
        super().__init__(
            f"{len(conflicts)} session(s) conflict with the remote: {ids}"
        )
        self.conflicts = conflicts
