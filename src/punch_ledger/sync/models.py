"""Pydantic models for the reconciliation engine.

Defines the data contracts passed between the sync modules:

- ``SessionConflict``: A local/remote pair sharing an id with different
  content.
- ``PullPlan``: How each remote session was classified during pull.
- ``Resolution``: The outcome of the human merge step.
- ``SyncSummary``: Aggregate result of one sync run.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from pydantic import BaseModel

from punch_ledger.models import Session
from punch_ledger.sync.document import serialize_sessions
from punch_ledger.sync.merger import generate_diff


class SessionConflict(BaseModel):
    """A local and a remote copy of the same session that disagree.

    Attributes:
        local: The copy in the local store.
        remote: The copy in the remote mirror.
    """

    local: Session
    remote: Session

    model_config = {"frozen": True}

    def diff(self) -> str:
        """Unified diff of the two copies in merge-document format."""
        return generate_diff(
            serialize_sessions([self.local]),
            serialize_sessions([self.remote]),
            label_old="local",
            label_new="remote",
        )


class PullPlan(BaseModel):
    """Classification of remote sessions against the local store.

    Attributes:
        to_insert: Remote sessions absent locally.
        to_fill: Remote sessions that close a locally open session with
            the same id.
        conflicts: Same-id pairs whose content differs.
        blocked: Human-readable reasons for remote sessions that could
            not be matched or inserted.
    """

    to_insert: list[Session] = []
    to_fill: list[Session] = []
    conflicts: list[SessionConflict] = []
    blocked: list[str] = []

    model_config = {"frozen": True}


class Resolution(BaseModel):
    """Outcome of the human merge step.

    Attributes:
        document: The merge document shown to the human.
        sessions: Sessions the human accepted as authoritative.
        deleted: Sessions present before the edit and missing after it.
    """

    document: str = ""
    sessions: list[Session] = []
    deleted: list[Session] = []

    model_config = {"frozen": True}


class SyncSummary(BaseModel):
    """Aggregate result of one sync run.

    Attributes:
        remote_name: Name of the remote that was synced.
        pull_only: Whether the push phase was skipped.
        inserted: Remote sessions inserted into the local store.
        updated_local: Local sessions changed by pull (auto-fills and
            resolutions).
        resolved: Sessions accepted through the merge document.
        deletion_requests: Sessions the human removed from the document.
        deleted: Deletion requests that were confirmed and applied.
        blocked: Records skipped because of matching conflicts.
        added: Rows appended to the remote.
        updated: Rows overwritten in the remote.
        started_at: ISO 8601 timestamp when the sync started.
        completed_at: ISO 8601 timestamp when the sync completed.
    """

    remote_name: str
    pull_only: bool = False
    inserted: list[Session] = []
    updated_local: list[Session] = []
    resolved: list[Session] = []
    deletion_requests: list[Session] = []
    deleted: list[Session] = []
    blocked: list[str] = []
    added: int = 0
    updated: int = 0
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def local_writes(self) -> int:
        """Number of writes made to the local store."""
        return (
            len(self.inserted) + len(self.updated_local) + len(self.deleted)
        )

    @property
    def remote_writes(self) -> int:
        """Number of rows written to the remote."""
        return self.added + self.updated

    def summary(self) -> str:
        """Format a human-readable summary of the sync run.

        Returns:
            Multi-line summary string with counts by outcome.
        """
        lines = [
            f"Sync report for remote '{self.remote_name}'"
            + (" (pull only)" if self.pull_only else ""),
            f"  Inserted locally:  {len(self.inserted)}",
            f"  Updated locally:   {len(self.updated_local)}",
            f"  Resolved:          {len(self.resolved)}",
            f"  Rows added:        {self.added}",
            f"  Rows updated:      {self.updated}",
            f"  Deletion requests: {len(self.deletion_requests)}",
            f"  Deleted:           {len(self.deleted)}",
            f"  Blocked:           {len(self.blocked)}",
        ]
        return "\n".join(lines)
