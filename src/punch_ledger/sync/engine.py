"""Reconciliation engine for one remote mirror.

The ``Reconciler`` ties together the store, the remote mirror, the
record mapper and the conflict renderer into a complete sync run.  It:

1. Reads every remote row once.
2. Classifies each remote session with dry-run inserts (pull plan).
3. Hands genuine same-id conflicts to a human via the renderer.
4. Applies the resolution, the auto-fills and the inserts locally.
5. Applies deletion requests the caller confirmed.
6. Pushes the reconciled local set back to the remote (unless pull-only).
7. Builds and returns a ``SyncSummary``.

Nothing is written locally until the human step has succeeded, and
nothing is written remotely while a push-side conflict remains.  Errors
from the remote transport propagate unmodified.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from punch_ledger.errors import (
    DuplicateIdError,
    MergeAbortedError,
    PunchError,
    PushConflictError,
    SessionConflictError,
)
from punch_ledger.models import RemoteRecord, Session
from punch_ledger.store import SessionStore
from punch_ledger.sync.mapper import RecordMapper
from punch_ledger.sync.models import (
    PullPlan,
    Resolution,
    SessionConflict,
    SyncSummary,
)
from punch_ledger.sync.remotes import RemoteMirror
from punch_ledger.sync.resolver import ConflictRenderer

logger = logging.getLogger(__name__)


class Reconciler:
    """Bring a ``SessionStore`` and a ``RemoteMirror`` into agreement.

    Args:
        store: The local store of record.
        remote: The remote mirror.
        renderer: Conflict renderer used when same-id sessions disagree.
            Without one, any conflict aborts the sync.
        remote_name: Name used in logs and the summary.
        confirm_delete: Called once per deletion request; the session is
            deleted locally only when it returns ``True``.
    """

    def __init__(
        self,
        store: SessionStore,
        remote: RemoteMirror,
        renderer: ConflictRenderer | None = None,
        remote_name: str = "remote",
        confirm_delete: Callable[[Session], bool] | None = None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.renderer = renderer
        self.remote_name = remote_name
        self.confirm_delete = confirm_delete

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def sync(self, pull_only: bool = False) -> SyncSummary:
        """Run one pull -> merge -> push cycle.

        Raises:
            NoChangesMadeError: The reviewer saved the merge document
                unchanged.  The store is untouched.
            MergeAbortedError: Conflicts could not be resolved.
            MergeParseError: The edited merge document was invalid.
            PushConflictError: Local sessions conflict with remote rows
                outside the accepted resolution.  Nothing was pushed.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        logger.info(
            "Syncing with remote '%s'%s",
            self.remote_name,
            " (pull only)" if pull_only else "",
        )

        records = self.remote.read_all()

        # Pull: classify, resolve, then write
        plan = self.plan_pull(records)
        resolution = self.resolve(plan.conflicts)
        self._check_resolution(resolution)

        blocked = list(plan.blocked)
        resolved = [self.store.upsert(s) for s in resolution.sessions]
        filled = self._apply(plan.to_fill, self.store.update, blocked)
        inserted = self._apply(plan.to_insert, self.store.insert, blocked)
        deleted = self._apply_deletions(resolution.deleted)

        # Push
        added = updated = 0
        if not pull_only:
            accepted = {s.id for s in resolved if s.id is not None}
            added, updated = self.push(accepted, records)

        summary = SyncSummary(
            remote_name=self.remote_name,
            pull_only=pull_only,
            inserted=inserted,
            updated_local=resolved + filled,
            resolved=resolved,
            deletion_requests=resolution.deleted,
            deleted=deleted,
            blocked=blocked,
            added=added,
            updated=updated,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(
            "Sync with '%s' complete: %d local write(s), %d remote write(s)",
            self.remote_name,
            summary.local_writes,
            summary.remote_writes,
        )
        return summary

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def plan_pull(self, records: list[RemoteRecord]) -> PullPlan:
        """Classify remote sessions against the store without writing."""
        to_insert: list[Session] = []
        to_fill: list[Session] = []
        conflicts: list[SessionConflict] = []
        blocked: list[str] = []

        for record in records:
            remote = record.session
            try:
                self.store.insert(remote, dry_run=True)
            except DuplicateIdError:
                local = self.store.get_by_id(remote.id)
                if local.identical(remote):
                    continue
                if local.conflicts(remote):
                    conflicts.append(
                        SessionConflict(local=local, remote=remote)
                    )
                elif local.is_open and not remote.is_open:
                    to_fill.append(remote)
                else:
                    logger.debug(
                        "Local session %s is ahead of remote row %d",
                        local.id,
                        record.row,
                    )
            except SessionConflictError as exc:
                if exc.existing is not None:
                    logger.debug(
                        "Remote row %d matches local session %s by similarity",
                        record.row,
                        exc.existing.id,
                    )
                    continue
                logger.warning("Remote row %d blocked: %s", record.row, exc)
                blocked.append(f"row {record.row}: {exc}")
            else:
                to_insert.append(remote)

        logger.info(
            "Pull plan: %d to insert, %d to fill, %d conflict(s), %d blocked",
            len(to_insert),
            len(to_fill),
            len(conflicts),
            len(blocked),
        )
        return PullPlan(
            to_insert=to_insert,
            to_fill=to_fill,
            conflicts=conflicts,
            blocked=blocked,
        )

    def resolve(self, conflicts: list[SessionConflict]) -> Resolution:
        """Ask a human to resolve *conflicts*.

        Raises:
            MergeAbortedError: There are conflicts but no renderer.
        """
        if not conflicts:
            return Resolution()
        if self.renderer is None:
            ids = ", ".join(str(c.local.id) for c in conflicts)
            raise MergeAbortedError(
                f"{len(conflicts)} conflicting session(s) need manual "
                f"resolution: {ids}"
            )
        for conflict in conflicts:
            logger.debug(
                "Conflict on session %s:\n%s",
                conflict.local.id,
                conflict.diff(),
            )
        return self.renderer.resolve(
            [c.local for c in conflicts], [c.remote for c in conflicts]
        )

    def _check_resolution(self, resolution: Resolution) -> None:
        """Validate the accepted sessions before any of them is written.

        The sessions are checked against each other (one open session per
        client, no two similar records) and then dry-run one by one
        against the store.
        """
        open_by_client: dict[str, Session] = {}
        checked: list[Session] = []
        for session in resolution.sessions:
            if session.is_open:
                other = open_by_client.setdefault(session.client.key, session)
                if other is not session:
                    raise MergeAbortedError(
                        f"Resolved sessions {other.id} and {session.id} are "
                        f"both open for client '{session.client.name}'"
                    )
            for other in checked:
                if other.similar(session):
                    raise MergeAbortedError(
                        f"Resolved sessions {other.id} and {session.id} "
                        f"describe the same start for client "
                        f"'{session.client.name}'"
                    )
            checked.append(session)

        for session in resolution.sessions:
            try:
                self.store.upsert(session, dry_run=True)
            except PunchError as exc:
                raise MergeAbortedError(
                    f"Resolved session {session.id} cannot be stored: {exc}"
                ) from exc

    def _apply(
        self,
        sessions: list[Session],
        write: Callable[[Session], Session],
        blocked: list[str],
    ) -> list[Session]:
        written: list[Session] = []
        for session in sessions:
            try:
                written.append(write(session))
            except (DuplicateIdError, SessionConflictError) as exc:
                logger.warning("Session %s blocked: %s", session.id, exc)
                blocked.append(f"session {session.id}: {exc}")
        return written

    def _apply_deletions(self, requests: list[Session]) -> list[Session]:
        if not requests:
            return []
        if self.confirm_delete is None:
            logger.info(
                "%d deletion request(s) left unconfirmed", len(requests)
            )
            return []
        deleted: list[Session] = []
        for session in requests:
            if not self.confirm_delete(session):
                logger.info("Deletion of session %s declined", session.id)
                continue
            self.store.delete(session)
            deleted.append(session)
        return deleted

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(
        self,
        accepted: set[int] | None = None,
        records: list[RemoteRecord] | None = None,
    ) -> tuple[int, int]:
        """Write the local session set to the remote.

        Args:
            accepted: Ids whose conflicts were settled by the resolution;
                those local copies overwrite the remote rows.
            records: Remote rows already read in this run; read afresh
                when omitted.

        Returns:
            ``(added, updated)`` row counts.

        Raises:
            PushConflictError: Some local session conflicts with its
                remote row and was not accepted.  Nothing is written.
        """
        accepted = accepted or set()
        if records is None:
            records = self.remote.read_all()
        mapper = RecordMapper(records)

        appends: list[Session] = []
        overwrites: list[tuple[int, Session]] = []
        conflicts: list[SessionConflict] = []

        for local, record in mapper.pairs(self.store.get_all()):
            if record is None:
                appends.append(local)
                continue
            remote = record.session
            if remote.id is None:
                overwrites.append((record.row, local))
            elif local.conflicts(remote):
                if local.id in accepted:
                    overwrites.append((record.row, local))
                else:
                    conflicts.append(
                        SessionConflict(local=local, remote=remote)
                    )
            elif not local.identical(remote):
                overwrites.append((record.row, local))

        if conflicts:
            raise PushConflictError(conflicts)

        for session in appends:
            self.remote.append(session)
        for row, session in overwrites:
            self.remote.overwrite(row, session)

        logger.info(
            "Pushed to '%s': %d row(s) added, %d row(s) updated",
            self.remote_name,
            len(appends),
            len(overwrites),
        )
        return len(appends), len(overwrites)
