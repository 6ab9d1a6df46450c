"""Human-mediated conflict resolution.

``ConflictRenderer`` turns the local and remote halves of a conflict set
into a merge document, hands it to an ``InteractiveEditor``, and parses
the edited document back into the sessions that are now authoritative.

The reviewer only sees records that contain a conflict region.  They are
expected to delete the losing side of each region (and the markers), or
to hand-write a corrected record.
"""

from __future__ import annotations

import logging

from punch_ledger.errors import MergeParseError
from punch_ledger.models import Session
from punch_ledger.sync.document import SEPARATOR, parse_document, serialize_lines
from punch_ledger.sync.editor import InteractiveEditor
from punch_ledger.sync.merger import (
    MERGE_TAG,
    has_conflict_markers,
    ifdef_diff,
    keep_conflicting_blocks,
    to_conflict_markers,
)
from punch_ledger.sync.models import Resolution

logger = logging.getLogger(__name__)

HEADER = (
    "# Each conflict shows the LOCAL copy above ======= and the REMOTE copy below.\n"
    "# Keep the side you want, delete the other side and the marker lines.\n"
    "# Change `start_time`, `end_time` or `note` to hand-correct a record.\n"
    "# Deleting a whole record requests its deletion (confirmed separately).\n"
    "\n"
)


def sort_by_start(sessions: list[Session]) -> list[Session]:
    """Stable sort by start timestamp."""
    return sorted(sessions, key=lambda s: s.start)


def detect_deleted_sessions(
    before: list[Session], after: list[Session]
) -> list[Session]:
    """Return sessions from *before* whose id is missing from *after*."""
    remaining = {s.id for s in after if s.id is not None}
    return [s for s in before if s.id is not None and s.id not in remaining]


class ConflictRenderer:
    """Render conflicts for review and parse the human's resolution.

    Args:
        editor: The interactive editing capability.
        tag: Macro name used by the intermediate ``diff -D`` listing.
    """

    def __init__(self, editor: InteractiveEditor, tag: str = MERGE_TAG) -> None:
        self.editor = editor
        self.tag = tag

    def render(self, local: list[Session], remote: list[Session]) -> str:
        """Build the merge document for two divergent session sets.

        Returns:
            The document, or ``""`` when the two sets serialize
            identically.
        """
        local_lines = serialize_lines(sort_by_start(local))
        remote_lines = serialize_lines(sort_by_start(remote))

        merged = ifdef_diff(local_lines, remote_lines, self.tag)
        marked = to_conflict_markers(merged, self.tag)
        kept = keep_conflicting_blocks(marked, SEPARATOR)
        if not kept:
            return ""
        return HEADER + "\n".join(kept) + "\n"

    def resolve(
        self, local: list[Session], remote: list[Session]
    ) -> Resolution:
        """Let a human merge *local* and *remote*.

        Raises:
            NoChangesMadeError: The editor returned the document unchanged.
            MergeAbortedError: The editor could not be run.
            MergeParseError: The edited document is invalid or still
                contains conflict markers.
        """
        document = self.render(local, remote)
        if not document:
            return Resolution()

        logger.info(
            "Opening merge document with %d conflicting session(s)",
            len(local),
        )
        edited = self.editor.edit(document)
        sessions = self.parse(edited)
        deleted = detect_deleted_sessions(local, sessions)
        if deleted:
            logger.info(
                "Merge removed %d session(s): %s",
                len(deleted),
                ", ".join(str(s.id) for s in deleted),
            )
        return Resolution(document=document, sessions=sessions, deleted=deleted)

    @staticmethod
    def parse(text: str) -> list[Session]:
        """Parse an edited merge document.

        Raises:
            MergeParseError: Markers remain or a record is invalid.
        """
        if has_conflict_markers(text):
            raise MergeParseError(
                "Merge document still contains conflict markers"
            )
        sessions = parse_document(text)
        seen: set[int] = set()
        for session in sessions:
            if session.id is None:
                continue
            if session.id in seen:
                raise MergeParseError(
                    f"Session {session.id} appears more than once; "
                    f"keep exactly one side of each conflict"
                )
            seen.add(session.id)
        return sort_by_start(sessions)
