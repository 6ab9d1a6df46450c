"""Tests for sync/resolver.py -- ConflictRenderer and deletion detection."""

import pytest

from punch_ledger.errors import MergeParseError, NoChangesMadeError
from punch_ledger.models import Session
from punch_ledger.sync.document import serialize_sessions
from punch_ledger.sync.merger import LOCAL_MARKER, MID_MARKER, REMOTE_MARKER
from punch_ledger.sync.resolver import (
    HEADER,
    ConflictRenderer,
    detect_deleted_sessions,
    sort_by_start,
)


@pytest.fixture
def acme_pair(acme, at):
    """Same session, local ends at 17:00 and remote at 18:00."""
    local = Session(id=1, client=acme, start=at("09:00"), end=at("17:00"), note="x")
    remote = local.model_copy(update={"end": at("18:00")})
    return local, remote


class TestHelpers:
    def test_sort_is_stable(self, acme, globex, at):
        a = Session(id=1, client=acme, start=at("10:00"))
        b = Session(id=2, client=globex, start=at("09:00"))
        c = Session(id=3, client=globex, start=at("10:00"))
        assert [s.id for s in sort_by_start([a, b, c])] == [2, 1, 3]

    def test_detect_deleted(self, acme, at):
        a = Session(id=1, client=acme, start=at("09:00"))
        b = Session(id=2, client=acme, start=at("10:00"))
        assert detect_deleted_sessions([a, b], [b]) == [a]

    def test_detect_deleted_ignores_new_records(self, acme, at):
        a = Session(id=1, client=acme, start=at("09:00"))
        fresh = Session(client=acme, start=at("11:00"))
        assert detect_deleted_sessions([a], [a, fresh]) == []


# ---------------------------------------------------------------------------
# render
# ---------------------------------------------------------------------------


class TestRender:
    def test_shows_both_end_times(self, fake_editor, acme_pair):
        local, remote = acme_pair
        document = ConflictRenderer(fake_editor()).render([local], [remote])
        assert document.startswith(HEADER)
        assert LOCAL_MARKER in document
        assert MID_MARKER in document
        assert REMOTE_MARKER in document
        assert "17:00:00" in document
        assert "18:00:00" in document

    def test_local_side_above_remote(self, fake_editor, acme_pair):
        document = ConflictRenderer(fake_editor()).render(
            [acme_pair[0]], [acme_pair[1]]
        )
        assert (
            document.index(LOCAL_MARKER)
            < document.index("17:00:00")
            < document.index(MID_MARKER)
            < document.index("18:00:00")
            < document.index(REMOTE_MARKER)
        )

    def test_unconflicted_blocks_hidden(self, fake_editor, acme_pair, globex, at):
        clean = Session(id=9, client=globex, start=at("19:00"), end=at("20:00"))
        local, remote = acme_pair
        document = ConflictRenderer(fake_editor()).render(
            [local, clean], [remote, clean]
        )
        assert "17:00:00" in document
        assert "Globex" not in document

    def test_identical_sets_render_nothing(self, fake_editor, acme_pair):
        local, _ = acme_pair
        assert ConflictRenderer(fake_editor()).render([local], [local]) == ""


# ---------------------------------------------------------------------------
# resolve / parse
# ---------------------------------------------------------------------------


class TestResolve:
    def test_keep_remote(self, fake_editor, acme_pair):
        local, remote = acme_pair
        editor = fake_editor(lambda text: serialize_sessions([remote]))

        resolution = ConflictRenderer(editor).resolve([local], [remote])

        assert len(editor.seen) == 1
        assert len(resolution.sessions) == 1
        assert resolution.sessions[0].identical(remote)
        assert resolution.deleted == []
        assert resolution.document == editor.seen[0]

    def test_unchanged_document_aborts(self, fake_editor, acme_pair):
        with pytest.raises(NoChangesMadeError):
            ConflictRenderer(fake_editor()).resolve(
                [acme_pair[0]], [acme_pair[1]]
            )

    def test_markers_left_in_place(self, fake_editor, acme_pair):
        editor = fake_editor(lambda text: text + "\n# looked at it\n")
        with pytest.raises(MergeParseError, match="conflict markers"):
            ConflictRenderer(editor).resolve([acme_pair[0]], [acme_pair[1]])

    def test_both_sides_kept(self, fake_editor, acme_pair):
        local, remote = acme_pair
        editor = fake_editor(lambda text: serialize_sessions([local, remote]))
        with pytest.raises(MergeParseError, match="more than once"):
            ConflictRenderer(editor).resolve([local], [remote])

    def test_record_removed_is_deletion_request(self, fake_editor, acme_pair):
        local, remote = acme_pair
        editor = fake_editor(lambda text: HEADER)

        resolution = ConflictRenderer(editor).resolve([local], [remote])

        assert resolution.sessions == []
        assert resolution.deleted == [local]

    def test_nothing_to_resolve_skips_editor(self, fake_editor, acme_pair):
        editor = fake_editor()
        local, _ = acme_pair
        resolution = ConflictRenderer(editor).resolve([local], [local])
        assert editor.seen == []
        assert resolution.sessions == []

    def test_parse_sorts_by_start(self, acme, at):
        late = Session(id=2, client=acme, start=at("15:00"))
        early = Session(id=1, client=acme, start=at("08:00"), end=at("09:00"))
        parsed = ConflictRenderer.parse(serialize_sessions([late, early]))
        assert [s.id for s in parsed] == [1, 2]
