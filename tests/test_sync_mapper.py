"""Tests for sync/mapper.py -- pairing local sessions with remote rows."""

from punch_ledger.models import Client, RemoteRecord, Session
from punch_ledger.sync.mapper import RecordMapper, similarity_key


class TestSimilarityKey:
    def test_case_folded_client(self, acme, at):
        a = Session(client=acme, start=at("09:00"))
        b = Session(id=3, client=Client(name="ACME"), start=at("09:00"))
        assert similarity_key(a) == similarity_key(b)


class TestRecordMapper:
    def test_match_by_id(self, acme, at):
        local = Session(id=1, client=acme, start=at("09:00"))
        moved = local.model_copy(update={"start": at("08:00")})
        mapper = RecordMapper([RemoteRecord(session=moved, row=4)])
        assert mapper.match(local).row == 4

    def test_id_beats_similarity(self, acme, at):
        local = Session(id=1, client=acme, start=at("09:00"))
        similar = Session(client=acme, start=at("09:00"))
        by_id = local.model_copy(update={"start": at("08:00")})
        mapper = RecordMapper(
            [
                RemoteRecord(session=similar, row=1),
                RemoteRecord(session=by_id, row=2),
            ]
        )
        assert mapper.match(local).row == 2

    def test_match_by_similarity(self, acme, at):
        local = Session(id=1, client=acme, start=at("09:00"))
        row = Session(client=Client(name="acme"), start=at("09:00"))
        mapper = RecordMapper([RemoteRecord(session=row, row=7)])
        assert mapper.match(local).row == 7

    def test_no_match(self, acme, globex, at):
        local = Session(id=1, client=acme, start=at("09:00"))
        other = Session(id=2, client=globex, start=at("09:00"))
        assert RecordMapper([RemoteRecord(session=other, row=1)]).match(local) is None

    def test_first_row_wins(self, acme, at):
        row = Session(id=1, client=acme, start=at("09:00"))
        mapper = RecordMapper(
            [RemoteRecord(session=row, row=5), RemoteRecord(session=row, row=2)]
        )
        assert mapper.match(row).row == 2

    def test_pairs(self, acme, globex, at):
        a = Session(id=1, client=acme, start=at("09:00"))
        b = Session(id=2, client=globex, start=at("10:00"))
        pairs = RecordMapper([RemoteRecord(session=a, row=1)]).pairs([a, b])
        assert [(s.id, r.row if r else None) for s, r in pairs] == [(1, 1), (2, None)]
