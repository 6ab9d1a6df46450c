"""Tests for models.py -- Client, Session and the matching rules."""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from punch_ledger.models import Client, Session, format_duration


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TestClient:
    def test_defaults(self):
        client = Client(name="Acme")
        assert client.pph == 0
        assert client.currency == "USD"

    def test_name_is_stripped(self):
        assert Client(name="  Acme ").name == "Acme"

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            Client(name="   ")

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError):
            Client(name="Acme", pph=-1)

    def test_matches_is_case_insensitive(self):
        assert Client(name="Acme").matches(Client(name="ACME", pph=10))

    def test_frozen(self, acme):
        with pytest.raises(ValidationError):
            acme.name = "Other"


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TestSession:
    def test_start_after_end_rejected(self, acme, at):
        with pytest.raises(ValidationError, match="must not be after"):
            Session(client=acme, start=at("10:00"), end=at("09:00"))

    def test_zero_length_allowed(self, acme, at):
        session = Session(client=acme, start=at("09:00"), end=at("09:00"))
        assert session.duration == timedelta(0)

    def test_timestamps_truncated_to_second(self, acme):
        session = Session(
            client=acme,
            start=datetime(2026, 3, 2, 9, 0, 0, 750_000),
            end=datetime(2026, 3, 2, 10, 0, 0, 10),
        )
        assert session.start.microsecond == 0
        assert session.end.microsecond == 0

    def test_open_session(self, acme, at):
        session = Session(client=acme, start=at("09:00"))
        assert session.is_open
        assert session.duration is None
        assert session.earnings is None

    def test_earnings(self, acme, at):
        session = Session(client=acme, start=at("09:00"), end=at("10:30"))
        assert session.earnings == pytest.approx(75.0)

    def test_summary(self, acme, at):
        session = Session(client=acme, start=at("09:00"), end=at("10:30"))
        assert session.summary() == "2026-03-02\tAcme\t01:30:00\t75.00 USD"

    def test_str_open(self, acme, at):
        session = Session(client=acme, start=at("09:00"))
        assert "Duration: N/A" in str(session)


class TestMatching:
    def _pair(self, acme, at, **changes):
        a = Session(
            id=1, client=acme, start=at("09:00"), end=at("17:00"), note="x"
        )
        return a, a.model_copy(update=changes)

    def test_identical_to_itself(self, acme, at):
        a, b = self._pair(acme, at)
        assert a.identical(b)

    def test_identical_ignores_client_case(self, acme, at):
        a, b = self._pair(acme, at, client=Client(name="acme"))
        assert a.identical(b)

    def test_identical_with_both_open(self, acme, at):
        a, b = self._pair(acme, at, end=None)
        a = a.model_copy(update={"end": None})
        assert a.identical(b)

    def test_similar_same_client_same_second(self, acme, at):
        a = Session(client=acme, start=at("09:00"))
        b = Session(id=7, client=Client(name="ACME"), start=at("09:00"))
        assert a.similar(b)

    def test_not_similar_other_start(self, acme, at):
        a = Session(client=acme, start=at("09:00"))
        b = Session(client=acme, start=at("09:01"))
        assert not a.similar(b)

    def test_conflict_on_end(self, acme, at):
        a, b = self._pair(acme, at, end=at("18:00"))
        assert a.conflicts(b)
        assert b.conflicts(a)

    def test_conflict_on_note(self, acme, at):
        a, b = self._pair(acme, at, note="y")
        assert a.conflicts(b)

    def test_no_conflict_with_itself(self, acme, at):
        a, _ = self._pair(acme, at)
        assert not a.conflicts(a)

    def test_open_end_is_not_a_conflict(self, acme, at):
        a, b = self._pair(acme, at, end=None)
        assert not a.conflicts(b)
        assert not b.conflicts(a)

    def test_different_ids_never_conflict(self, acme, at):
        a, b = self._pair(acme, at, id=2, end=at("18:00"))
        assert not a.conflicts(b)

    def test_missing_id_never_conflicts(self, acme, at):
        a, b = self._pair(acme, at, id=None, note="y")
        assert not a.conflicts(b)
        assert not b.conflicts(a)


class TestFormatDuration:
    def test_hours_may_exceed_a_day(self):
        assert format_duration(timedelta(hours=26, seconds=5)) == "26:00:05"

    def test_none(self):
        assert format_duration(None) == "N/A"
