"""Pydantic models for the session ledger.

Defines the core data contracts shared by the clock, the store and the
sync engine:

- ``Client``: A billing party (name, hourly rate, currency).
- ``Session``: One contiguous billable interval for a client.
- ``Transition``: Which way ``SessionClock.toggle`` moved a client.
- ``RemoteRecord``: A session read from a remote mirror plus its row.

All models are frozen (immutable); use ``model_copy(update=...)`` to
derive a changed session.

Timestamps are naive local datetimes.  They are truncated to whole
seconds on construction because remote mirrors only keep second
precision, and a sub-second difference would otherwise surface as a
spurious conflict on every sync.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class Client(BaseModel):
    """A billing party.

    Attributes:
        name: Display name; identity for matching (case-insensitive).
        pph: Price per hour.
        currency: Currency code used for earnings.
    """

    name: str = Field(min_length=1)
    pph: int = Field(default=0, ge=0)
    currency: str = "USD"

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("client name cannot be empty")
        return value

    @property
    def key(self) -> str:
        """Case-folded name used for matching."""
        return self.name.casefold()

    def matches(self, other: Client) -> bool:
        """Return ``True`` if *other* names the same client."""
        return self.key == other.key

    def __str__(self) -> str:
        return f"{self.name}\t{self.pph} {self.currency}"


class Session(BaseModel):
    """A billable time interval for one client.

    Attributes:
        id: Stable identifier assigned by the local store; ``None`` for a
            record that has not been stored yet (e.g. a hand-added
            spreadsheet row).
        client: The billed client.
        start: When the session started.
        end: When the session ended; ``None`` while it is running.
        note: Free-text annotation.
    """

    id: int | None = None
    client: Client
    start: datetime
    end: datetime | None = None
    note: str = ""

    model_config = {"frozen": True}

    @field_validator("start", "end")
    @classmethod
    def _truncate_to_second(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return value.replace(microsecond=0)

    @model_validator(mode="after")
    def _check_interval(self) -> Session:
        if self.end is not None and self.start > self.end:
            raise ValueError(
                f"start ({self.start}) must not be after end ({self.end})"
            )
        return self

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        """``True`` while the session has no end timestamp."""
        return self.end is None

    @property
    def duration(self) -> timedelta | None:
        """Elapsed time, or ``None`` for an open session."""
        if self.end is None:
            return None
        return self.end - self.start

    @property
    def earnings(self) -> float | None:
        """Hourly rate times elapsed hours, or ``None`` if open."""
        duration = self.duration
        if duration is None:
            return None
        return self.client.pph * duration.total_seconds() / 3600

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def identical(self, other: Session) -> bool:
        """Return ``True`` if id, start, end, client and note all match."""
        return (
            self.id == other.id
            and self.start == other.start
            and self.end == other.end
            and self.client.matches(other.client)
            and self.note == other.note
        )

    def similar(self, other: Session) -> bool:
        """Return ``True`` for the same client starting in the same second.

        This is the fallback identity used when no id is available.
        """
        return self.client.matches(other.client) and self.start.replace(
            microsecond=0
        ) == other.start.replace(microsecond=0)

    def conflicts(self, other: Session) -> bool:
        """Return ``True`` if both share an id but their content differs.

        Ends are only compared when both are present.  Sessions with
        different (or missing) ids never conflict, even when they describe
        the same real-world interval.
        """
        if self.id is None or other.id is None or self.id != other.id:
            return False
        ends_differ = (
            self.end is not None
            and other.end is not None
            and self.end != other.end
        )
        return (
            ends_differ
            or self.start != other.start
            or not self.client.matches(other.client)
            or self.note != other.note
        )

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def summary(self) -> str:
        """One line: date, client, duration and earnings."""
        duration = format_duration(self.duration) if self.duration else "N/A"
        earnings = self.earnings
        earned = (
            f"{earnings:.2f} {self.client.currency}"
            if earnings is not None
            else "N/A"
        )
        return (
            f"{self.start:%Y-%m-%d}\t{self.client.name}\t{duration}\t{earned}"
        )

    def __str__(self) -> str:
        return (
            f"Client: {self.client.name}, Date: {self.start:%d/%m/%Y}, "
            f"Duration: {format_duration(self.duration)}"
        )


def format_duration(duration: timedelta | None) -> str:
    """Format a timedelta as ``HH:MM:SS`` (hours may exceed 24)."""
    if duration is None:
        return "N/A"
    total = int(duration.total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class Transition(str, Enum):
    """Direction of a ``SessionClock.toggle`` call."""

    STARTED = "started"
    ENDED = "ended"


class RemoteRecord(BaseModel):
    """A session as read from a remote mirror.

    Attributes:
        session: The decoded session.
        row: Opaque row handle understood by the mirror that produced it.
    """

    session: Session
    row: int

    model_config = {"frozen": True}
