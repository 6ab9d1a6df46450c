"""Remote mirrors.

``RemoteMirror`` is the capability the reconciler pushes to and pulls
from.  Every known remote kind is a sheet of rows under a header row, so
one implementation, ``SheetMirror``, maps rows to sessions and delegates
raw row I/O to a ``SheetValues`` transport:

- ``CsvSheetValues`` keeps the rows in a local CSV file.
- A hosted spreadsheet transport is supplied by the caller; it only has
  to implement ``SheetValues``.

``create_mirror()`` selects the implementation from a remote config.

Row layout: columns are located by header name.  Dates are written as
``DD/MM/YYYY`` and times as ``HH:MM:SS``.  An empty end cell means the
session is still open.  The end day comes from ``total_time`` when that
cell agrees with the end clock; otherwise an end time earlier than the
start time means the session finished on the following day.  Notes are
kept verbatim, surrounding whitespace included.
"""

from __future__ import annotations

import csv
import logging
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from punch_ledger.config_schema import (
    CsvRemoteConfig,
    SheetColumns,
    SpreadsheetRemoteConfig,
)
from punch_ledger.errors import RemoteFormatError
from punch_ledger.models import Client, RemoteRecord, Session, format_duration

logger = logging.getLogger(__name__)

DATE_FORMAT = "%d/%m/%Y"
TIME_FORMAT = "%H:%M:%S"
REQUIRED_COLUMNS = ("id", "client", "date", "start_time")


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class RemoteMirror(Protocol):
    """Protocol that every remote mirror must satisfy."""

    def read_all(self) -> list[RemoteRecord]:
        """Return every session row with its row handle."""
        ...  # pragma: no cover

    def append(self, session: Session) -> None:
        """Append *session* as a new row."""
        ...  # pragma: no cover

    def overwrite(self, row: int, session: Session) -> None:
        """Replace the row identified by *row* with *session*."""
        ...  # pragma: no cover


class SheetValues(Protocol):
    """Raw row transport for a sheet.  Row 0 is the header row."""

    def get_rows(self) -> list[list[str]]:
        ...  # pragma: no cover

    def append_row(self, values: list[str]) -> None:
        ...  # pragma: no cover

    def update_row(self, row: int, values: list[str]) -> None:
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Sheet mirror
# ---------------------------------------------------------------------------


class SheetMirror:
    """``RemoteMirror`` over a header-addressed sheet of rows.

    Args:
        values: Row transport.
        columns: Header names for each session field.
    """

    def __init__(
        self, values: SheetValues, columns: SheetColumns | None = None
    ) -> None:
        self.values = values
        self.columns = columns or SheetColumns()
        self._index: dict[str, int] | None = None

    def read_all(self) -> list[RemoteRecord]:
        rows = self.values.get_rows()
        if not rows:
            logger.warning("Remote sheet is empty (no header row)")
            self._index = None
            return []

        self._index = self.parse_headers(rows[0])
        records: list[RemoteRecord] = []
        for row_number, row in enumerate(rows[1:], start=1):
            if not any(str(cell).strip() for cell in row):
                continue
            session = self.session_from_row(row, row_number)
            records.append(RemoteRecord(session=session, row=row_number))
        logger.debug("Read %d remote row(s)", len(records))
        return records

    def append(self, session: Session) -> None:
        self.values.append_row(self.session_to_row(session))
        logger.debug("Appended session %s", session.id)

    def overwrite(self, row: int, session: Session) -> None:
        self.values.update_row(row, self.session_to_row(session))
        logger.debug("Overwrote row %d with session %s", row, session.id)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def parse_headers(self, header: list[str]) -> dict[str, int]:
        """Map each session field to its column index.

        Raises:
            RemoteFormatError: A required column is missing.
        """
        positions = {str(name).strip(): i for i, name in enumerate(header)}
        index: dict[str, int] = {}
        for field, name in self.columns.model_dump().items():
            if name in positions:
                index[field] = positions[name]
        missing = [f for f in REQUIRED_COLUMNS if f not in index]
        if missing:
            raise RemoteFormatError(
                f"Remote sheet is missing column(s): "
                f"{', '.join(getattr(self.columns, f) for f in missing)}"
            )
        return index

    def session_to_row(self, session: Session) -> list[str]:
        """Encode *session* as a row matching the current header."""
        index = self._current_index()
        cells = {
            "id": "" if session.id is None else str(session.id),
            "client": session.client.name,
            "date": session.start.strftime(DATE_FORMAT),
            "start_time": session.start.strftime(TIME_FORMAT),
            "end_time": (
                session.end.strftime(TIME_FORMAT) if session.end else ""
            ),
            "total_time": (
                format_duration(session.duration) if session.end else ""
            ),
            "note": session.note,
        }
        row = [""] * (max(index.values()) + 1)
        for field, position in index.items():
            row[position] = cells[field]
        return row

    def session_from_row(self, row: list[str], row_number: int = 0) -> Session:
        """Decode one row.

        Raises:
            RemoteFormatError: A cell cannot be parsed.
        """
        index = self._current_index()

        def cell(field: str, strip: bool = True) -> str:
            position = index.get(field)
            if position is None or position >= len(row):
                return ""
            value = str(row[position])
            return value.strip() if strip else value

        raw_id = cell("id")
        session_id: int | None = None
        if raw_id:
            try:
                session_id = int(raw_id)
            except ValueError:
                raise RemoteFormatError(
                    f"Row {row_number}: invalid id '{raw_id}'"
                ) from None

        date = cell("date")
        start = self._parse_time(date, cell("start_time"), row_number)
        end = None
        if cell("end_time"):
            end = self._parse_time(date, cell("end_time"), row_number)
            total = self._parse_duration(cell("total_time"), row_number)
            # total_time carries the day span; trust it while it still
            # agrees with the end clock.
            if total is not None and (start + total).time() == end.time():
                end = start + total
            elif end < start:
                end += timedelta(days=1)

        try:
            return Session(
                id=session_id,
                client=Client(name=cell("client")),
                start=start,
                end=end,
                note=cell("note", strip=False),
            )
        except ValidationError as exc:
            raise RemoteFormatError(f"Row {row_number}: {exc}") from exc

    def _current_index(self) -> dict[str, int]:
        if self._index is None:
            rows = self.values.get_rows()
            if rows:
                self._index = self.parse_headers(rows[0])
            else:
                self._index = {
                    field: i
                    for i, field in enumerate(self.columns.model_dump())
                }
        return self._index

    @staticmethod
    def _parse_time(date: str, clock: str, row_number: int) -> datetime:
        try:
            if not clock:
                return datetime.strptime(date, DATE_FORMAT)
            return datetime.strptime(
                f"{date} {clock}", f"{DATE_FORMAT} {TIME_FORMAT}"
            )
        except ValueError:
            raise RemoteFormatError(
                f"Row {row_number}: invalid date/time '{date} {clock}'"
            ) from None

    @staticmethod
    def _parse_duration(value: str, row_number: int) -> timedelta | None:
        """Parse an ``HH:MM:SS`` total (hours may exceed 24)."""
        if not value:
            return None
        parts = value.split(":")
        try:
            hours, minutes, seconds = (int(p) for p in parts)
        except ValueError:
            raise RemoteFormatError(
                f"Row {row_number}: invalid total time '{value}'"
            ) from None
        if min(hours, minutes, seconds) < 0 or minutes > 59 or seconds > 59:
            raise RemoteFormatError(
                f"Row {row_number}: invalid total time '{value}'"
            )
        return timedelta(hours=hours, minutes=minutes, seconds=seconds)


# ---------------------------------------------------------------------------
# CSV transport
# ---------------------------------------------------------------------------


class CsvSheetValues:
    """``SheetValues`` backed by a CSV file.

    The file is created with a header row on first append.  Updates
    rewrite the file atomically (temp file + ``os.replace()``).

    Args:
        path: CSV file path.
        columns: Header names used when the file has to be created.
    """

    def __init__(self, path: Path, columns: SheetColumns | None = None) -> None:
        self.path = path
        self.columns = columns or SheetColumns()

    def get_rows(self) -> list[list[str]]:
        if not self.path.exists():
            return [self._header()]
        with open(self.path, newline="", encoding="utf-8") as fh:
            return [row for row in csv.reader(fh)]

    def append_row(self, values: list[str]) -> None:
        if not self.path.exists():
            self._write([self._header(), values])
            return
        with open(self.path, "a", newline="", encoding="utf-8") as fh:
            csv.writer(fh).writerow(values)

    def update_row(self, row: int, values: list[str]) -> None:
        rows = self.get_rows()
        if not 0 < row < len(rows):
            raise IndexError(f"Row {row} does not exist in {self.path}")
        rows[row] = values
        self._write(rows)

    def _header(self) -> list[str]:
        return list(self.columns.model_dump().values())

    def _write(self, rows: list[list[str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as fh:
                csv.writer(fh).writerows(rows)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_mirror(
    remote: SpreadsheetRemoteConfig | CsvRemoteConfig,
    values: SheetValues | None = None,
) -> RemoteMirror:
    """Create the mirror for a configured remote.

    Args:
        remote: The remote configuration.
        values: Row transport.  Required for ``spreadsheet`` remotes;
            optional override for ``csv`` remotes.

    Raises:
        ValueError: A spreadsheet remote was given without a transport.
    """
    match remote:
        case CsvRemoteConfig():
            transport = values or CsvSheetValues(
                Path(remote.path).expanduser(), remote.columns
            )
            return SheetMirror(transport, remote.columns)
        case SpreadsheetRemoteConfig():
            if values is None:
                raise ValueError(
                    f"Remote {remote} needs a spreadsheet transport; "
                    f"pass values= implementing SheetValues"
                )
            return SheetMirror(values, remote.columns)
        case _:
            raise ValueError(f"Unsupported remote type: {remote!r}")
