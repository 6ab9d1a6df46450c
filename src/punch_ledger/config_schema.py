"""Configuration schema for punch_ledger.

Defines Pydantic models for the config structure with dedicated sections
for general settings, the local database, named remotes and logging.

Remotes are a discriminated union on ``type`` so each remote kind gets
its own validated fields:

.. code-block:: yaml

    settings:
      editor: nvim
      default_remote: sheet
    remotes:
      sheet:
        type: spreadsheet
        spreadsheet_id: 1AbC...
        sheet_name: Hours
      backup:
        type: csv
        path: ~/punch/hours.csv

Usage:
    from punch_ledger.config_schema import build_config

    raw = load_hierarchical_config()
    config = build_config(raw)
    name, remote = config.get_remote()
"""

from __future__ import annotations

import logging
import os
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

DEFAULT_EDITOR = "vi"


# ---------------------------------------------------------------------------
# Remote models
# ---------------------------------------------------------------------------


class SheetColumns(BaseModel):
    """Header names of the columns a sheet-like remote uses."""

    id: str = "id"
    client: str = "client"
    date: str = "date"
    start_time: str = "start_time"
    end_time: str = "end_time"
    total_time: str = "total_time"
    note: str = "note"

    model_config = {"frozen": True}


class SpreadsheetRemoteConfig(BaseModel):
    """A hosted spreadsheet acting as the remote mirror.

    The transport (API client and credentials) is supplied by the caller.
    """

    type: Literal["spreadsheet"] = "spreadsheet"
    spreadsheet_id: str = Field(min_length=1)
    sheet_name: str = Field(min_length=1)
    columns: SheetColumns = Field(default_factory=SheetColumns)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"[{self.type}] ({self.spreadsheet_id})"


class CsvRemoteConfig(BaseModel):
    """A CSV file acting as the remote mirror."""

    type: Literal["csv"] = "csv"
    path: str = Field(min_length=1)
    columns: SheetColumns = Field(default_factory=SheetColumns)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"[{self.type}] ({self.path})"


RemoteConfig = Annotated[
    Union[SpreadsheetRemoteConfig, CsvRemoteConfig],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SettingsConfig(BaseModel):
    """General settings.

    Attributes:
        editor: Editor command for merge documents; falls back to
            ``$VISUAL`` / ``$EDITOR`` / ``vi``.
        default_currency: Currency for newly registered clients.
        default_remote: Remote used when none is named.
        default_client: Client used when none is named.
        autosync: Operations after which a sync should run.
    """

    editor: str | None = None
    default_currency: str = "USD"
    default_remote: str | None = None
    default_client: str | None = None
    autosync: list[Literal["start", "end", "edit", "delete"]] = []

    model_config = {"frozen": True}


class DatabaseConfig(BaseModel):
    """Local store settings."""

    engine: Literal["sqlite3"] = "sqlite3"
    path: str = "~/.punch/punch.db"

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class PunchConfig(BaseModel):
    """Top-level configuration.

    Every section has sensible defaults, so ``PunchConfig()``
    (zero-config) is always valid.
    """

    settings: SettingsConfig = Field(default_factory=SettingsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    remotes: dict[str, RemoteConfig] = Field(default_factory=dict)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_remote_references(self) -> PunchConfig:
        default_remote = self.settings.default_remote
        if default_remote and default_remote not in self.remotes:
            raise ValueError(
                f"default_remote '{default_remote}' must have a corresponding "
                f"entry under 'remotes'"
            )
        if self.settings.autosync and not default_remote:
            raise ValueError("autosync requires settings.default_remote")
        return self

    def get_remote(
        self, name: str | None = None
    ) -> tuple[str, SpreadsheetRemoteConfig | CsvRemoteConfig]:
        """Return ``(name, remote)`` for *name* or the default remote.

        Raises:
            ValueError: No remote was named and no default is set, or
                the named remote does not exist.
        """
        remote_name = name or self.settings.default_remote
        if not remote_name:
            raise ValueError("must specify remote")
        remote = self.remotes.get(remote_name)
        if remote is None:
            raise ValueError(
                f"remote '{remote_name}' not found. Configured remotes: "
                f"{sorted(self.remotes)}"
            )
        return remote_name, remote


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> PunchConfig:
    """Construct a ``PunchConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get their defaults.
    """
    if not raw_data:
        return PunchConfig()

    return PunchConfig(**raw_data)


def resolve_editor(settings: SettingsConfig) -> str:
    """Pick the editor command: settings > ``$VISUAL`` > ``$EDITOR`` > ``vi``."""
    editor = (
        settings.editor
        or os.getenv("VISUAL")
        or os.getenv("EDITOR")
        or DEFAULT_EDITOR
    )
    logger.debug("Using editor: %s", editor)
    return editor
