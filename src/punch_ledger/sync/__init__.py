"""Bidirectional session sync between the local store and a remote mirror.

Architecture
------------
Reconciliation is **identity-based**: a remote row and a local session
are the same record when they share an id, or, failing that, when they
are *similar* (same client, same start second).  Only same-id pairs with
different content are conflicts, and only conflicts reach a human.

Modules:

- ``engine``    -- ``Reconciler``: orchestrates a pull -> merge -> push run.
- ``mapper``    -- ``RecordMapper``: pairs local sessions with remote rows.
- ``models``    -- ``SessionConflict``, ``PullPlan``, ``Resolution``,
  ``SyncSummary``: data contracts.
- ``merger``    -- In-process ``diff -D`` and conflict-marker rewriting.
- ``document``  -- The YAML merge-document format.
- ``resolver``  -- ``ConflictRenderer``: renders, edits and parses a merge.
- ``editor``    -- ``InteractiveEditor`` protocol and ``ExternalEditor``.
- ``remotes``   -- ``RemoteMirror`` protocol, ``SheetMirror`` and
  ``create_mirror``.

Usage example
-------------
::

    from punch_ledger.config_loader import load_config
    from punch_ledger.config_schema import resolve_editor
    from punch_ledger.logger import setup_logging_from_config
    from punch_ledger.store import SqliteSessionStore
    from punch_ledger.sync import (
        ConflictRenderer,
        ExternalEditor,
        Reconciler,
        create_mirror,
    )

    config = load_config()
    setup_logging_from_config(config.logging, mode="file")
    name, remote = config.get_remote()
    store = SqliteSessionStore.from_config(config.database)

    reconciler = Reconciler(
        store=store,
        remote=create_mirror(remote),
        renderer=ConflictRenderer(ExternalEditor(resolve_editor(config.settings))),
        remote_name=name,
    )
    print(reconciler.sync().summary())
"""

from .editor import ExternalEditor, InteractiveEditor
from .engine import Reconciler
from .mapper import RecordMapper
from .models import PullPlan, Resolution, SessionConflict, SyncSummary
from .remotes import (
    CsvSheetValues,
    RemoteMirror,
    SheetMirror,
    SheetValues,
    create_mirror,
)
from .resolver import ConflictRenderer

__all__ = [
    "ConflictRenderer",
    "CsvSheetValues",
    "ExternalEditor",
    "InteractiveEditor",
    "PullPlan",
    "Reconciler",
    "RecordMapper",
    "RemoteMirror",
    "Resolution",
    "SessionConflict",
    "SheetMirror",
    "SheetValues",
    "SyncSummary",
    "create_mirror",
]
