"""punch_ledger: a personal ledger of billable work sessions.

Sessions are punched in and out per client with ``SessionClock`` and kept
in a local ``SessionStore``; ``punch_ledger.sync`` mirrors them to a
spreadsheet-like remote.
"""

__version__ = "0.4.0"

from .clock import SessionClock
from .models import Client, Session, Transition
from .store import SessionStore, SqliteSessionStore

__all__ = [
    "Client",
    "Session",
    "SessionClock",
    "SessionStore",
    "SqliteSessionStore",
    "Transition",
    "__version__",
]
