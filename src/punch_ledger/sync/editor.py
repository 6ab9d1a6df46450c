"""Interactive editing of the merge document.

``InteractiveEditor`` is the capability the conflict renderer consumes;
``ExternalEditor`` implements it by opening a temp file in the user's
editor and blocking until the editor exits.  There is no timeout: the
step waits on a human.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shlex
import subprocess
import tempfile
from typing import Protocol

from punch_ledger.errors import MergeAbortedError, NoChangesMadeError

logger = logging.getLogger(__name__)


class InteractiveEditor(Protocol):
    """Protocol for anything that lets a human edit text."""

    def edit(self, text: str) -> str:
        """Return the edited text.

        Raises:
            NoChangesMadeError: The human saved nothing new.
        """
        ...  # pragma: no cover


def _checksum(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ExternalEditor:
    """Edit text in an external editor process.

    Args:
        command: Editor command line (e.g. ``"vim"`` or ``"code --wait"``).
        suffix: Temp file suffix, used by editors for syntax highlighting.
    """

    def __init__(self, command: str = "vi", suffix: str = ".yaml") -> None:
        self.command = command
        self.suffix = suffix

    def edit(self, text: str) -> str:
        """Write *text* to a temp file, run the editor, read it back."""
        initial = _checksum(text)

        fd, tmp_path = tempfile.mkstemp(
            prefix="punch-merge-", suffix=self.suffix
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)

            argv = [*shlex.split(self.command), tmp_path]
            logger.debug("Launching editor: %s", argv)
            try:
                subprocess.run(argv, check=True)
            except FileNotFoundError as exc:
                raise MergeAbortedError(
                    f"Editor '{self.command}' not found"
                ) from exc
            except subprocess.CalledProcessError as exc:
                raise MergeAbortedError(
                    f"Editor '{self.command}' exited with status "
                    f"{exc.returncode}"
                ) from exc

            with open(tmp_path, encoding="utf-8") as fh:
                edited = fh.read()
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass

        if _checksum(edited) == initial:
            raise NoChangesMadeError()
        return edited
