"""Line diff and conflict-marker utilities for the merge document.

The merge document shows the local and remote copies of conflicting
sessions side by side.  Building it is a three-step pipeline:

1. ``ifdef_diff`` merges two line lists into a single listing guarded by
   conditional-compilation markers, the same output ``diff -D TAG``
   produces, using ``difflib.SequenceMatcher`` in-process.
2. ``to_conflict_markers`` rewrites those guards into the familiar
   ``<<<<<<< LOCAL`` / ``=======`` / ``>>>>>>> REMOTE`` notation.  A
   one-sided region (only local or only remote lines) still gets both
   halves so the reviewer always faces a two-way choice.
3. ``keep_conflicting_blocks`` drops every record that sits wholly
   outside a conflict region.
"""

from __future__ import annotations

import difflib

MERGE_TAG = "HEAD"

LOCAL_MARKER = "<<<<<<< LOCAL"
MID_MARKER = "======="
REMOTE_MARKER = ">>>>>>> REMOTE"

_MARKERS = (LOCAL_MARKER, MID_MARKER, REMOTE_MARKER)


def ifdef_diff(
    local_lines: list[str],
    remote_lines: list[str],
    tag: str = MERGE_TAG,
) -> list[str]:
    """Merge two line lists the way ``diff -D tag local remote`` does.

    Args:
        local_lines: Lines of the local serialization (no newlines).
        remote_lines: Lines of the remote serialization (no newlines).
        tag: Macro name used in the guards.

    Returns:
        The merged listing.  Local-only lines sit under ``#ifndef tag``,
        remote-only lines under ``#ifdef tag``, and replaced regions use
        ``#ifndef`` / ``#else`` / ``#endif``.
    """
    matcher = difflib.SequenceMatcher(
        None, local_lines, remote_lines, autojunk=False
    )
    merged: list[str] = []
    for op, i1, i2, j1, j2 in matcher.get_opcodes():
        if op == "equal":
            merged.extend(local_lines[i1:i2])
        elif op == "replace":
            merged.append(f"#ifndef {tag}")
            merged.extend(local_lines[i1:i2])
            merged.append(f"#else /* {tag} */")
            merged.extend(remote_lines[j1:j2])
            merged.append(f"#endif /* {tag} */")
        elif op == "delete":
            merged.append(f"#ifndef {tag}")
            merged.extend(local_lines[i1:i2])
            merged.append(f"#endif /* ! {tag} */")
        elif op == "insert":
            merged.append(f"#ifdef {tag}")
            merged.extend(remote_lines[j1:j2])
            merged.append(f"#endif /* {tag} */")
    return merged


def to_conflict_markers(
    lines: list[str], tag: str = MERGE_TAG
) -> list[str]:
    """Rewrite ``diff -D`` guards into three-part conflict markers."""
    ifndef = f"#ifndef {tag}"
    ifdef = f"#ifdef {tag}"
    else_ = f"#else /* {tag} */"
    endif = f"#endif /* {tag} */"
    endif_not = f"#endif /* ! {tag} */"

    out: list[str] = []
    for line in lines:
        if line == ifndef:
            out.append(LOCAL_MARKER)
        elif line == ifdef:
            out.extend([LOCAL_MARKER, MID_MARKER])
        elif line == else_:
            out.append(MID_MARKER)
        elif line == endif:
            out.append(REMOTE_MARKER)
        elif line == endif_not:
            out.extend([MID_MARKER, REMOTE_MARKER])
        else:
            out.append(line)
    return out


def keep_conflicting_blocks(
    lines: list[str], separator: str
) -> list[str]:
    """Drop records that contain no conflict region.

    Records are delimited by *separator* lines that sit outside any
    conflict region; a separator inside a region belongs to that region.
    """
    blocks: list[list[str]] = [[]]
    inside = False
    for line in lines:
        if line == LOCAL_MARKER:
            inside = True
        elif line == REMOTE_MARKER:
            inside = False
        elif line == separator and not inside:
            blocks.append([])
            continue
        blocks[-1].append(line)

    kept: list[str] = []
    for block in blocks:
        if LOCAL_MARKER not in block:
            continue
        if kept:
            kept.append(separator)
        kept.extend(block)
    return kept


def has_conflict_markers(text: str) -> bool:
    """Return ``True`` if any line of *text* is a conflict marker."""
    return any(line.rstrip() in _MARKERS for line in text.splitlines())


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "old",
    label_new: str = "new",
) -> str:
    """Generate a unified diff between two strings.

    Returns:
        A unified diff string.  Empty string if the contents are identical.
    """
    diff_lines = difflib.unified_diff(
        old_content.splitlines(True),
        new_content.splitlines(True),
        fromfile=label_old,
        tofile=label_new,
    )
    return "".join(diff_lines)
