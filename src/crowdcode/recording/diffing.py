"""Baseline reconstruction and unified diffs.

Diffs mark a missing trailing newline the way git does, so ``apply_patch``
reproduces the target text byte for byte.
"""

from __future__ import annotations

import difflib
import re
from collections.abc import Iterable

from crowdcode.host import DocumentChange

NO_NEWLINE_MARKER = "\\ No newline at end of file\n"

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


def apply_edits(content: str, edits: Iterable[DocumentChange]) -> str:
    """Replay buffered edits in order: each replaces [offset, offset+length)."""
    for edit in edits:
        end = edit.range_offset + edit.range_length
        content = content[: edit.range_offset] + edit.text + content[end:]
    return content


def split_lines(text: str) -> list[str]:
    """Split on newline only, keeping terminators (str.splitlines splits on more)."""
    if not text:
        return []
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def unified_diff(old: str | None, new: str | None, path: str, context: int = 3) -> str | None:
    """Unified diff from ``old`` to ``new``; None when there is nothing to show."""
    if old is None and new is None:
        return None
    if old == new:
        return None

    out: list[str] = []
    for line in difflib.unified_diff(
        split_lines(old or ""),
        split_lines(new or ""),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        n=context,
    ):
        if line.endswith("\n"):
            out.append(line)
        else:
            out.append(line + "\n")
            out.append(NO_NEWLINE_MARKER)
    return "".join(out) or None


def apply_patch(text: str, patch: str) -> str:
    """Apply a unified diff produced by ``unified_diff``.

    Raises:
        ValueError: If a context or removed line does not match ``text``.
    """
    source = split_lines(text)
    hunks = _parse_hunks(split_lines(patch))

    out: list[str] = []
    pos = 0
    for start, body in hunks:
        if start < pos or start > len(source):
            raise ValueError(f"Hunk at line {start + 1} is out of order or out of range")
        out.extend(source[pos:start])
        pos = start
        for op, line in body:
            if op == "+":
                out.append(line)
                continue
            if pos >= len(source) or source[pos] != line:
                raise ValueError(f"Patch does not apply at line {pos + 1}")
            if op == " ":
                out.append(line)
            pos += 1
    out.extend(source[pos:])
    return "".join(out)


def _parse_hunks(lines: list[str]) -> list[tuple[int, list[tuple[str, str]]]]:
    hunks: list[tuple[int, list[tuple[str, str]]]] = []
    body: list[tuple[str, str]] | None = None
    for line in lines:
        if body is None and (line.startswith("--- ") or line.startswith("+++ ")):
            continue
        match = _HUNK_HEADER.match(line)
        if match:
            old_start = int(match.group(1))
            old_len = int(match.group(2)) if match.group(2) is not None else 1
            # An empty old range names the line the insertion follows
            start = old_start if old_len == 0 else old_start - 1
            body = []
            hunks.append((start, body))
            continue
        if body is None:
            continue
        if line == NO_NEWLINE_MARKER or line == NO_NEWLINE_MARKER.rstrip("\n"):
            if body:
                op, content = body[-1]
                body[-1] = (op, content.removesuffix("\n"))
            continue
        if line[:1] in (" ", "-", "+"):
            body.append((line[0], line[1:]))
    return hunks
