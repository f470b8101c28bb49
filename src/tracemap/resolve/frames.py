"""Stack-trace frame parsing.

Understands the two frame shapes browsers and Node emit:

- V8 (Chrome, Edge, Node): ``at fn (file:line:col)`` or ``at file:line:col``
- Gecko/WebKit (Firefox, Safari): ``fn@file:line:col``

Lines that match neither (the message line, ``<anonymous>`` frames) are
skipped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from tracemap.index.paths import normalize_path

_V8_FRAME = re.compile(
    r"^\s*at\s+(?:(?P<func>.+?)\s+\()?(?P<file>[^()\s]+?):(?P<line>\d+)(?::(?P<col>\d+))?\)?\s*$"
)
_GECKO_FRAME = re.compile(
    r"^\s*(?P<func>[^@\s]*)@(?P<file>\S+?):(?P<line>\d+)(?::(?P<col>\d+))?\s*$"
)


@dataclass(frozen=True, slots=True)
class StackFrame:
    """One parsed frame; ``file`` is already normalized."""

    func: str | None
    file: str
    line: int
    col: int | None = None


def parse_frame(text: str) -> StackFrame | None:
    """Parse a single frame line, or None if it is not a frame."""
    match = _V8_FRAME.match(text) or _GECKO_FRAME.match(text)
    if match is None:
        return None
    file = normalize_path(match.group("file"))
    if not file:
        return None
    col = match.group("col")
    return StackFrame(
        func=match.group("func") or None,
        file=file,
        line=int(match.group("line")),
        col=int(col) if col is not None else None,
    )


def parse_stack(text: str) -> list[StackFrame]:
    """Parse every recognizable frame of a stack trace, top frame first."""
    frames: list[StackFrame] = []
    for line in text.splitlines():
        frame = parse_frame(line)
        if frame is not None:
            frames.append(frame)
    return frames
