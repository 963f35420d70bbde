"""
Line indexing and batch text edits for the endline formatting passes.

A document is a plain ``str``. Lines are derived from it on demand and carry
only offsets, so they stay valid for exactly the text they were computed from.
"""

import threading
from typing import Iterable, List, NamedTuple, Optional


class FormattingCancelled(Exception):
    """Raised when a pass notices that its cancel event has been set."""


def raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise FormattingCancelled()


class Line(NamedTuple):
    """Offsets of one line: content is [start, end), terminator [end, end_including_break)."""

    start: int
    end: int
    end_including_break: int

    @property
    def break_length(self) -> int:
        return self.end_including_break - self.end

    def content(self, text: str) -> str:
        return text[self.start : self.end]

    def terminator(self, text: str) -> str:
        return text[self.end : self.end_including_break]


class TextChange(NamedTuple):
    """Replace text[start:end] with new_text, in original-text coordinates."""

    start: int
    end: int
    new_text: str


def get_lines(text: str) -> List[Line]:
    """
    Split text into lines with known terminator spans.

    Recognized terminators are CRLF, LF and a lone CR. The empty document has
    no lines; otherwise the last line follows the last terminator and is empty
    when the text ends with one.
    """
    lines: List[Line] = []
    if not text:
        return lines

    length: int = len(text)
    start: int = 0
    position: int = 0
    while position < length:
        char: str = text[position]
        if char == "\n":
            lines.append(Line(start, position, position + 1))
            position += 1
            start = position
        elif char == "\r":
            if position + 1 < length and text[position + 1] == "\n":
                lines.append(Line(start, position, position + 2))
                position += 2
            else:
                lines.append(Line(start, position, position + 1))
                position += 1
            start = position
        else:
            position += 1

    # Final line, possibly empty, with no terminator
    lines.append(Line(start, length, length))
    return lines


def apply_changes(text: str, changes: Iterable[TextChange]) -> str:
    """
    Apply a batch of non-overlapping changes as if they happened at once.

    Every offset refers to the original text, so the order in which changes
    were recorded does not matter.
    """
    ordered: List[TextChange] = sorted(changes, key=lambda change: change.start)
    if not ordered:
        return text

    parts: List[str] = []
    cursor: int = 0
    for change in ordered:
        if change.start < 0 or change.end > len(text) or change.end < change.start:
            raise ValueError(
                f"Change span [{change.start}, {change.end}) is outside "
                f"text of length {len(text)}"
            )
        if change.start < cursor:
            raise ValueError(
                f"Change at {change.start} overlaps a previous change ending at {cursor}"
            )
        parts.append(text[cursor : change.start])
        parts.append(change.new_text)
        cursor = change.end
    parts.append(text[cursor:])
    return "".join(parts)
