"""
End-of-line normalization pass.

Rewrites every line terminator that differs from the configured marker and
leaves line content, and a final line without a terminator, untouched.
"""

import logging
import os
import threading
from typing import Callable, Dict, List, Optional

from textlines import TextChange, apply_changes, get_lines, raise_if_cancelled

logger = logging.getLogger("endline.eol")

END_OF_LINE_KEY = "end_of_line"

STYLE_MARKERS: Dict[str, str] = {
    "lf": "\n",
    "cr": "\r",
    "crlf": "\r\n",
}


def get_end_of_line(style: str, platform_default: str = os.linesep) -> str:
    """Map a style token to its marker; unrecognized tokens get the platform default."""
    return STYLE_MARKERS.get(style, platform_default)


def try_get_end_of_line(
    lookup: Callable[[str], Optional[str]], platform_default: str = os.linesep
) -> Optional[str]:
    """Return the configured marker, or None when no end_of_line convention exists."""
    style: Optional[str] = lookup(END_OF_LINE_KEY)
    if style is None:
        return None
    if style not in STYLE_MARKERS:
        logger.debug(
            "Unrecognized %s value %r, using platform default %r",
            END_OF_LINE_KEY,
            style,
            platform_default,
        )
    return get_end_of_line(style, platform_default)


def replace_line_endings(
    text: str, end_of_line: str, cancel_event: Optional[threading.Event] = None
) -> str:
    """Replace every terminator of text that is not already end_of_line."""
    raise_if_cancelled(cancel_event)

    changes: List[TextChange] = []
    for line in get_lines(text):
        raise_if_cancelled(cancel_event)

        # End of file
        if line.break_length == 0:
            break

        if line.terminator(text) == end_of_line:
            continue

        changes.append(TextChange(line.end, line.end_including_break, end_of_line))

    if not changes:
        return text

    logger.debug("Replacing %d line endings with %r", len(changes), end_of_line)
    return apply_changes(text, changes)


def normalize(
    text: str,
    style: Optional[str],
    platform_default: str = os.linesep,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """
    Normalize the line endings of text to the marker named by style.

    style is one of "lf", "cr" or "crlf". None means no convention is
    configured and returns text unchanged; any other value selects
    platform_default.
    """
    if style is None:
        return text
    return replace_line_endings(
        text, get_end_of_line(style, platform_default), cancel_event
    )


def format_end_of_line(
    text: str,
    lookup: Callable[[str], Optional[str]],
    platform_default: str = os.linesep,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """Formatting pass entry point: resolve the marker through lookup and normalize."""
    end_of_line: Optional[str] = try_get_end_of_line(lookup, platform_default)
    if end_of_line is None:
        return text
    return replace_line_endings(text, end_of_line, cancel_event)
