"""
Formatting passes run by the endline driver over each document.

Every pass is a plain function ``apply(text, lookup, cancel_event) -> text``
that reads its settings through ``lookup`` and returns ``text`` itself when
there is nothing to change.
"""

import logging
import os
import threading
from typing import Callable, List, Mapping, NamedTuple, Optional, Tuple

from eol import format_end_of_line
from textlines import TextChange, apply_changes, get_lines, raise_if_cancelled

logger = logging.getLogger("endline.passes")

Lookup = Callable[[str], Optional[str]]

DEFAULT_TAB_WIDTH = 4


class FormattingPass(NamedTuple):
    name: str
    description: str
    apply: Callable[[str, Lookup, Optional[threading.Event]], str]


def make_lookup(conventions: Mapping[str, Optional[str]]) -> Lookup:
    """Wrap a mapping of conventions as a lookup; None values count as absent."""

    def lookup(key: str) -> Optional[str]:
        return conventions.get(key)

    return lookup


def trim_trailing_whitespace(
    text: str, lookup: Lookup, cancel_event: Optional[threading.Event] = None
) -> str:
    """Remove spaces and tabs at the end of every line, keeping terminators."""
    if (lookup("trim_trailing_whitespace") or "").lower() != "true":
        return text
    raise_if_cancelled(cancel_event)

    changes: List[TextChange] = []
    for line in get_lines(text):
        raise_if_cancelled(cancel_event)
        content: str = line.content(text)
        stripped: str = content.rstrip(" \t")
        if len(stripped) != len(content):
            changes.append(TextChange(line.start + len(stripped), line.end, ""))

    return apply_changes(text, changes)


def _get_tab_width(lookup: Lookup) -> int:
    value: Optional[str] = lookup("tab_width")
    if value is None:
        return DEFAULT_TAB_WIDTH
    try:
        width: int = int(value)
    except ValueError:
        width = 0
    if width <= 0:
        # Reported once by the caller that built the conventions
        logger.debug("Invalid tab_width %r, using %d", value, DEFAULT_TAB_WIDTH)
        return DEFAULT_TAB_WIDTH
    return width


def expand_tabs(
    text: str, lookup: Lookup, cancel_event: Optional[threading.Event] = None
) -> str:
    """Replace every tab with tab_width spaces when indent_style is space."""
    if (lookup("indent_style") or "").lower() != "space":
        return text
    raise_if_cancelled(cancel_event)

    spaces: str = " " * _get_tab_width(lookup)
    changes: List[TextChange] = []
    for line in get_lines(text):
        raise_if_cancelled(cancel_event)
        content: str = line.content(text)
        if "\t" in content:
            changes.append(
                TextChange(line.start, line.end, content.replace("\t", spaces))
            )

    return apply_changes(text, changes)


def end_of_line_pass(platform_default: str = os.linesep) -> FormattingPass:
    """Build the end-of-line pass with an explicit fallback marker."""

    def apply(
        text: str, lookup: Lookup, cancel_event: Optional[threading.Event] = None
    ) -> str:
        return format_end_of_line(text, lookup, platform_default, cancel_event)

    return FormattingPass("end_of_line", "Fix end of line marker", apply)


def default_passes(platform_default: str = os.linesep) -> List[FormattingPass]:
    # End of line runs last so it sees every terminator in its final position
    return [
        FormattingPass(
            "trim_trailing_whitespace",
            "Fix trailing whitespace",
            trim_trailing_whitespace,
        ),
        FormattingPass("expand_tabs", "Fix tab indentation", expand_tabs),
        end_of_line_pass(platform_default),
    ]


DEFAULT_PASSES: List[FormattingPass] = default_passes()


def run_passes(
    text: str,
    lookup: Lookup,
    passes: Optional[List[FormattingPass]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[str, List[str]]:
    """
    Run each pass over text in order.

    Returns the final text and the descriptions of the passes that changed
    it. FormattingCancelled propagates so that no partial result escapes.
    """
    if passes is None:
        passes = DEFAULT_PASSES

    applied: List[str] = []
    for formatting_pass in passes:
        new_text: str = formatting_pass.apply(text, lookup, cancel_event)
        if new_text != text:
            logger.debug("Pass %s changed the document", formatting_pass.name)
            applied.append(formatting_pass.description)
        text = new_text
    return text, applied
