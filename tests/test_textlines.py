#!/usr/bin/env python3
"""
Tests for the line index and batch text edits in textlines.py.
"""

import sys
import threading
import unittest
from pathlib import Path

# Add parent directory to path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))
import textlines  # pylint: disable=wrong-import-position
from textlines import Line, TextChange  # pylint: disable=wrong-import-position


class TestGetLines(unittest.TestCase):
    def test_empty_text_has_no_lines(self) -> None:
        self.assertEqual(textlines.get_lines(""), [])

    def test_single_line_without_terminator(self) -> None:
        self.assertEqual(textlines.get_lines("abc"), [Line(0, 3, 3)])

    def test_each_terminator_kind(self) -> None:
        """LF, CRLF and a lone CR each end one line."""
        text = "a\nb\r\nc\rd"
        self.assertEqual(
            textlines.get_lines(text),
            [Line(0, 1, 2), Line(2, 3, 5), Line(5, 6, 7), Line(7, 8, 8)],
        )

    def test_trailing_terminator_yields_empty_final_line(self) -> None:
        lines = textlines.get_lines("a\nb\n")
        self.assertEqual(len(lines), 3)
        self.assertEqual(lines[-1], Line(4, 4, 4))
        self.assertEqual(lines[-1].break_length, 0)

    def test_cr_before_lf_is_one_terminator(self) -> None:
        lines = textlines.get_lines("\r\n")
        self.assertEqual(lines, [Line(0, 0, 2), Line(2, 2, 2)])

    def test_lf_before_cr_is_two_terminators(self) -> None:
        lines = textlines.get_lines("\n\r")
        self.assertEqual(lines, [Line(0, 0, 1), Line(1, 1, 2), Line(2, 2, 2)])

    def test_content_and_terminator_helpers(self) -> None:
        text = "first\r\nsecond"
        first, second = textlines.get_lines(text)
        self.assertEqual(first.content(text), "first")
        self.assertEqual(first.terminator(text), "\r\n")
        self.assertEqual(second.content(text), "second")
        self.assertEqual(second.terminator(text), "")

    def test_other_unicode_breaks_are_content(self) -> None:
        text = "a b\x85c"
        self.assertEqual(textlines.get_lines(text), [Line(0, 5, 5)])


class TestApplyChanges(unittest.TestCase):
    def test_no_changes_returns_same_object(self) -> None:
        text = "unchanged"
        self.assertIs(textlines.apply_changes(text, []), text)

    def test_changes_use_original_offsets(self) -> None:
        """Growing an earlier span does not shift later edits."""
        text = "a\nb\nc"
        changes = [TextChange(1, 2, "\r\n"), TextChange(3, 4, "\r\n")]
        self.assertEqual(textlines.apply_changes(text, changes), "a\r\nb\r\nc")

    def test_recording_order_does_not_matter(self) -> None:
        text = "0123456789"
        changes = [TextChange(8, 9, "X"), TextChange(1, 3, ""), TextChange(5, 5, "+")]
        self.assertEqual(textlines.apply_changes(text, changes), "034+567X9")

    def test_overlapping_changes_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            textlines.apply_changes(
                "abcdef", [TextChange(0, 3, "x"), TextChange(2, 4, "y")]
            )

    def test_out_of_range_change_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            textlines.apply_changes("abc", [TextChange(2, 5, "x")])
        with self.assertRaises(ValueError):
            textlines.apply_changes("abc", [TextChange(-1, 1, "x")])
        with self.assertRaises(ValueError):
            textlines.apply_changes("abc", [TextChange(2, 1, "x")])


class TestCancellation(unittest.TestCase):
    def test_unset_or_missing_event_is_ignored(self) -> None:
        textlines.raise_if_cancelled(None)
        textlines.raise_if_cancelled(threading.Event())

    def test_set_event_raises(self) -> None:
        event = threading.Event()
        event.set()
        with self.assertRaises(textlines.FormattingCancelled):
            textlines.raise_if_cancelled(event)


if __name__ == "__main__":
    unittest.main()
