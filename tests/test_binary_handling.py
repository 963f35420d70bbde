#!/usr/bin/env python3
"""
Test that binary files pass through endline.py untouched.
"""

import logging
import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path

# Add parent directory to path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))
import endline  # pylint: disable=wrong-import-position

# Disable logging for tests
endline.logger.setLevel(logging.CRITICAL)

CRLF = {"end_of_line": "crlf", "trim_trailing_whitespace": "true"}
LF = {"end_of_line": "lf"}


class TestBinaryHandling(unittest.TestCase):
    def setUp(self) -> None:
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self) -> None:
        shutil.rmtree(self.test_dir)

    def write_bytes(self, name: str, content: bytes) -> str:
        file_path = os.path.join(self.test_dir, name)
        with open(file_path, "wb") as f:
            f.write(content)
        return file_path

    def assert_untouched(self, name: str, content: bytes) -> None:
        file_path = self.write_bytes(name, content)
        self.assertFalse(endline.process_file(file_path, CRLF), name)
        with open(file_path, "rb") as f:
            self.assertEqual(f.read(), content, name)

    def test_png_header_line_breaks_are_kept(self) -> None:
        """The CRLF and LF bytes in a PNG header are not line endings."""
        self.assert_untouched(
            "image.png", b"\x89PNG\r\n\x1a\n\x00\x00\x00\x0dIHDR\x00\x00"
        )

    def test_binary_extension_skips_text_content(self) -> None:
        self.assert_untouched("notes.pdf", b"plain words  \nmore words\n")
        self.assert_untouched("ARCHIVE.ZIP", b"plain words  \n")

    def test_signature_in_text_named_file(self) -> None:
        self.assert_untouched("gif.txt", b"GIF89a header  \nrest\n")
        self.assert_untouched("pdf.txt", b"%PDF-1.4\n%trailer  \n")

    def test_nul_byte_in_text_named_file(self) -> None:
        self.assert_untouched("null_bytes.txt", b"normal text\x00with nul\n")

    def test_control_bytes_in_text_named_file(self) -> None:
        self.assert_untouched("control.txt", b"\x01\x02\x03\n" * 100)

    def test_nul_past_sniff_window_is_content(self) -> None:
        """Only the start of the file decides; later NUL bytes are kept as text."""
        head = b"a\r\n" * (endline.SNIFF_SIZE // 3 + 1)
        file_path = self.write_bytes("long.txt", head + b"\x00\r\n")

        self.assertTrue(endline.process_file(file_path, LF))
        with open(file_path, "rb") as f:
            self.assertEqual(f.read(), b"a\n" * (endline.SNIFF_SIZE // 3 + 1) + b"\x00\n")

    def test_lone_cr_text_is_formatted(self) -> None:
        file_path = self.write_bytes("classic_mac.txt", b"Line 1\rLine 2\rLine 3\r")

        self.assertTrue(endline.process_file(file_path, LF))
        with open(file_path, "rb") as f:
            self.assertEqual(f.read(), b"Line 1\nLine 2\nLine 3\n")

    def test_check_mode_counts_only_text(self) -> None:
        files = [
            self.write_bytes("binary.bin", b"\x00\x01\r\n\x02"),
            self.write_bytes("photo.jpg", b"\xff\xd8\xff\xe0\r\n"),
            self.write_bytes("text.txt", b"one\ntwo\n"),
        ]

        self.assertEqual(
            endline.process_files_parallel(files, CRLF, check=True, max_workers=2), 1
        )


class TestLooksBinary(unittest.TestCase):
    def test_text(self) -> None:
        self.assertFalse(endline.looks_binary(b""))
        self.assertFalse(endline.looks_binary(b"tab\tbell\x07 esc\x1b[0m\r\n"))
        self.assertFalse(endline.looks_binary("café 世界\n".encode("utf-8")))

    def test_binary(self) -> None:
        self.assertTrue(endline.looks_binary(b"\x7fELF\x02\x01\x01"))
        self.assertTrue(endline.looks_binary(b"text\x00"))
        self.assertTrue(endline.looks_binary(b"ab\x01\x02"))


if __name__ == "__main__":
    unittest.main()
