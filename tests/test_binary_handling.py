#!/usr/bin/env python3
"""
Test encoding detection and binary file handling.
"""

import logging
import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path

# Add parent directory to path to import the dos2unix package
sys.path.insert(0, str(Path(__file__).parent.parent))
from dos2unix import (  # pylint: disable=wrong-import-position
    ConversionRequest,
    Encoding,
    Status,
    convert_file,
    detect_encoding,
    looks_binary,
    parse_encoding,
)
from dos2unix.convert import logger  # pylint: disable=wrong-import-position

# Disable logging for tests
logger.setLevel(logging.CRITICAL)


class TestEncodingDetection(unittest.TestCase):
    def test_utf8_bom(self) -> None:
        """A UTF-8 BOM wins and is three bytes long."""
        self.assertEqual(
            detect_encoding(b"\xef\xbb\xbfhello\r\n"), (Encoding.UTF8, 3)
        )

    def test_utf16_boms(self) -> None:
        """UTF-16 BOMs select the byte order."""
        self.assertEqual(
            detect_encoding(b"\xff\xfeh\x00i\x00"), (Encoding.UTF16LE, 2)
        )
        self.assertEqual(
            detect_encoding(b"\xfe\xff\x00h\x00i"), (Encoding.UTF16BE, 2)
        )

    def test_utf16_without_bom(self) -> None:
        """NUL bytes on one side of every unit mean BOM-less UTF-16."""
        text = "hello\r\nworld\r\n"
        self.assertEqual(
            detect_encoding(text.encode("utf-16-le")), (Encoding.UTF16LE, 0)
        )
        self.assertEqual(
            detect_encoding(text.encode("utf-16-be")), (Encoding.UTF16BE, 0)
        )

    def test_short_nul_prefix_is_not_utf16(self) -> None:
        """Too few units to call it UTF-16."""
        self.assertEqual(detect_encoding(b"ab\x00"), (Encoding.UTF8, 0))

    def test_utf8_and_latin1_fallback(self) -> None:
        """Valid UTF-8 is UTF-8; anything else falls back to ISO-8859-1."""
        self.assertEqual(detect_encoding(b"plain ascii\n"), (Encoding.UTF8, 0))
        self.assertEqual(
            detect_encoding("Hello 世界\r\n".encode("utf-8")), (Encoding.UTF8, 0)
        )
        self.assertEqual(detect_encoding(b"caf\xe9\r\n"), (Encoding.LATIN1, 0))
        self.assertEqual(detect_encoding(b""), (Encoding.UTF8, 0))

    def test_truncated_utf8_sequence_at_end_of_prefix(self) -> None:
        """A multi-byte sequence cut by the prefix boundary is still UTF-8."""
        self.assertEqual(detect_encoding(b"abc\xc3"), (Encoding.UTF8, 0))

    def test_override_bypasses_detection(self) -> None:
        """An override is used as is, but its BOM is still probed."""
        self.assertEqual(
            detect_encoding(b"\xef\xbb\xbfx", Encoding.UTF8), (Encoding.UTF8, 3)
        )
        self.assertEqual(
            detect_encoding(b"\xef\xbb\xbfx", Encoding.LATIN1), (Encoding.LATIN1, 0)
        )
        self.assertEqual(
            detect_encoding(b"plain text", Encoding.UTF16LE), (Encoding.UTF16LE, 0)
        )

    def test_parse_encoding(self) -> None:
        """Command-line tokens map to encodings."""
        self.assertIsNone(parse_encoding("auto"))
        self.assertIs(parse_encoding("utf8"), Encoding.UTF8)
        self.assertIs(parse_encoding("UTF16LE"), Encoding.UTF16LE)
        self.assertIs(parse_encoding("utf16be"), Encoding.UTF16BE)
        self.assertIs(parse_encoding("iso-8859-1"), Encoding.LATIN1)
        with self.assertRaises(ValueError):
            parse_encoding("ebcdic")


class TestBinaryClassifier(unittest.TestCase):
    def test_text_is_not_binary(self) -> None:
        """Plain text and empty input are text."""
        self.assertFalse(looks_binary(b"This is a text file\nWith lines\n", Encoding.UTF8))
        self.assertFalse(looks_binary(b"", Encoding.UTF8))
        self.assertFalse(looks_binary(b"\xef\xbb\xbf", Encoding.UTF8, 3))

    def test_null_bytes(self) -> None:
        """A NUL in a short text file marks it binary."""
        self.assertTrue(looks_binary(b"normal text\x00with null bytes", Encoding.UTF8))

    def test_nul_at_both_parities(self) -> None:
        """NULs at even and odd offsets are binary even when rare."""
        data = b"x" * 1000 + b"\x00\x00"
        self.assertTrue(looks_binary(data, Encoding.UTF8))

    def test_sparse_nul_at_one_parity(self) -> None:
        """A lone NUL in a large file stays under the threshold."""
        data = b"x" * 1000 + b"\x00"
        self.assertFalse(looks_binary(data, Encoding.UTF8))

    def test_non_text_ratio(self) -> None:
        """Mostly control bytes is binary."""
        self.assertTrue(looks_binary(b"\x01\x02\x03" * 100, Encoding.LATIN1))

    def test_utf16_text(self) -> None:
        """NUL high bytes are normal in UTF-16."""
        data = b"\xff\xfe" + "Line 1\r\nLine 2\r\n".encode("utf-16-le")
        self.assertFalse(looks_binary(data, Encoding.UTF16LE, 2))
        # U+0100 has a NUL low byte, at an even offset.
        self.assertFalse(looks_binary("Ā\r\n".encode("utf-16-le"), Encoding.UTF16LE))

    def test_utf16_nul_unit(self) -> None:
        """A U+0000 code unit is binary."""
        data = "a\x00b".encode("utf-16-le")
        self.assertTrue(looks_binary(data, Encoding.UTF16LE))


class TestBinaryHandling(unittest.TestCase):
    def setUp(self) -> None:
        # Create a temporary directory
        self.test_dir = tempfile.mkdtemp()

        self.text_file = os.path.join(self.test_dir, "text_file.txt")
        with open(self.text_file, "wb") as f:
            f.write(b"This is a text file\nWith multiple lines\n")

        self.binary_file = os.path.join(self.test_dir, "binary_file.bin")
        with open(self.binary_file, "wb") as f:
            f.write(b"\x00\x01\x02\x03\xff\xfe\xfd\xfc")

        # PNG header: CRLF and LF bytes next to NULs on both parities
        self.png_file = os.path.join(self.test_dir, "image.png")
        with open(self.png_file, "wb") as f:
            f.write(b"\x89PNG\r\n\x1a\n\x00\x00\x00\x0dIHDR\x00\x00")

    def tearDown(self) -> None:
        # Clean up the temporary directory
        shutil.rmtree(self.test_dir)

    def test_binary_files_are_skipped(self) -> None:
        """Binary files are reported and left byte-for-byte untouched."""
        for path in (self.binary_file, self.png_file):
            with open(path, "rb") as f:
                before = f.read()

            outcome = convert_file(ConversionRequest(path, backup=True))

            self.assertIs(outcome.status, Status.SKIPPED_BINARY)
            self.assertTrue(outcome.binary)
            self.assertFalse(outcome.failed)
            with open(path, "rb") as f:
                self.assertEqual(f.read(), before)
            self.assertFalse(os.path.exists(path + "~"))

        outcome = convert_file(ConversionRequest(self.text_file))
        self.assertIs(outcome.status, Status.UNCHANGED)

    def test_force_converts_binary(self) -> None:
        """With force the byte-level rules are applied regardless."""
        outcome = convert_file(ConversionRequest(self.png_file, force=True))

        self.assertIs(outcome.status, Status.CONVERTED)
        self.assertTrue(outcome.binary)
        with open(self.png_file, "rb") as f:
            self.assertEqual(f.read(), b"\x89PNG\n\x1a\n\x00\x00\x00\x0dIHDR\x00\x00")

    def test_empty_file_is_text(self) -> None:
        """Empty files are neither binary nor changed."""
        empty_file = os.path.join(self.test_dir, "empty.txt")
        with open(empty_file, "wb"):
            pass

        outcome = convert_file(ConversionRequest(empty_file, add_eol=True))
        self.assertIs(outcome.status, Status.UNCHANGED)
        self.assertEqual(os.path.getsize(empty_file), 0)


if __name__ == "__main__":
    unittest.main()
