"""
Encoding detection and binary classification.

Both work on a bounded prefix of a file and never touch the filesystem, so
the heuristics can be tuned and tested without going through the writer.
"""

import codecs
from enum import Enum
from typing import Dict, Optional, Tuple


class Encoding(Enum):
    """Encodings the converter knows how to walk terminator by terminator."""

    UTF8 = "utf8"
    UTF16LE = "utf16le"
    UTF16BE = "utf16be"
    LATIN1 = "iso-8859-1"

    @property
    def unit_size(self) -> int:
        return 2 if self in (Encoding.UTF16LE, Encoding.UTF16BE) else 1

    @property
    def bom(self) -> bytes:
        return BOMS.get(self, b"")


BOMS: Dict[Encoding, bytes] = {
    Encoding.UTF8: codecs.BOM_UTF8,
    Encoding.UTF16LE: codecs.BOM_UTF16_LE,
    Encoding.UTF16BE: codecs.BOM_UTF16_BE,
}

ENCODING_CHOICES = ("auto",) + tuple(e.value for e in Encoding)

# Share of 16-bit units whose high byte must be NUL before a BOM-less
# prefix is taken as UTF-16.
UTF16_NUL_RATIO = 0.3
UTF16_MIN_UNITS = 4

# NUL share above which an 8-bit / UTF-8 prefix is binary.
BINARY_NUL_THRESHOLD = 0.01
# Share of control bytes above which an 8-bit / UTF-8 prefix is binary.
BINARY_CONTROL_RATIO = 0.2

_TEXT_BYTES = bytes(
    bytearray({7, 8, 9, 10, 12, 13, 27} | set(range(0x20, 0x100)) - {0x7F})
)


def parse_encoding(token: str) -> Optional[Encoding]:
    """Map a command-line token to an Encoding; ``auto`` means detect."""
    token = token.strip().lower()
    if token == "auto":
        return None
    for encoding in Encoding:
        if encoding.value == token:
            return encoding
    raise ValueError(
        f"unknown encoding '{token}' (expected one of: {', '.join(ENCODING_CHOICES)})"
    )


def _guess_utf16(prefix: bytes) -> Optional[Encoding]:
    units = len(prefix) // 2
    if units < UTF16_MIN_UNITS:
        return None
    even_nuls = prefix[0 : units * 2 : 2].count(b"\x00")
    odd_nuls = prefix[1 : units * 2 : 2].count(b"\x00")
    if even_nuls == 0 and odd_nuls >= units * UTF16_NUL_RATIO:
        return Encoding.UTF16LE
    if odd_nuls == 0 and even_nuls >= units * UTF16_NUL_RATIO:
        return Encoding.UTF16BE
    return None


def _is_utf8(prefix: bytes) -> bool:
    # A multi-byte sequence cut off by the end of the prefix is not an error.
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        decoder.decode(prefix, final=False)
    except UnicodeDecodeError:
        return False
    return True


def detect_encoding(
    prefix: bytes, override: Optional[Encoding] = None
) -> Tuple[Encoding, int]:
    """
    Detect the encoding of a file from its leading bytes.

    Returns ``(encoding, bom_len)``. The first matching rule wins: a UTF-8,
    UTF-16LE or UTF-16BE BOM, then a NUL-pattern guess for BOM-less UTF-16,
    then UTF-8 if the prefix decodes, otherwise ISO-8859-1. Detection never
    fails. An override skips the rules but the BOM is still probed so it can
    be reported and handled.
    """
    if override is not None:
        bom = override.bom
        return override, len(bom) if bom and prefix.startswith(bom) else 0

    for encoding in (Encoding.UTF8, Encoding.UTF16LE, Encoding.UTF16BE):
        if prefix.startswith(encoding.bom):
            return encoding, len(encoding.bom)

    guessed = _guess_utf16(prefix)
    if guessed is not None:
        return guessed, 0

    if _is_utf8(prefix):
        return Encoding.UTF8, 0
    return Encoding.LATIN1, 0


def _has_nul_unit(data: bytes) -> bool:
    start = 0
    while True:
        idx = data.find(b"\x00\x00", start)
        if idx < 0:
            return False
        if idx % 2 == 0:
            return True
        start = idx + 1


def looks_binary(prefix: bytes, encoding: Encoding, bom_len: int = 0) -> bool:
    """
    Check whether a prefix looks like binary data rather than text.

    For UTF-16 a U+0000 code unit marks the data as binary; NUL bytes are
    otherwise expected in the high half of ASCII units. For UTF-8 and 8-bit
    data, NUL bytes at both even and odd offsets, a NUL share above
    ``BINARY_NUL_THRESHOLD`` or too many control bytes mark it as binary.
    """
    data = prefix[bom_len:]
    if not data:
        return False

    if encoding.unit_size == 2:
        return _has_nul_unit(data[: len(data) // 2 * 2])

    nuls = data.count(b"\x00")
    if nuls:
        even_nuls = data[0::2].count(b"\x00")
        if even_nuls and nuls - even_nuls:
            return True
        if nuls / len(data) > BINARY_NUL_THRESHOLD:
            return True

    non_text = data.translate(None, _TEXT_BYTES)
    return len(non_text) / len(data) > BINARY_CONTROL_RATIO
