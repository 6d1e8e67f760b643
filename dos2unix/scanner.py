"""
Line-ending scanning over text units.

UTF-8 and 8-bit content is scanned as raw bytes, since CR and LF never occur
inside a UTF-8 multi-byte sequence. UTF-16 content is scanned as 16-bit code
units: the units are put in a ``str`` one code unit per character (no
decoding, lone surrogates included), so both paths share the same
``count``/``replace``/``endswith`` based logic.
"""

import sys
from array import array
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .detect import Encoding

Units = Union[bytes, str]


class LineEndingStyle(Enum):
    UNIX = "unix"
    DOS = "dos"
    MAC = "mac"
    MIXED = "mixed"


@dataclass
class LineStats:
    """Terminator counts for one file, after a single left-to-right pass."""

    crlf: int = 0
    lf: int = 0
    cr: int = 0
    ends_with_eol: bool = False

    @property
    def total(self) -> int:
        return self.crlf + self.lf + self.cr

    @property
    def mixed(self) -> bool:
        return sum(1 for n in (self.crlf, self.lf, self.cr) if n) > 1

    @property
    def dominant(self) -> Optional[LineEndingStyle]:
        """Most frequent terminator kind; ties go to Dos, then Unix, then Mac."""
        if not self.total:
            return None
        ranked = [
            (self.crlf, LineEndingStyle.DOS),
            (self.lf, LineEndingStyle.UNIX),
            (self.cr, LineEndingStyle.MAC),
        ]
        best = max(count for count, _ in ranked)
        return next(style for count, style in ranked if count == best)

    @property
    def style(self) -> Optional[LineEndingStyle]:
        if self.mixed:
            return LineEndingStyle.MIXED
        return self.dominant


class ByteUnits:
    """One byte per unit, used for UTF-8 and ISO-8859-1."""

    cr = b"\r"
    lf = b"\n"

    def decode(self, data: bytes) -> bytes:
        return data

    def encode(self, units: bytes) -> bytes:
        return units

    def flush(self) -> bytes:
        return b""


class Utf16Units:
    """16-bit code units in native order, carried as one character each."""

    cr = "\r"
    lf = "\n"

    def __init__(self, big_endian: bool) -> None:
        self._swap = big_endian == (sys.byteorder == "little")
        self._odd = b""

    def decode(self, data: bytes) -> str:
        data = self._odd + data
        cut = len(data) // 2 * 2
        self._odd = data[cut:]
        codes = array("H")
        codes.frombytes(data[:cut])
        if self._swap:
            codes.byteswap()
        return "".join(map(chr, codes))

    def encode(self, units: str) -> bytes:
        codes = array("H", map(ord, units))
        if self._swap:
            codes.byteswap()
        return codes.tobytes()

    def flush(self) -> bytes:
        # A dangling odd byte is not a code unit; it goes out untouched.
        odd, self._odd = self._odd, b""
        return odd


def make_units(encoding: Encoding) -> Union[ByteUnits, Utf16Units]:
    if encoding is Encoding.UTF16LE:
        return Utf16Units(big_endian=False)
    if encoding is Encoding.UTF16BE:
        return Utf16Units(big_endian=True)
    return ByteUnits()


class LineEndingScanner:
    """
    Streaming terminator counter.

    A CR immediately followed by LF is one CRLF; any other CR is a lone CR
    and any other LF a lone LF. ``feed`` returns the units that are safe to
    rewrite: a trailing CR is held back until the next chunk (or ``flush``)
    shows whether an LF follows it.
    """

    def __init__(self, cr: Units, lf: Units) -> None:
        self._cr = cr
        self._lf = lf
        self._crlf = cr + lf
        self._pending = cr[:0]
        self.stats = LineStats()

    def feed(self, units: Units) -> Units:
        units = self._pending + units
        if units.endswith(self._cr):
            units, self._pending = units[:-1], units[-1:]
        else:
            self._pending = units[:0]
        self._count(units)
        return units

    def flush(self) -> Units:
        units, self._pending = self._pending, self._pending[:0]
        self._count(units)
        return units

    def _count(self, units: Units) -> None:
        if not units:
            return
        crlf = units.count(self._crlf)
        self.stats.crlf += crlf
        self.stats.cr += units.count(self._cr) - crlf
        self.stats.lf += units.count(self._lf) - crlf
        self.stats.ends_with_eol = units.endswith(self._cr) or units.endswith(
            self._lf
        )


def scan_line_endings(data: bytes, encoding: Encoding, bom_len: int = 0) -> LineStats:
    """Count terminators in a complete in-memory buffer."""
    codec = make_units(encoding)
    scanner = LineEndingScanner(codec.cr, codec.lf)
    scanner.feed(codec.decode(data[bom_len:]))
    scanner.flush()
    return scanner.stats
