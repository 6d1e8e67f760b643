"""
Line-ending rewriting.

The Transcoder is fed raw file bytes chunk by chunk and returns output bytes
chunk by chunk, so a file of any size goes through in one forward pass with
bounded memory. It never decodes or re-encodes characters; it only rewrites
CR/LF units and the BOM.
"""

from enum import Enum
from typing import Dict, Tuple

from .detect import Encoding
from .scanner import LineEndingScanner, LineEndingStyle, LineStats, Units, make_units

TARGET_STYLES = (LineEndingStyle.UNIX, LineEndingStyle.DOS)


class BomAction(Enum):
    NONE = "none"
    KEPT = "kept"
    ADDED = "added"
    REMOVED = "removed"


def resolve_bom(
    encoding: Encoding, has_bom: bool, keep_bom: bool, remove_bom: bool
) -> Tuple[bytes, BomAction]:
    """
    Decide which BOM, if any, starts the output.

    ``remove_bom`` strips it, ``keep_bom`` makes sure one is there, and with
    neither flag the input's BOM is passed through. ISO-8859-1 has no BOM, so
    ``keep_bom`` cannot add one there.
    """
    if remove_bom:
        return b"", BomAction.REMOVED if has_bom else BomAction.NONE
    if has_bom:
        return encoding.bom, BomAction.KEPT
    if keep_bom and encoding.bom:
        return encoding.bom, BomAction.ADDED
    return b"", BomAction.NONE


class Transcoder:
    """Streaming rewrite of line endings to a Unix or Dos target."""

    def __init__(  # pylint: disable=too-many-arguments
        self,
        encoding: Encoding,
        target: LineEndingStyle,
        bom_len: int = 0,
        mac: bool = False,
        add_eol: bool = False,
        keep_bom: bool = False,
        remove_bom: bool = False,
    ) -> None:
        if target not in TARGET_STYLES:
            raise ValueError(f"cannot convert to {target.value} line endings")
        self.encoding = encoding
        self.target = target
        self.mac = mac
        self.add_eol = add_eol
        self._codec = make_units(encoding)
        self._scanner = LineEndingScanner(self._codec.cr, self._codec.lf)
        self._cr: Units = self._codec.cr
        self._lf: Units = self._codec.lf
        self._crlf: Units = self._cr + self._lf
        self._eol: Units = self._crlf if target is LineEndingStyle.DOS else self._lf
        self._last_out: Units = self._cr[:0]

        self._bom_skip = bom_len
        self.bom_out, self.bom_action = resolve_bom(
            encoding, bom_len > 0, keep_bom, remove_bom
        )
        self._started = False

        self.eol_added = False
        self.changed = self.bom_action in (BomAction.ADDED, BomAction.REMOVED)
        self.bytes_in = 0
        self.bytes_out = 0

    @property
    def stats(self) -> LineStats:
        """Terminator counts of the input seen so far."""
        return self._scanner.stats

    @property
    def converted(self) -> Dict[LineEndingStyle, int]:
        """How many input terminators of each style were rewritten."""
        stats = self.stats
        counts = {
            LineEndingStyle.DOS: 0,
            LineEndingStyle.UNIX: 0,
            LineEndingStyle.MAC: stats.cr if self.mac else 0,
        }
        if self.target is LineEndingStyle.UNIX:
            counts[LineEndingStyle.DOS] = stats.crlf
        else:
            counts[LineEndingStyle.UNIX] = stats.lf
        return counts

    def feed(self, data: bytes) -> bytes:
        self.bytes_in += len(data)
        head = b""
        if self._bom_skip:
            skipped = data[: self._bom_skip]
            data = data[self._bom_skip :]
            self._bom_skip -= len(skipped)
        if not self._started:
            head = self.bom_out
            self._started = True
        ready = self._scanner.feed(self._codec.decode(data))
        return self._emit(head, self._rewrite(ready))

    def finish(self) -> bytes:
        """Flush held-back units and append the missing final EOL if asked to."""
        head = b""
        if not self._started:
            head = self.bom_out
            self._started = True
        out = self._rewrite(self._scanner.flush())
        if out:
            self._last_out = out[-1:]
        if (
            self.add_eol
            and self._last_out
            and self._last_out not in (self._cr, self._lf)
        ):
            out += self._eol
            self.eol_added = True
            self.changed = True
        return self._emit(head, out, tail=self._codec.flush())

    def _rewrite(self, units: Units) -> Units:
        if not units:
            return units
        out = units.replace(self._crlf, self._lf)
        if self.mac:
            out = out.replace(self._cr, self._lf)
        if self.target is LineEndingStyle.DOS:
            out = out.replace(self._lf, self._crlf)
        if out != units:
            self.changed = True
        return out

    def _emit(self, head: bytes, out: Units, tail: bytes = b"") -> bytes:
        if out:
            self._last_out = out[-1:]
        data = head + self._codec.encode(out) + tail
        self.bytes_out += len(data)
        return data


def transcode_bytes(  # pylint: disable=too-many-arguments
    data: bytes,
    encoding: Encoding,
    target: LineEndingStyle,
    bom_len: int = 0,
    mac: bool = False,
    add_eol: bool = False,
    keep_bom: bool = False,
    remove_bom: bool = False,
) -> Tuple[bytes, Transcoder]:
    """Convert an in-memory buffer; returns the output and the finished Transcoder."""
    transcoder = Transcoder(
        encoding,
        target,
        bom_len=bom_len,
        mac=mac,
        add_eol=add_eol,
        keep_bom=keep_bom,
        remove_bom=remove_bom,
    )
    out = transcoder.feed(data) + transcoder.finish()
    return out, transcoder
