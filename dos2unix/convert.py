"""
Conversion orchestration.

``Converter.convert`` takes one ``ConversionRequest`` through detection,
binary classification, scanning, transcoding and writing, and always returns
a ``ConversionOutcome``: failures are reported, never raised, so one bad file
cannot stop a batch. ``convert_files`` runs many requests on a thread pool.
"""

import concurrent.futures
import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .detect import BOMS, UTF16_MIN_UNITS, Encoding, detect_encoding, looks_binary
from .errors import ConversionError, SourceNotFoundError, SourcePermissionError
from .scanner import LineEndingScanner, LineEndingStyle, LineStats, make_units
from .transcode import TARGET_STYLES, BomAction, Transcoder
from .writer import AtomicWriter

logger = logging.getLogger("dos2unix")
# Worker threads share the logger; keep each file's lines together.
log_lock = threading.Lock()

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_PREFIX_SIZE = 64 * 1024
# Detection needs the longest BOM and enough units for the UTF-16 guess.
MIN_PREFIX_SIZE = max(max(len(bom) for bom in BOMS.values()), UTF16_MIN_UNITS * 2)
MAX_WORKERS = 32
BATCH_SIZE = 1000


@dataclass(frozen=True)
class EngineConfig:
    """Process-wide settings, handed to the engine explicitly."""

    verbose: int = 0
    quiet: bool = False
    chunk_size: int = DEFAULT_CHUNK_SIZE
    prefix_size: int = DEFAULT_PREFIX_SIZE

    def __post_init__(self) -> None:
        # Even sizes keep UTF-16 code units whole across reads.
        for name in ("chunk_size", "prefix_size"):
            value = getattr(self, name)
            if value <= 0 or value % 2:
                raise ValueError(f"{name} must be a positive even number, got {value}")
        if self.prefix_size < MIN_PREFIX_SIZE:
            raise ValueError(
                f"prefix_size must be at least {MIN_PREFIX_SIZE}, got {self.prefix_size}"
            )


@dataclass(frozen=True)
class ConversionRequest:  # pylint: disable=too-many-instance-attributes
    """Everything needed to convert one file."""

    source: str
    destination: Optional[str] = None
    target: LineEndingStyle = LineEndingStyle.UNIX
    force: bool = False
    keep_bom: bool = False
    remove_bom: bool = False
    add_eol: bool = False
    mac: bool = False
    backup: bool = False
    keep_date: bool = False
    allow_overwrite: bool = False
    encoding: Optional[Encoding] = None
    info: bool = False

    def __post_init__(self) -> None:
        if self.target not in TARGET_STYLES:
            raise ValueError(f"cannot convert to {self.target.value} line endings")
        if self.keep_bom and self.remove_bom:
            raise ValueError("keep_bom and remove_bom are mutually exclusive")
        if self.destination is not None and os.path.realpath(
            self.destination
        ) == os.path.realpath(self.source):
            raise ValueError(
                f"destination {self.destination} is the same file as {self.source}"
            )


class ConversionState(Enum):
    DETECTING = "detecting"
    CLASSIFYING = "classifying"
    SKIPPED_BINARY = "skipped-binary"
    SCANNING = "scanning"
    TRANSCODING = "transcoding"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


class Status(Enum):
    CONVERTED = "converted"
    UNCHANGED = "unchanged"
    SKIPPED_BINARY = "skipped-binary"
    INFO = "info"
    FAILED = "failed"


@dataclass
class ConversionOutcome:  # pylint: disable=too-many-instance-attributes
    """Result of one request, for the caller to report on."""

    source: str
    destination: str
    status: Status = Status.FAILED
    state: ConversionState = ConversionState.DETECTING
    encoding: Optional[Encoding] = None
    bom_present: bool = False
    bom_action: BomAction = BomAction.NONE
    binary: bool = False
    stats: LineStats = field(default_factory=LineStats)
    converted: Dict[LineEndingStyle, int] = field(default_factory=dict)
    eol_added: bool = False
    bytes_written: int = 0
    changed: bool = False
    backup_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status is Status.FAILED

    @property
    def converted_total(self) -> int:
        return sum(self.converted.values())


@dataclass
class BatchSummary:
    examined: int = 0
    converted: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[ConversionOutcome]) -> "BatchSummary":
        summary = cls(examined=len(outcomes))
        for outcome in outcomes:
            if outcome.status is Status.CONVERTED:
                summary.converted += 1
            elif outcome.status is Status.SKIPPED_BINARY:
                summary.skipped += 1
            elif outcome.status is Status.FAILED:
                summary.failed += 1
            else:
                summary.unchanged += 1
        return summary


def _read_chunks(fh: BinaryIO, size: int) -> Iterator[bytes]:
    while True:
        chunk = fh.read(size)
        if not chunk:
            return
        yield chunk


class Converter:
    """
    Runs the per-file pipeline.

    Holds no per-file state, so one instance can serve many threads.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()

    def convert(self, request: ConversionRequest) -> ConversionOutcome:
        outcome = ConversionOutcome(
            source=request.source,
            destination=request.destination or request.source,
        )
        try:
            self._convert(request, outcome)
        except ConversionError as e:
            self._fail(outcome, e.reason)
        except OSError as e:
            self._fail(outcome, e.strerror or str(e))
        return outcome

    def _fail(self, outcome: ConversionOutcome, reason: str) -> None:
        self._transition(outcome, ConversionState.FAILED)
        outcome.status = Status.FAILED
        outcome.error = reason
        with log_lock:
            logger.debug("Failed converting %s: %s", outcome.source, reason)

    def _transition(self, outcome: ConversionOutcome, state: ConversionState) -> None:
        if self.config.verbose >= 2:
            logger.debug(
                "%s: %s -> %s", outcome.source, outcome.state.value, state.value
            )
        outcome.state = state

    def _detect(
        self, request: ConversionRequest, outcome: ConversionOutcome, prefix: bytes
    ) -> Tuple[Encoding, int, bool]:
        """Detect and classify; returns encoding, BOM length and whether to go on."""
        encoding, bom_len = detect_encoding(prefix, request.encoding)
        outcome.encoding = encoding
        outcome.bom_present = bom_len > 0

        self._transition(outcome, ConversionState.CLASSIFYING)
        outcome.binary = looks_binary(prefix, encoding, bom_len)
        if outcome.binary and not request.force:
            self._transition(outcome, ConversionState.SKIPPED_BINARY)
            outcome.status = Status.SKIPPED_BINARY
            return encoding, bom_len, False
        if outcome.binary and not self.config.quiet:
            with log_lock:
                logger.warning(
                    "%s looks binary; converting anyway because of --force",
                    request.source,
                )
        self._transition(outcome, ConversionState.SCANNING)
        return encoding, bom_len, True

    def _make_transcoder(
        self, request: ConversionRequest, encoding: Encoding, bom_len: int
    ) -> Transcoder:
        return Transcoder(
            encoding,
            request.target,
            bom_len=bom_len,
            mac=request.mac,
            add_eol=request.add_eol,
            keep_bom=request.keep_bom,
            remove_bom=request.remove_bom,
        )

    def _record(self, outcome: ConversionOutcome, transcoder: Transcoder) -> None:
        outcome.stats = transcoder.stats
        outcome.converted = transcoder.converted
        outcome.eol_added = transcoder.eol_added
        outcome.bom_action = transcoder.bom_action
        outcome.changed = transcoder.changed
        if self.config.verbose >= 2:
            logger.debug(
                "%s: converted %d out of %d line breaks%s",
                outcome.source,
                outcome.converted_total,
                outcome.stats.total,
                ", added line break to last line" if outcome.eol_added else "",
            )

    def _open_source(self, path: str) -> BinaryIO:
        try:
            return open(path, "rb")
        except FileNotFoundError as e:
            raise SourceNotFoundError(path, "no such file") from e
        except PermissionError as e:
            raise SourcePermissionError(path, "permission denied") from e

    def _convert(self, request: ConversionRequest, outcome: ConversionOutcome) -> None:
        with self._open_source(request.source) as fh:
            prefix = fh.read(self.config.prefix_size)
            encoding, bom_len, proceed = self._detect(request, outcome, prefix)
            if not proceed:
                return

            if request.info:
                outcome.stats = self._scan(fh, prefix, encoding, bom_len)
                outcome.status = Status.INFO
                return

            self._transition(outcome, ConversionState.TRANSCODING)
            if request.destination is None:
                dry_run = self._make_transcoder(request, encoding, bom_len)
                for _ in self._transcode(fh, prefix, dry_run):
                    pass
                if not dry_run.changed:
                    # Already in the target format: the writer is never opened.
                    self._record(outcome, dry_run)
                    self._transition(outcome, ConversionState.DONE)
                    outcome.status = Status.UNCHANGED
                    return
                fh.seek(0)
                prefix = fh.read(self.config.prefix_size)

            transcoder = self._make_transcoder(request, encoding, bom_len)
            with AtomicWriter(
                request.source,
                destination=request.destination,
                backup=request.backup,
                keep_date=request.keep_date,
                allow_overwrite=request.allow_overwrite,
            ) as writer:
                for data in self._transcode(fh, prefix, transcoder):
                    writer.write(data)
                fh.close()
                self._record(outcome, transcoder)

                self._transition(outcome, ConversionState.WRITING)
                writer.commit()

            outcome.bytes_written = writer.bytes_written
            outcome.backup_path = writer.backup_path
            self._transition(outcome, ConversionState.DONE)
            outcome.status = Status.CONVERTED if outcome.changed else Status.UNCHANGED

    def _transcode(
        self, fh: BinaryIO, prefix: bytes, transcoder: Transcoder
    ) -> Iterator[bytes]:
        yield transcoder.feed(prefix)
        for chunk in _read_chunks(fh, self.config.chunk_size):
            yield transcoder.feed(chunk)
        yield transcoder.finish()

    def _scan(
        self, fh: BinaryIO, prefix: bytes, encoding: Encoding, bom_len: int
    ) -> LineStats:
        codec = make_units(encoding)
        scanner = LineEndingScanner(codec.cr, codec.lf)
        scanner.feed(codec.decode(prefix[bom_len:]))
        for chunk in _read_chunks(fh, self.config.chunk_size):
            scanner.feed(codec.decode(chunk))
        scanner.flush()
        return scanner.stats

    def convert_stream(
        self, request: ConversionRequest, instream: BinaryIO, outstream: BinaryIO
    ) -> ConversionOutcome:
        """Filter ``instream`` to ``outstream``; ``request.source`` is just a label."""
        outcome = ConversionOutcome(source=request.source, destination="<stdout>")
        prefix = instream.read(self.config.prefix_size)
        encoding, bom_len, proceed = self._detect(request, outcome, prefix)
        if not proceed:
            return outcome
        self._transition(outcome, ConversionState.TRANSCODING)
        transcoder = self._make_transcoder(request, encoding, bom_len)
        self._transition(outcome, ConversionState.WRITING)
        for data in self._transcode(instream, prefix, transcoder):
            outstream.write(data)
        outstream.flush()
        self._record(outcome, transcoder)
        outcome.bytes_written = transcoder.bytes_out
        self._transition(outcome, ConversionState.DONE)
        outcome.status = Status.CONVERTED if outcome.changed else Status.UNCHANGED
        return outcome


def convert_file(
    request: ConversionRequest, config: Optional[EngineConfig] = None
) -> ConversionOutcome:
    """Convert a single file."""
    return Converter(config).convert(request)


def convert_files(  # pylint: disable=too-many-locals
    requests: Sequence[ConversionRequest],
    config: Optional[EngineConfig] = None,
    max_workers: Optional[int] = None,
    progress: bool = True,
) -> List[ConversionOutcome]:
    """
    Convert files in parallel using ThreadPoolExecutor.

    Outcomes come back in request order. The same path must not appear twice
    in ``requests``.
    """
    if not requests:
        return []
    converter = Converter(config)

    if max_workers is None:
        cpu_count: Optional[int] = os.cpu_count()
        max_workers = min((cpu_count or 2) * 2, MAX_WORKERS, len(requests))
    else:
        max_workers = max(1, min(max_workers, MAX_WORKERS, len(requests)))

    with log_lock:
        logger.debug(
            "Using %d worker threads for processing %d files",
            max_workers,
            len(requests),
        )

    outcomes: List[Optional[ConversionOutcome]] = [None] * len(requests)
    for start in range(0, len(requests), BATCH_SIZE):
        batch = requests[start : start + BATCH_SIZE]
        with tqdm(
            total=len(batch),
            desc=f"Converting files (batch {start // BATCH_SIZE + 1})",
            unit="file",
            disable=not progress,
        ) as pbar:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=max_workers
            ) as executor:
                future_to_index = {
                    executor.submit(converter.convert, request): start + offset
                    for offset, request in enumerate(batch)
                }
                for future in concurrent.futures.as_completed(future_to_index):
                    index = future_to_index[future]
                    try:
                        outcomes[index] = future.result()
                    except Exception as e:  # pylint: disable=broad-exception-caught
                        request = requests[index]
                        with log_lock:
                            logger.error(
                                "Unhandled error processing %s: %s", request.source, e
                            )
                        outcomes[index] = ConversionOutcome(
                            source=request.source,
                            destination=request.destination or request.source,
                            state=ConversionState.FAILED,
                            error=str(e),
                        )
                    finally:
                        pbar.update(1)

    return [outcome for outcome in outcomes if outcome is not None]
