"""
dos2unix - convert text files between DOS (CRLF), Unix (LF) and Mac (CR) line endings.

This package provides functionality to:
- Detect the encoding (UTF-8, UTF-16LE/BE, ISO-8859-1) and BOM of a file
- Skip files that look binary unless forced
- Count CRLF, LF and CR line breaks and report mixed files
- Rewrite line breaks to Unix or DOS style, optionally adding a final EOL
- Keep, add or remove the Byte Order Mark
- Replace files atomically, with optional backups and preserved timestamps
"""

__version__ = "1.0.0"
__author__ = "tboy1337"

from .convert import (  # noqa: E402
    BatchSummary,
    ConversionOutcome,
    ConversionRequest,
    ConversionState,
    Converter,
    EngineConfig,
    Status,
    convert_file,
    convert_files,
)
from .detect import (  # noqa: E402
    Encoding,
    detect_encoding,
    looks_binary,
    parse_encoding,
)
from .errors import (  # noqa: E402
    ConversionError,
    DestinationExistsError,
    SourceNotFoundError,
    SourcePermissionError,
    WriteFailedError,
)
from .scanner import LineEndingStyle, LineStats, scan_line_endings  # noqa: E402
from .transcode import BomAction, Transcoder, transcode_bytes  # noqa: E402
from .writer import AtomicWriter, backup_path_for  # noqa: E402

__all__ = [
    "AtomicWriter",
    "BatchSummary",
    "BomAction",
    "ConversionError",
    "ConversionOutcome",
    "ConversionRequest",
    "ConversionState",
    "Converter",
    "DestinationExistsError",
    "Encoding",
    "EngineConfig",
    "LineEndingStyle",
    "LineStats",
    "SourceNotFoundError",
    "SourcePermissionError",
    "Status",
    "Transcoder",
    "WriteFailedError",
    "backup_path_for",
    "convert_file",
    "convert_files",
    "detect_encoding",
    "looks_binary",
    "parse_encoding",
    "scan_line_endings",
    "transcode_bytes",
]
