"""
Exceptions raised while converting a single file.

Every failure is local to one file: the orchestrator turns these into a
``FAILED`` outcome and carries on with the rest of the batch.
"""

from typing import Optional


class ConversionError(Exception):
    """Base class for per-file conversion failures."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class SourceNotFoundError(ConversionError):
    """The source file does not exist."""


class SourcePermissionError(ConversionError):
    """The source file cannot be read, or its directory cannot be written."""


class DestinationExistsError(ConversionError):
    """A new-file destination already exists and overwriting was not allowed."""


class WriteFailedError(ConversionError):
    """Staging or replacing the output failed; the target is untouched."""

    def __init__(
        self, path: str, reason: str, cause: Optional[BaseException] = None
    ) -> None:
        super().__init__(path, reason)
        self.cause = cause
