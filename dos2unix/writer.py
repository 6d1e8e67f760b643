"""
Durable output for one conversion target.

Output is staged in a temporary file in the destination's directory and
moved into place on commit, so readers of the target only ever see the old
content or the complete new content.
"""

import logging
import os
import shutil
import tempfile
from types import TracebackType
from typing import BinaryIO, Optional, Type

from .errors import DestinationExistsError, WriteFailedError

logger = logging.getLogger("dos2unix")

BACKUP_SUFFIX = "~"


def backup_path_for(path: str) -> str:
    """Backup of ``path`` lives next to it, with a trailing tilde."""
    return path + BACKUP_SUFFIX


def _reason(exc: OSError) -> str:
    return exc.strerror or str(exc)


class AtomicWriter:
    """
    Temp-file-then-replace writer, used as a context manager.

    In place (no ``destination``): ``commit`` optionally copies the source to
    its backup path, then renames the staged file over the source. With a
    distinct ``destination``: the staged file is hard-linked to the new name,
    which fails instead of overwriting an existing file unless
    ``allow_overwrite`` is set. In both cases the staged file gets the
    source's permission bits, and its modification time with ``keep_date``.

    Leaving the ``with`` block without a successful ``commit`` removes the
    staged file and leaves every target untouched.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        source: str,
        destination: Optional[str] = None,
        backup: bool = False,
        keep_date: bool = False,
        allow_overwrite: bool = False,
    ) -> None:
        self.source = source
        self.in_place = destination is None
        self.destination = source if destination is None else destination
        self.backup = backup
        self.keep_date = keep_date
        self.allow_overwrite = allow_overwrite
        self.backup_path: Optional[str] = None
        self.bytes_written = 0
        self.committed = False
        self._tmp_path: Optional[str] = None
        self._fh: Optional[BinaryIO] = None

    def __enter__(self) -> "AtomicWriter":
        if (
            not self.in_place
            and not self.allow_overwrite
            and os.path.lexists(self.destination)
        ):
            raise DestinationExistsError(self.destination, "destination already exists")

        directory = os.path.dirname(os.path.abspath(self.destination))
        name = os.path.basename(self.destination)
        try:
            fd, self._tmp_path = tempfile.mkstemp(
                prefix=f".{name}.", suffix=".tmp", dir=directory
            )
        except OSError as e:
            raise WriteFailedError(
                self.destination, f"cannot create temporary file: {_reason(e)}", e
            ) from e
        self._fh = os.fdopen(fd, "wb")
        logger.debug("Staging %s in %s", self.destination, self._tmp_path)
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if not self.committed:
            self.discard()

    def write(self, data: bytes) -> None:
        if self._fh is None:
            raise RuntimeError("writer is not open")
        try:
            self._fh.write(data)
        except OSError as e:
            raise WriteFailedError(
                self.destination, f"write failed: {_reason(e)}", e
            ) from e
        self.bytes_written += len(data)

    def commit(self) -> None:
        if self._fh is None or self._tmp_path is None:
            raise RuntimeError("writer is not open")
        tmp_path = self._tmp_path
        try:
            self._fh.flush()
            os.fsync(self._fh.fileno())
            self._fh.close()
            self._fh = None

            shutil.copymode(self.source, tmp_path)
            if self.keep_date:
                st = os.stat(self.source)
                os.utime(tmp_path, ns=(st.st_atime_ns, st.st_mtime_ns))

            if self.in_place:
                if self.backup:
                    self.backup_path = backup_path_for(self.source)
                    logger.debug("Creating backup file %s", self.backup_path)
                    shutil.copy2(self.source, self.backup_path)
                os.replace(tmp_path, self.destination)
                self._tmp_path = None
            elif self.allow_overwrite:
                os.replace(tmp_path, self.destination)
                self._tmp_path = None
            else:
                os.link(tmp_path, self.destination)
        except FileExistsError as e:
            raise DestinationExistsError(
                self.destination, "destination already exists"
            ) from e
        except OSError as e:
            raise WriteFailedError(self.destination, _reason(e), e) from e

        self.committed = True
        # Only the hard-link path leaves the staged name behind.
        self._remove_tmp()

    def discard(self) -> None:
        if self._fh is not None:
            fh, self._fh = self._fh, None
            try:
                fh.close()
            except OSError as e:
                logger.debug("Closing %s failed: %s", self._tmp_path, _reason(e))
        self._remove_tmp()

    def _remove_tmp(self) -> None:
        if self._tmp_path is None:
            return
        try:
            os.unlink(self._tmp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "Could not remove temporary file %s: %s", self._tmp_path, _reason(e)
            )
        self._tmp_path = None
