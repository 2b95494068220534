from __future__ import annotations

import logging
from typing import BinaryIO, Optional, Type

# private mutagen helper; the version range in pyproject.toml pins it
from mutagen._util import resize_bytes

from mp3_cover_drop.errors import (
    CoverDropError,
    PermissionDenied,
    ReadFault,
    TagWriteError,
)

log = logging.getLogger(__name__)


def translate_os_error(
    e: OSError, path: str, fault: Type[CoverDropError]
) -> CoverDropError:
    """Map an OSError to PermissionDenied or to the given fault class."""
    if isinstance(e, PermissionError):
        return PermissionDenied(f"{path}: permission denied ({e})")
    return fault(f"{path}: {e}")


def describe(fileobj: BinaryIO) -> str:
    return str(getattr(fileobj, "name", "<fileobj>"))


def replace_region(fileobj: BinaryIO, offset: int, old_size: int, data: bytes) -> None:
    """Replace `old_size` bytes at `offset` with `data`.

    The region is first resized in place (moving the bytes after it), then
    the new content is written in one call.
    """
    resize_bytes(fileobj, old_size, len(data), offset)
    fileobj.seek(offset)
    fileobj.write(data)
    fileobj.flush()


class Mp3File:
    """Read-write handle on one MP3 file.

    Opening for read-write is how exclusive access to the tag region is
    acquired; it is held until `close()`.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._fh: Optional[BinaryIO] = None

    def open(self) -> "Mp3File":
        if self._fh is None:
            try:
                self._fh = open(self.path, "r+b")
            except OSError as e:
                log.error(f"[FILE-OPEN] {self.path}: {e!r}")
                raise translate_os_error(e, self.path, ReadFault) from e
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "Mp3File":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def fileobj(self) -> BinaryIO:
        if self._fh is None:
            raise ValueError(f"{self.path} is not open")
        return self._fh

    def size(self) -> int:
        fh = self.fileobj
        fh.seek(0, 2)
        return fh.tell()

    def read_region(self, offset: int, size: int) -> bytes:
        fh = self.fileobj
        try:
            fh.seek(offset)
            return fh.read(size)
        except OSError as e:
            raise translate_os_error(e, self.path, ReadFault) from e

    def replace_region(self, offset: int, old_size: int, data: bytes) -> None:
        try:
            replace_region(self.fileobj, offset, old_size, data)
        except OSError as e:
            raise translate_os_error(e, self.path, TagWriteError) from e
