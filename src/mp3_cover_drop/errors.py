from __future__ import annotations

from typing import Optional


class CoverDropError(Exception):
    """Base class for every error raised by mp3_cover_drop."""


class TagDecodeError(CoverDropError):
    pass


class UnsupportedTagVersion(TagDecodeError):
    pass


class TagEncodeError(CoverDropError):
    pass


class ImageLoadError(CoverDropError):
    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class UnsupportedImageError(ImageLoadError):
    pass


class ReadFault(CoverDropError):
    pass


class TagWriteError(CoverDropError):
    pass


class TagExistsError(TagWriteError):
    pass


class PermissionDenied(CoverDropError, PermissionError):
    """The file cannot be opened or written with the current rights.

    This is the only error a caller may retry (e.g. after elevating).
    """


class TransactionStateError(CoverDropError):
    pass


class DualFailureError(CoverDropError):
    """Commit failed and restoring the previous covers failed too.

    The on-disk tag is in an unknown state; `commit_error` and
    `rollback_error` hold both causes and `snapshot_size` the number of
    covers that should have been restored.
    """

    def __init__(
        self,
        path: str,
        commit_error: Optional[BaseException],
        rollback_error: BaseException,
        snapshot_size: int,
    ) -> None:
        super().__init__(
            f"{path}: writing covers failed ({commit_error!r}) and restoring "
            f"{snapshot_size} original cover(s) failed too ({rollback_error!r})"
        )
        self.path = path
        self.commit_error = commit_error
        self.rollback_error = rollback_error
        self.snapshot_size = snapshot_size
