from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from mp3_cover_drop.errors import PermissionDenied

# ---------- Frames ----------


@dataclass(frozen=True)
class PictureFrame:
    """An APIC frame: one embedded cover image."""

    frame_id = "APIC"

    picture_type: int
    mime_type: str
    description: str
    data: bytes

    def __post_init__(self) -> None:
        if not self.data:
            raise ValueError("PictureFrame.data must not be empty")
        if "\x00" in self.mime_type or "\x00" in self.description:
            raise ValueError("PictureFrame text fields must not contain NUL")


@dataclass(frozen=True)
class OtherFrame:
    """Any frame we do not interpret; kept byte for byte.

    `flags` and `data` are the frame's raw header flags and payload as found
    in a tag of major version `version`.
    """

    frame_id: str
    flags: int
    data: bytes
    version: int = 3


Frame = Union[PictureFrame, OtherFrame]


# ---------- Tag ----------


@dataclass
class Tag:
    version: int = 3
    revision: int = 0
    frames: List[Frame] = field(default_factory=list)

    def copy(self) -> "Tag":
        return Tag(
            version=self.version, revision=self.revision, frames=list(self.frames)
        )

    @property
    def pictures(self) -> List[PictureFrame]:
        return [f for f in self.frames if isinstance(f, PictureFrame)]


@dataclass(frozen=True)
class CoverArtSnapshot:
    covers: Tuple[PictureFrame, ...] = ()

    @classmethod
    def capture(cls, tag: Tag) -> "CoverArtSnapshot":
        return cls(covers=tuple(tag.pictures))

    def __len__(self) -> int:
        return len(self.covers)

    def apply(self, base: Tag) -> Tag:
        """Return a copy of `base` whose pictures are exactly the snapshot.

        Snapshot covers fill the picture slots of `base` in order; leftover
        covers are appended and leftover slots are dropped.
        """
        remaining = list(self.covers)
        frames: List[Frame] = []
        for frame in base.frames:
            if isinstance(frame, PictureFrame):
                if remaining:
                    frames.append(remaining.pop(0))
                continue
            frames.append(frame)
        frames.extend(remaining)
        return Tag(version=base.version, revision=base.revision, frames=frames)


# ---------- Write / transaction states ----------


class ConflictAction(str, Enum):
    REPLACE = "replace"
    KEEP = "keep"


class TransactionState(str, Enum):
    IDLE = "idle"
    SNAPSHOTTED = "snapshotted"
    MUTATED = "mutated"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            TransactionState.COMMITTED,
            TransactionState.ROLLED_BACK,
            TransactionState.FAILED,
        )


class OutcomeStatus(str, Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass(frozen=True)
class TransactionOutcome:
    status: OutcomeStatus
    path: str
    added: int = 0
    removed: int = 0
    total: int = 0
    reason: Optional[str] = None
    error: Optional[BaseException] = None
    dual_failure: bool = False

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.COMMITTED

    @property
    def permission_denied(self) -> bool:
        return isinstance(self.error, PermissionDenied)
