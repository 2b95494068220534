"""Add, replace and clear the cover pictures of an MP3 file's ID3v2 tag.

- mp3_cover_drop.tag_codec: ID3v2.3/2.4 tag read / render / write / delete
- mp3_cover_drop.picture_frame: APIC frame codec, covers from image files
- mp3_cover_drop.cover_editor: in-memory cover operations
- mp3_cover_drop.transaction: snapshot -> mutate -> commit/rollback
"""

from .config import CoverDropConfig
from .cover_editor import CoverArtEditor
from .cover_types import (
    CoverArtSnapshot,
    OtherFrame,
    OutcomeStatus,
    PictureFrame,
    Tag,
    TransactionOutcome,
    TransactionState,
)
from .errors import CoverDropError, DualFailureError, ImageLoadError, PermissionDenied
from .picture_frame import PictureFrameCodec
from .tag_codec import TagCodec
from .transaction import TagTransaction, run_cover_drop

__all__ = [
    "CoverDropConfig",
    "CoverArtEditor",
    "CoverArtSnapshot",
    "OtherFrame",
    "OutcomeStatus",
    "PictureFrame",
    "Tag",
    "TransactionOutcome",
    "TransactionState",
    "CoverDropError",
    "DualFailureError",
    "ImageLoadError",
    "PermissionDenied",
    "PictureFrameCodec",
    "TagCodec",
    "TagTransaction",
    "run_cover_drop",
]
