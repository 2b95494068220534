from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

from mp3_cover_drop.config import CoverDropConfig
from mp3_cover_drop.cover_types import PictureFrame, Tag
from mp3_cover_drop.errors import UnsupportedImageError
from mp3_cover_drop.picture_frame import PictureFrameCodec

log = logging.getLogger(__name__)


class CoverArtEditor:
    """Cover-art operations on an in-memory Tag.

    Every operation returns a new Tag; the tag passed in is never mutated,
    so a failed append leaves the caller's tag exactly as it was.
    """

    def __init__(
        self,
        config: Optional[CoverDropConfig] = None,
        picture_codec: Optional[PictureFrameCodec] = None,
    ) -> None:
        self.config = config or CoverDropConfig()
        self.picture_codec = picture_codec or PictureFrameCodec(self.config)

    def get_covers(self, tag: Tag) -> List[PictureFrame]:
        return tag.pictures

    def clear_covers(self, tag: Tag) -> Tag:
        cleared = tag.copy()
        cleared.frames = [f for f in tag.frames if not isinstance(f, PictureFrame)]
        return cleared

    def validate_image_paths(self, paths: Sequence[str]) -> None:
        allowed = {ext.lower() for ext in self.config.allowed_extensions}
        for path in paths:
            ext = os.path.splitext(path)[1].lower()
            if ext not in allowed:
                raise UnsupportedImageError(
                    path,
                    f"unsupported image extension {ext!r} (allowed: {sorted(allowed)})",
                )

    def append_covers(self, tag: Tag, paths: Sequence[str]) -> Tag:
        """Load every image in `paths` and append them after the existing covers.

        Raises the first ImageLoadError; nothing is appended in that case.
        """
        loaded: List[PictureFrame] = []
        for path in paths:
            loaded.append(self.picture_codec.load_from_image_file(path))

        updated = tag.copy()
        updated.frames.extend(loaded)
        log.info(
            f"[COVER-ADD] appended {len(loaded)} cover(s), now {len(updated.pictures)}"
        )
        return updated
