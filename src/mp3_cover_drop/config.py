from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from mutagen.id3 import PictureType

DEFAULT_MIME_TYPES: Dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


@dataclass(frozen=True)
class CoverDropConfig:
    """Settings handed to the editor and codecs at construction.

    - allowed_extensions: image extensions accepted by the caller boundary
    - mime_types / fallback_mime: extension -> MIME table for new covers
    - picture_type / description: role and text for new covers
    - write_version: ID3v2 major version of written tags (3 or 4)
    - padding: zero bytes appended after the frames on commit
    """

    allowed_extensions: Tuple[str, ...] = (".jpg", ".jpeg", ".png")
    mime_types: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MIME_TYPES))
    fallback_mime: str = "image/"
    picture_type: int = PictureType.COVER_FRONT
    description: str = ""
    write_version: int = 3
    padding: int = 1024

    def __post_init__(self) -> None:
        if self.write_version not in (3, 4):
            raise ValueError(
                f"write_version must be 3 or 4, got {self.write_version!r}"
            )
        if self.padding < 0:
            raise ValueError(f"padding must be >= 0, got {self.padding!r}")

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "CoverDropConfig":
        """Build a config, overriding defaults from env vars:
        - MP3_COVER_DROP_WRITE_VERSION
        - MP3_COVER_DROP_PADDING
        """
        env = os.environ if environ is None else environ
        kwargs = {}
        version = env.get("MP3_COVER_DROP_WRITE_VERSION", "").strip()
        if version:
            kwargs["write_version"] = int(version)
        padding = env.get("MP3_COVER_DROP_PADDING", "").strip()
        if padding:
            kwargs["padding"] = int(padding)
        return cls(**kwargs)
