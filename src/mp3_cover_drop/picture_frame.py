from __future__ import annotations

import logging
import os
from typing import Optional, Tuple

from mutagen.id3 import PictureType

from mp3_cover_drop.config import CoverDropConfig
from mp3_cover_drop.cover_types import PictureFrame
from mp3_cover_drop.errors import ImageLoadError, TagDecodeError, TagEncodeError

log = logging.getLogger(__name__)

# ID3 text encoding byte -> (python codec, terminator)
TEXT_ENCODINGS = {
    0: ("latin-1", b"\x00"),
    1: ("utf-16", b"\x00\x00"),
    2: ("utf-16-be", b"\x00\x00"),
    3: ("utf-8", b"\x00"),
}


def _split_terminated(data: bytes, terminator: bytes) -> Tuple[bytes, bytes]:
    """Split `data` at the first terminator; wide terminators must be aligned."""
    step = len(terminator)
    for i in range(0, len(data) - step + 1, step):
        if data[i : i + step] == terminator:
            return data[:i], data[i + step :]
    raise TagDecodeError("missing string terminator")


def _as_picture_type(value: int) -> int:
    try:
        return PictureType(value)
    except ValueError:
        return value


def decode_picture(payload: bytes) -> PictureFrame:
    """Parse an APIC frame payload.

    Layout: encoding byte, NUL terminated latin-1 MIME type, picture type
    byte, description terminated per encoding, image bytes to the end.
    """
    if len(payload) < 4:
        raise TagDecodeError(f"APIC payload too short ({len(payload)} bytes)")

    encoding = payload[0]
    if encoding not in TEXT_ENCODINGS:
        raise TagDecodeError(f"unknown text encoding {encoding}")
    codec, terminator = TEXT_ENCODINGS[encoding]

    mime_raw, rest = _split_terminated(payload[1:], b"\x00")
    if not rest:
        raise TagDecodeError("APIC payload truncated after MIME type")
    picture_type = rest[0]
    desc_raw, data = _split_terminated(rest[1:], terminator)

    try:
        mime_type = mime_raw.decode("latin-1")
        description = desc_raw.decode(codec)
    except UnicodeDecodeError as e:
        raise TagDecodeError(f"bad APIC description: {e}") from e

    if not data:
        raise TagDecodeError("APIC frame carries no image data")

    return PictureFrame(
        picture_type=_as_picture_type(picture_type),
        mime_type=mime_type,
        description=description,
        data=data,
    )


def encode_picture(picture: PictureFrame) -> bytes:
    """Serialize a PictureFrame into an APIC payload.

    Descriptions that fit latin-1 are written as latin-1, anything else as
    UTF-16 with BOM.
    """
    try:
        mime = picture.mime_type.encode("latin-1")
    except UnicodeEncodeError as e:
        raise TagEncodeError(f"MIME type {picture.mime_type!r} is not latin-1") from e

    picture_type = int(picture.picture_type)
    if not 0 <= picture_type <= 255:
        raise TagEncodeError(f"picture type {picture_type} out of range")

    try:
        encoding = 0
        desc = picture.description.encode("latin-1")
    except UnicodeEncodeError:
        encoding = 1
        desc = picture.description.encode("utf-16")
    terminator = TEXT_ENCODINGS[encoding][1]

    return b"".join(
        [
            bytes([encoding]),
            mime,
            b"\x00",
            bytes([picture_type]),
            desc,
            terminator,
            picture.data,
        ]
    )


def mime_type_for(path: str, config: Optional[CoverDropConfig] = None) -> str:
    config = config or CoverDropConfig()
    ext = os.path.splitext(path)[1].lower()
    return config.mime_types.get(ext, config.fallback_mime)


class PictureFrameCodec:
    """APIC encode/decode plus building new covers from image files."""

    def __init__(self, config: Optional[CoverDropConfig] = None) -> None:
        self.config = config or CoverDropConfig()

    def decode(self, payload: bytes) -> PictureFrame:
        return decode_picture(payload)

    def encode(self, picture: PictureFrame) -> bytes:
        return encode_picture(picture)

    def load_from_image_file(self, path: str) -> PictureFrame:
        """Read an image file into a new front-cover PictureFrame."""
        try:
            with open(path, "rb") as fh:
                data = fh.read()
        except OSError as e:
            log.error(f"[COVER-LOAD] {path}: {e!r}")
            raise ImageLoadError(path, f"cannot read image ({e})") from e

        if not data:
            log.error(f"[COVER-LOAD] {path}: empty file")
            raise ImageLoadError(path, "image file is empty")

        mime_type = mime_type_for(path, self.config)
        log.debug(
            f"[COVER-LOAD] {os.path.basename(path)}: {len(data)} bytes as {mime_type}"
        )
        return PictureFrame(
            picture_type=self.config.picture_type,
            mime_type=mime_type,
            description=self.config.description,
            data=data,
        )
