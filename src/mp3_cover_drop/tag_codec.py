from __future__ import annotations

import logging
import re
import struct
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Tuple

from mp3_cover_drop.config import CoverDropConfig
from mp3_cover_drop.cover_types import (
    ConflictAction,
    Frame,
    OtherFrame,
    PictureFrame,
    Tag,
)
from mp3_cover_drop.errors import (
    ReadFault,
    TagDecodeError,
    TagEncodeError,
    TagExistsError,
    TagWriteError,
    UnsupportedTagVersion,
)
from mp3_cover_drop.mp3_file import describe, replace_region, translate_os_error
from mp3_cover_drop.picture_frame import decode_picture, encode_picture

log = logging.getLogger(__name__)

HEADER_SIZE = 10
FOOTER_SIZE = 10

# header flags
FLAG_UNSYNC = 0x80
FLAG_EXTENDED = 0x40
FLAG_FOOTER = 0x10

# frame flags: status bits can move between versions, format bits cannot
STATUS_MASK = {3: 0xE000, 4: 0x7000}
FORMAT_MASK = {3: 0x00E0, 4: 0x004F}

_FRAME_ID = re.compile(rb"^[A-Z0-9]{4}$")


@dataclass(frozen=True)
class TagHeader:
    version: int
    revision: int
    flags: int
    size: int

    @property
    def region_size(self) -> int:
        """Bytes the whole tag occupies at the start of the file."""
        size = HEADER_SIZE + self.size
        if self.version == 4 and self.flags & FLAG_FOOTER:
            size += FOOTER_SIZE
        return size


# ---------- integers ----------


def decode_synchsafe(raw: bytes) -> int:
    value = 0
    for b in raw:
        if b & 0x80:
            raise ValueError(f"not a synchsafe integer: {raw!r}")
        value = (value << 7) | b
    return value


def encode_synchsafe(value: int, width: int = 4) -> bytes:
    if not 0 <= value < 1 << (7 * width):
        raise TagEncodeError(f"{value} does not fit a {width}-byte synchsafe integer")
    return bytes((value >> (7 * i)) & 0x7F for i in reversed(range(width)))


def deunsynchronise(data: bytes) -> bytes:
    return data.replace(b"\xff\x00", b"\xff")


# ---------- parsing ----------


def parse_header(raw: bytes) -> Optional[TagHeader]:
    """Return the tag header in `raw`, or None if `raw` does not start one."""
    if len(raw) < HEADER_SIZE or raw[:3] != b"ID3":
        return None
    version, revision, flags = raw[3], raw[4], raw[5]
    if version == 0xFF or revision == 0xFF:
        return None
    try:
        size = decode_synchsafe(raw[6:10])
    except ValueError:
        return None
    return TagHeader(version=version, revision=revision, flags=flags, size=size)


def _frame_from(frame_id: str, flags: int, data: bytes, version: int) -> Frame:
    if frame_id == PictureFrame.frame_id and not flags & FORMAT_MASK[version]:
        try:
            return decode_picture(data)
        except TagDecodeError as e:
            log.warning(f"[TAG-READ] keeping undecodable APIC frame as-is: {e}")
    return OtherFrame(frame_id=frame_id, flags=flags, data=data, version=version)


def _skip_extended_header(body: bytes, version: int) -> int:
    if len(body) < 4:
        raise TagDecodeError("extended header truncated")
    if version == 3:
        size = struct.unpack(">I", body[:4])[0]
        end = 4 + size
    else:
        try:
            size = decode_synchsafe(body[:4])
        except ValueError as e:
            raise TagDecodeError(f"bad extended header size: {e}") from e
        end = size
    if size < 6:
        raise TagDecodeError(f"extended header size {size} is too small")
    if end > len(body):
        raise TagDecodeError("extended header overruns tag")
    return end


def _frame_size(raw: bytes, synchsafe: bool) -> int:
    if synchsafe:
        return decode_synchsafe(raw)
    return struct.unpack(">I", raw)[0]


def _walk_frames(body: bytes, synchsafe: bool) -> Tuple[int, bool]:
    """Count frame headers found when sizes are read one way.

    Also reports whether the walk ended cleanly: on zero padding or exactly
    at the end of `body`.
    """
    found = 0
    pos = 0
    while pos + HEADER_SIZE <= len(body):
        if body[pos] == 0:
            break
        head = body[pos : pos + HEADER_SIZE]
        if not _FRAME_ID.match(head[:4]):
            return found, False
        try:
            size = _frame_size(head[4:8], synchsafe)
        except ValueError:
            return found, False
        found += 1
        pos += HEADER_SIZE + size
    return found, pos <= len(body) and not any(body[pos:])


def frame_sizes_are_synchsafe(body: bytes, version: int) -> bool:
    """Decide how the frame sizes of a tag body are stored.

    v2.4 requires synchsafe sizes, but iTunes writes plain big-endian ones.
    Both readings are tried; plain wins if it finds more frames, or as many
    and only it lands cleanly.
    """
    if version < 4:
        return False
    as_synchsafe, synchsafe_clean = _walk_frames(body, True)
    as_int, int_clean = _walk_frames(body, False)
    if as_int > as_synchsafe or (
        as_int == as_synchsafe and int_clean and not synchsafe_clean
    ):
        log.warning("[TAG-READ] ID3v2.4 tag uses plain frame sizes, reading them as such")
        return False
    return True


def parse_frames(body: bytes, version: int) -> List[Frame]:
    """Split a tag body into frames.

    Only zero bytes may follow the last frame; anything else means the body
    could not be understood and raises TagDecodeError.
    """
    synchsafe = frame_sizes_are_synchsafe(body, version)
    frames: List[Frame] = []
    pos = 0
    while pos < len(body):
        if body[pos] == 0:
            if any(body[pos:]):
                raise TagDecodeError(f"non-zero bytes in padding at offset {pos}")
            break
        head = body[pos : pos + HEADER_SIZE]
        if len(head) < HEADER_SIZE:
            raise TagDecodeError(f"{len(head)} stray bytes after the last frame")
        raw_id = head[:4]
        if not _FRAME_ID.match(raw_id):
            raise TagDecodeError(f"invalid frame id {raw_id!r} at offset {pos}")
        try:
            size = _frame_size(head[4:8], synchsafe)
        except ValueError as e:
            raise TagDecodeError(f"bad frame size for {raw_id!r}: {e}") from e
        flags = struct.unpack(">H", head[8:10])[0]

        start = pos + HEADER_SIZE
        if start + size > len(body):
            raise TagDecodeError(
                f"frame {raw_id!r} claims {size} bytes, only {len(body) - start} left"
            )
        data = body[start : start + size]
        frames.append(_frame_from(raw_id.decode("ascii"), flags, data, version))
        pos = start + size
    return frames


def parse_tag(data: bytes) -> Optional[Tag]:
    """Parse a complete tag region (header included). None if there is no tag."""
    header = parse_header(data[:HEADER_SIZE])
    if header is None:
        return None
    if header.version not in (3, 4):
        raise UnsupportedTagVersion(f"ID3v2.{header.version} tags are not supported")

    body = data[HEADER_SIZE : HEADER_SIZE + header.size]
    if len(body) < header.size:
        raise TagDecodeError(
            f"tag truncated: {len(body)} of {header.size} bytes present"
        )

    if header.version == 3 and header.flags & FLAG_UNSYNC:
        body = deunsynchronise(body)
    pos = 0
    if header.flags & FLAG_EXTENDED:
        pos = _skip_extended_header(body, header.version)

    frames = parse_frames(body[pos:], header.version)
    log.debug(
        f"[TAG-READ] ID3v2.{header.version}: {len(frames)} frame(s), {header.size} bytes"
    )
    return Tag(version=header.version, revision=header.revision, frames=frames)


# ---------- rendering ----------


def _transcode_flags(frame: OtherFrame, version: int) -> int:
    if frame.version == version:
        return frame.flags
    if frame.flags & FORMAT_MASK[frame.version]:
        raise TagEncodeError(
            f"frame {frame.frame_id} uses ID3v2.{frame.version} format flags "
            f"({frame.flags:#06x}) and cannot be written as ID3v2.{version}"
        )
    status = frame.flags & STATUS_MASK[frame.version]
    return status >> 1 if version == 4 else status << 1


def render_frame(frame: Frame, version: int) -> bytes:
    if isinstance(frame, PictureFrame):
        frame_id, flags, data = PictureFrame.frame_id, 0, encode_picture(frame)
    else:
        frame_id, data = frame.frame_id, frame.data
        flags = _transcode_flags(frame, version)

    raw_id = frame_id.encode("ascii", "replace")
    if not _FRAME_ID.match(raw_id):
        raise TagEncodeError(f"invalid frame id {frame_id!r}")
    if version == 4:
        size = encode_synchsafe(len(data))
    elif len(data) < 1 << 32:
        size = struct.pack(">I", len(data))
    else:
        raise TagEncodeError(f"frame {frame_id} too large ({len(data)} bytes)")
    return raw_id + size + struct.pack(">H", flags) + data


def render_tag(tag: Tag, version: int = 3, padding: int = 0) -> bytes:
    """Serialize `tag` into a complete tag region, in memory."""
    if version not in (3, 4):
        raise TagEncodeError(f"cannot write ID3v2.{version}")
    if padding < 0:
        raise TagEncodeError(f"negative padding {padding}")
    frames = b"".join(render_frame(f, version) for f in tag.frames)
    size = encode_synchsafe(len(frames) + padding)
    return b"ID3" + bytes([version, 0, 0]) + size + frames + b"\x00" * padding


# ---------- file operations ----------


def tag_region_size(fileobj: BinaryIO) -> int:
    fileobj.seek(0)
    header = parse_header(fileobj.read(HEADER_SIZE))
    return header.region_size if header else 0


def read_tag(fileobj: BinaryIO) -> Optional[Tag]:
    """Read the ID3v2 tag at the start of `fileobj`. None if there is none."""
    name = describe(fileobj)
    try:
        fileobj.seek(0)
        raw_header = fileobj.read(HEADER_SIZE)
        header = parse_header(raw_header)
        if header is None:
            log.debug(f"[TAG-READ] {name}: no ID3v2 header")
            return None
        body = fileobj.read(header.size)
    except OSError as e:
        log.error(f"[TAG-READ] {name}: {e!r}")
        raise translate_os_error(e, name, ReadFault) from e
    return parse_tag(raw_header + body)


def write_tag(
    fileobj: BinaryIO,
    tag: Tag,
    version: int = 3,
    conflict: ConflictAction = ConflictAction.REPLACE,
    padding: int = 0,
) -> int:
    """Replace the file's tag region with `tag`; returns the bytes written.

    The new region is rendered completely before the file is touched and
    then put in place by a single region replace.
    """
    name = describe(fileobj)
    data = render_tag(tag, version=version, padding=padding)
    try:
        old_size = tag_region_size(fileobj)
        if old_size and conflict is ConflictAction.KEEP:
            raise TagExistsError(f"{name}: already has an ID3v2 tag")
        replace_region(fileobj, 0, old_size, data)
    except OSError as e:
        log.error(f"[TAG-WRITE] {name}: {e!r}")
        raise translate_os_error(e, name, TagWriteError) from e
    log.debug(
        f"[TAG-WRITE] {name}: {old_size} -> {len(data)} bytes, {len(tag.frames)} frame(s)"
    )
    return len(data)


def delete_tag(fileobj: BinaryIO) -> bool:
    """Remove the tag region. False if the file had no tag."""
    name = describe(fileobj)
    try:
        old_size = tag_region_size(fileobj)
        if not old_size:
            return False
        replace_region(fileobj, 0, old_size, b"")
    except OSError as e:
        log.error(f"[TAG-DELETE] {name}: {e!r}")
        raise translate_os_error(e, name, TagWriteError) from e
    log.debug(f"[TAG-DELETE] {name}: removed {old_size} bytes")
    return True


class TagCodec:
    """Tag read/write/delete with the padding from a config.

    A tag is written in its own major version, so a tag read from a file
    goes back in the version it came in. `config.write_version` only picks
    the version of tags created from scratch.
    """

    def __init__(self, config: Optional[CoverDropConfig] = None) -> None:
        self.config = config or CoverDropConfig()

    def version_for(self, tag: Tag) -> int:
        return tag.version if tag.version in (3, 4) else self.config.write_version

    def read_tag(self, fileobj: BinaryIO) -> Optional[Tag]:
        return read_tag(fileobj)

    def render_tag(self, tag: Tag) -> bytes:
        return render_tag(
            tag, version=self.version_for(tag), padding=self.config.padding
        )

    def write_tag(
        self,
        fileobj: BinaryIO,
        tag: Tag,
        conflict: ConflictAction = ConflictAction.REPLACE,
    ) -> int:
        return write_tag(
            fileobj,
            tag,
            version=self.version_for(tag),
            conflict=conflict,
            padding=self.config.padding,
        )

    def delete_tag(self, fileobj: BinaryIO) -> bool:
        return delete_tag(fileobj)
