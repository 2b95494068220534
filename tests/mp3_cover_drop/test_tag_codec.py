import struct

import pytest
from conftest import (
    AUDIO,
    BIG,
    P1,
    P2,
    TITLE,
    TITLE_V24,
    plain_sized_v24_tag,
    tag_bytes,
)
from mutagen.id3 import APIC, ID3, TIT2, PictureType

from mp3_cover_drop.cover_types import ConflictAction, OtherFrame, Tag
from mp3_cover_drop.errors import (
    TagDecodeError,
    TagEncodeError,
    TagExistsError,
    UnsupportedTagVersion,
)
from mp3_cover_drop.tag_codec import (
    decode_synchsafe,
    delete_tag,
    encode_synchsafe,
    frame_sizes_are_synchsafe,
    parse_header,
    parse_tag,
    read_tag,
    render_tag,
    write_tag,
)

# =====================================================
# Helpers
# =====================================================


def read_path(path):
    with open(path, "rb") as fh:
        return read_tag(fh)


def raw_frame(frame_id, data, flags=0):
    return frame_id + struct.pack(">IH", len(data), flags) + data


def raw_tag(body, version=3, flags=0):
    return b"ID3" + bytes([version, 0, flags]) + encode_synchsafe(len(body)) + body


# =====================================================
# synchsafe integers / header
# =====================================================


def test_synchsafe_round_trip():
    assert encode_synchsafe(257) == b"\x00\x00\x02\x01"
    assert decode_synchsafe(b"\x00\x00\x02\x01") == 257
    assert decode_synchsafe(encode_synchsafe((1 << 28) - 1)) == (1 << 28) - 1


def test_synchsafe_rejects_out_of_range():
    with pytest.raises(TagEncodeError):
        encode_synchsafe(1 << 28)
    with pytest.raises(ValueError):
        decode_synchsafe(b"\x00\x80\x00\x00")


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"ID3",
        b"TAG" + b"\x00" * 7,
        b"ID3\xff\x00\x00\x00\x00\x00\x00",
        b"ID3\x03\x00\x00\x80\x00\x00\x00",
    ],
)
def test_parse_header_invalid_returns_none(raw):
    assert parse_header(raw) is None


def test_parse_header_region_size_counts_footer():
    header = parse_header(b"ID3\x04\x00\x10\x00\x00\x00\x20")
    assert header.size == 32
    assert header.region_size == 10 + 32 + 10


# =====================================================
# parse_tag / render_tag
# =====================================================


def test_render_tag_byte_layout():
    data = render_tag(Tag(frames=[TITLE]), version=3)
    assert data == (
        b"ID3\x03\x00\x00\x00\x00\x00\x0f"
        b"TIT2\x00\x00\x00\x05\x00\x00\x00Song"
    )


def test_render_tag_v24_uses_synchsafe_frame_sizes():
    frame = OtherFrame("PRIV", 0, b"x" * 200, version=4)
    data = render_tag(Tag(version=4, frames=[frame]), version=4)
    assert data[3] == 4
    assert data[10:14] == b"PRIV"
    assert data[14:18] == b"\x00\x00\x01\x48"


def test_render_tag_padding():
    data = render_tag(Tag(), padding=16)
    assert data == b"ID3\x03\x00\x00\x00\x00\x00\x10" + b"\x00" * 16


def test_parse_keeps_frame_order_and_unknown_frames():
    frames = [TITLE, P1, OtherFrame("XYZW", 0x0040, b"\x01opaque", version=3), P2]
    tag = parse_tag(tag_bytes(*frames, padding=32))
    assert tag.version == 3
    assert tag.frames == frames
    assert tag.pictures == [P1, P2]


def test_parse_v24_tag():
    frames = [OtherFrame("TIT2", 0, b"\x03Song", version=4), P1]
    tag = parse_tag(tag_bytes(*frames, version=4))
    assert tag.version == 4
    assert tag.frames == frames


def test_undecodable_picture_frame_kept_verbatim():
    broken = OtherFrame("APIC", 0, b"\x00image/png", version=3)
    tag = parse_tag(tag_bytes(TITLE, broken))
    assert tag.frames == [TITLE, broken]
    assert tag.pictures == []


def test_picture_frame_with_format_flags_not_decoded():
    compressed = OtherFrame("APIC", 0x0080, b"\x00\x00\x00\x10zlibdata", version=3)
    tag = parse_tag(tag_bytes(compressed))
    assert tag.frames == [compressed]


def test_parse_unsynchronised_v23_tag():
    body = raw_frame(b"TIT2", b"\x00a\xffcd").replace(b"\xff", b"\xff\x00")
    tag = parse_tag(raw_tag(body, flags=0x80))
    assert tag.frames == [OtherFrame("TIT2", 0, b"\x00a\xffcd", version=3)]


def test_parse_skips_extended_header():
    body = b"\x00\x00\x00\x06" + b"\x00" * 6 + raw_frame(b"TIT2", b"\x00Song")
    tag = parse_tag(raw_tag(body, flags=0x40))
    assert tag.frames == [TITLE]


def test_parse_rejects_junk_after_frames():
    body = raw_frame(b"TIT2", b"\x00Song") + b"junk-after-frames"
    with pytest.raises(TagDecodeError):
        parse_tag(raw_tag(body))


@pytest.mark.parametrize("tail", [b"\x00" * 12 + b"x", b"ab"])
def test_parse_rejects_non_zero_leftovers(tail):
    body = raw_frame(b"TIT2", b"\x00Song") + tail
    with pytest.raises(TagDecodeError):
        parse_tag(raw_tag(body))


def test_parse_accepts_zero_padding_of_any_length():
    body = raw_frame(b"TIT2", b"\x00Song") + b"\x00" * 3
    assert parse_tag(raw_tag(body)).frames == [TITLE]


@pytest.mark.parametrize(
    "version,ext_size", [(3, b"\x00\x00\x00\x00"), (4, b"\x00\x00\x00\x00"), (4, b"\x00\x00\x00\x05")]
)
def test_parse_rejects_too_small_extended_header(version, ext_size):
    body = ext_size + b"\x00" * 6 + raw_frame(b"TIT2", b"\x00Song")
    with pytest.raises(TagDecodeError):
        parse_tag(raw_tag(body, version=version, flags=0x40))


def test_parse_v24_with_plain_frame_sizes():
    tag = parse_tag(plain_sized_v24_tag(BIG, TITLE_V24))
    assert tag.version == 4
    assert tag.frames == [BIG, TITLE_V24]
    assert len(tag.pictures[0].data) == 300


def test_parse_v24_prefers_synchsafe_frame_sizes():
    data = tag_bytes(BIG, TITLE_V24, version=4, padding=20)
    assert parse_tag(data).frames == [BIG, TITLE_V24]


def test_frame_size_reading_is_decided_per_tag():
    assert frame_sizes_are_synchsafe(tag_bytes(BIG, TITLE_V24, version=4)[10:], 4)
    assert not frame_sizes_are_synchsafe(plain_sized_v24_tag(BIG, TITLE_V24)[10:], 4)
    assert not frame_sizes_are_synchsafe(tag_bytes(BIG, TITLE)[10:], 3)


def test_parse_without_header_returns_none():
    assert parse_tag(AUDIO) is None


def test_parse_v22_is_unsupported():
    with pytest.raises(UnsupportedTagVersion):
        parse_tag(b"ID3\x02\x00\x00\x00\x00\x00\x00")


def test_parse_truncated_tag_raises():
    data = tag_bytes(TITLE)
    with pytest.raises(TagDecodeError):
        parse_tag(data[:-2])


def test_parse_frame_overrunning_tag_raises():
    body = b"TIT2" + struct.pack(">IH", 50, 0) + b"\x00Song"
    with pytest.raises(TagDecodeError):
        parse_tag(raw_tag(body))


def test_render_translates_status_flags_between_versions():
    frame = OtherFrame("TIT2", 0x4000, b"\x00Song", version=4)
    tag = parse_tag(render_tag(Tag(version=4, frames=[frame]), version=3))
    assert tag.frames == [OtherFrame("TIT2", 0x8000, b"\x00Song", version=3)]


def test_render_refuses_to_transcode_format_flags():
    frame = OtherFrame("TIT2", 0x0001, b"\x00\x00\x00\x05\x00Song", version=4)
    with pytest.raises(TagEncodeError):
        render_tag(Tag(version=4, frames=[frame]), version=3)


def test_render_rejects_bad_version_and_frame_id():
    with pytest.raises(TagEncodeError):
        render_tag(Tag(), version=2)
    with pytest.raises(TagEncodeError):
        render_tag(Tag(frames=[OtherFrame("tit2", 0, b"x")]))


# =====================================================
# read_tag / write_tag / delete_tag on files
# =====================================================


def test_read_tag_absent_returns_none(make_mp3):
    assert read_path(make_mp3()) is None


def test_write_tag_inserts_before_audio(make_mp3):
    path = make_mp3()
    with open(path, "r+b") as fh:
        written = write_tag(fh, Tag(frames=[TITLE, P1]), padding=8)
    with open(path, "rb") as fh:
        data = fh.read()
    assert data[written:] == AUDIO
    assert read_path(path).frames == [TITLE, P1]


def test_write_tag_replaces_existing_region(make_mp3):
    path = make_mp3(tag_bytes(TITLE, P1, P2, padding=100))
    with open(path, "r+b") as fh:
        written = write_tag(fh, Tag(frames=[P2]))
    with open(path, "rb") as fh:
        data = fh.read()
    assert len(data) == written + len(AUDIO)
    assert data.endswith(AUDIO)
    assert read_path(path).frames == [P2]


def test_write_tag_keep_refuses_existing_tag(make_mp3):
    original = tag_bytes(TITLE)
    path = make_mp3(original)
    with open(path, "r+b") as fh:
        with pytest.raises(TagExistsError):
            write_tag(fh, Tag(frames=[P1]), conflict=ConflictAction.KEEP)
    with open(path, "rb") as fh:
        assert fh.read() == original + AUDIO


def test_write_tag_encode_failure_leaves_file_untouched(make_mp3):
    original = tag_bytes(TITLE)
    path = make_mp3(original)
    bad = OtherFrame("TIT2", 0x0008, b"\x00x", version=4)
    with open(path, "r+b") as fh:
        with pytest.raises(TagEncodeError):
            write_tag(fh, Tag(frames=[bad]), version=3)
    with open(path, "rb") as fh:
        assert fh.read() == original + AUDIO


def test_delete_tag(make_mp3):
    path = make_mp3(tag_bytes(TITLE, P1, padding=64))
    with open(path, "r+b") as fh:
        assert delete_tag(fh) is True
    with open(path, "rb") as fh:
        assert fh.read() == AUDIO


def test_delete_tag_without_tag_is_noop(make_mp3):
    path = make_mp3()
    with open(path, "r+b") as fh:
        assert delete_tag(fh) is False
    with open(path, "rb") as fh:
        assert fh.read() == AUDIO


# =====================================================
# Cross-checks against mutagen
# =====================================================


def test_reads_mutagen_written_tag(make_mp3):
    path = make_mp3()
    tags = ID3()
    tags.add(TIT2(encoding=1, text="Song"))
    tags.add(APIC(encoding=0, mime="image/jpeg", type=PictureType.COVER_FRONT, desc="front", data=b"JPEG"))
    tags.add(APIC(encoding=0, mime="image/png", type=PictureType.COVER_BACK, desc="back", data=b"PNG"))
    tags.save(path, v2_version=3)

    tag = read_path(path)
    assert tag.version == 3
    assert [(p.mime_type, p.description, p.data) for p in tag.pictures] == [
        ("image/jpeg", "front", b"JPEG"),
        ("image/png", "back", b"PNG"),
    ]
    assert [f.frame_id for f in tag.frames if isinstance(f, OtherFrame)] == ["TIT2"]


def test_mutagen_reads_written_tag(make_mp3):
    path = make_mp3()
    with open(path, "r+b") as fh:
        write_tag(fh, Tag(frames=[TITLE, P1]), padding=32)

    tags = ID3(path)
    assert tags.version == (2, 3, 0)
    assert tags["TIT2"].text == ["Song"]
    apic = tags.getall("APIC")
    assert len(apic) == 1
    assert apic[0].mime == "image/jpeg"
    assert apic[0].type == PictureType.COVER_FRONT
    assert apic[0].desc == "one"
    assert apic[0].data == P1.data
