import pytest
from mutagen.id3 import PictureType

from mp3_cover_drop.cover_types import OtherFrame, PictureFrame, Tag
from mp3_cover_drop.tag_codec import encode_synchsafe, render_frame, render_tag

# A few MPEG-1 Layer III frame headers followed by silence.
AUDIO = (b"\xff\xfb\x90\x64" + b"\x00" * 413) * 4

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"jpeg-body" + b"\xff\xd9"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"png-body" + b"IEND\xaeB`\x82"

TITLE = OtherFrame(frame_id="TIT2", flags=0, data=b"\x00Song", version=3)
P1 = PictureFrame(PictureType.COVER_FRONT, "image/jpeg", "one", b"\xff\xd8first\xff\xd9")
P2 = PictureFrame(PictureType.COVER_BACK, "image/png", "two", b"\x89PNGsecond")
BIG = PictureFrame(
    PictureType.COVER_FRONT, "image/jpeg", "big", b"\xff\xd8" + b"\xab" * 296 + b"\xff\xd9"
)
TITLE_V24 = OtherFrame(frame_id="TIT2", flags=0, data=b"\x03Song", version=4)


def tag_bytes(*frames, version=3, padding=0):
    return render_tag(Tag(version=version, frames=list(frames)), version=version, padding=padding)


def plain_sized_v24_tag(*frames):
    """A v2.4 tag whose frame sizes are plain big-endian, as iTunes writes them."""
    body = b"".join(render_frame(f, 3) for f in frames)
    return b"ID3\x04\x00\x00" + encode_synchsafe(len(body)) + body


@pytest.fixture
def make_mp3(tmp_path):
    def _make(tag=b"", name="song.mp3"):
        path = tmp_path / name
        path.write_bytes(tag + AUDIO)
        return str(path)

    return _make


@pytest.fixture
def make_image(tmp_path):
    def _make(name, data=None):
        if data is None:
            data = PNG_BYTES if name.lower().endswith(".png") else JPEG_BYTES
        path = tmp_path / name
        path.write_bytes(data)
        return str(path)

    return _make
