"""
Content-type sniffing from the leading bytes of a stream.

The classification table follows the WHATWG MIME sniffing rules for the
types an object store commonly serves: markup, documents, images,
audio/video, fonts and archives, with a final text-vs-binary check.
"""
import logging
from dataclasses import dataclass
from typing import BinaryIO, Callable, List, Optional

from .config import SNIFF_LEN
from .errors import TransferError

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "application/octet-stream"
TEXT_UTF8 = "text/plain; charset=utf-8"

_WHITESPACE = b"\t\n\x0c\r "
_TAG_TERMINATORS = b" >"


@dataclass(frozen=True)
class SniffResult:
    media_type: str
    prefix: bytes

    @property
    def count(self) -> int:
        return len(self.prefix)


def _exact(signature: bytes, media_type: str) -> Callable[[bytes, int], Optional[str]]:
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        return media_type if data.startswith(signature) else None

    return match


def _masked(mask: bytes, pattern: bytes, media_type: str, skip_ws: bool = False):
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        if skip_ws:
            data = data[first_non_ws:]
        if len(data) < len(pattern):
            return None
        for i, p in enumerate(pattern):
            if data[i] & mask[i] != p:
                return None
        return media_type

    return match


def _html(tag: bytes):
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        data = data[first_non_ws:]
        if len(data) < len(tag) + 1:
            return None
        if data[: len(tag)].upper() != tag:
            return None
        if data[len(tag)] not in _TAG_TERMINATORS:
            return None
        return "text/html; charset=utf-8"

    return match


def _mp4(data: bytes, first_non_ws: int) -> Optional[str]:
    # ISO base media file: an "ftyp" box listing an mp4 brand.
    if len(data) < 12:
        return None
    box_size = int.from_bytes(data[:4], "big")
    if len(data) < box_size or box_size % 4 != 0:
        return None
    if data[4:8] != b"ftyp":
        return None
    for start in range(8, box_size, 4):
        if start == 12:
            # minor version number
            continue
        if data[start : start + 3] == b"mp4":
            return "video/mp4"
    return None


def _text(data: bytes, first_non_ws: int) -> Optional[str]:
    for b in data[first_non_ws:]:
        if b <= 0x08 or b == 0x0B or 0x0E <= b <= 0x1A or 0x1C <= b <= 0x1F:
            return None
    return TEXT_UTF8


_HTML_TAGS = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1", b"<DIV",
    b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B", b"<BODY", b"<BR", b"<P",
    b"<!--",
)

_SIGNATURES: List[Callable[[bytes, int], Optional[str]]] = [_html(tag) for tag in _HTML_TAGS] + [
    _masked(b"\xff\xff\xff\xff\xff", b"<?xml", "text/xml; charset=utf-8", skip_ws=True),
    _exact(b"%PDF-", "application/pdf"),
    _exact(b"%!PS-Adobe-", "application/postscript"),
    # byte order marks
    _masked(b"\xff\xff\x00\x00", b"\xfe\xff\x00\x00", "text/plain; charset=utf-16be"),
    _masked(b"\xff\xff\x00\x00", b"\xff\xfe\x00\x00", "text/plain; charset=utf-16le"),
    _masked(b"\xff\xff\xff\x00", b"\xef\xbb\xbf\x00", TEXT_UTF8),
    # images
    _exact(b"\x00\x00\x01\x00", "image/x-icon"),
    _exact(b"\x00\x00\x02\x00", "image/x-icon"),
    _exact(b"BM", "image/bmp"),
    _exact(b"GIF87a", "image/gif"),
    _exact(b"GIF89a", "image/gif"),
    _masked(
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff\xff\xff",
        b"RIFF\x00\x00\x00\x00WEBPVP",
        "image/webp",
    ),
    _exact(b"\x89PNG\x0d\x0a\x1a\x0a", "image/png"),
    _exact(b"\xff\xd8\xff", "image/jpeg"),
    # audio and video
    _masked(b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", b"FORM\x00\x00\x00\x00AIFF", "audio/aiff"),
    _exact(b"ID3", "audio/mpeg"),
    _exact(b"OggS\x00", "application/ogg"),
    _exact(b"MThd\x00\x00\x00\x06", "audio/midi"),
    _masked(b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", b"RIFF\x00\x00\x00\x00AVI ", "video/avi"),
    _masked(b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", b"RIFF\x00\x00\x00\x00WAVE", "audio/wave"),
    _mp4,
    _exact(b"\x1a\x45\xdf\xa3", "video/webm"),
    # fonts
    _masked(b"\x00" * 34 + b"\xff\xff", b"\x00" * 34 + b"LP", "application/vnd.ms-fontobject"),
    _exact(b"\x00\x01\x00\x00", "font/ttf"),
    _exact(b"OTTO", "font/otf"),
    _exact(b"ttcf", "font/collection"),
    _exact(b"wOFF", "font/woff"),
    _exact(b"wOF2", "font/woff2"),
    # archives
    _exact(b"\x1f\x8b\x08", "application/x-gzip"),
    _exact(b"PK\x03\x04", "application/zip"),
    _exact(b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    _exact(b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    _exact(b"\x00asm", "application/wasm"),
    _text,
]


def detect_content_type(data: bytes) -> str:
    """Best-guess media type for (at most the first SNIFF_LEN bytes of) data."""
    data = bytes(data[:SNIFF_LEN])
    if not data:
        return DEFAULT_MEDIA_TYPE

    first_non_ws = 0
    while first_non_ws < len(data) and data[first_non_ws] in _WHITESPACE:
        first_non_ws += 1

    for signature in _SIGNATURES:
        media_type = signature(data, first_non_ws)
        if media_type:
            return media_type
    return DEFAULT_MEDIA_TYPE


def read_prefix(reader: BinaryIO, size: int = SNIFF_LEN) -> bytes:
    """Read up to size bytes, tolerating short reads and early end-of-stream."""
    buf = bytearray()
    try:
        while len(buf) < size:
            chunk = reader.read(size - len(buf))
            if not chunk:
                break
            buf += chunk
    except OSError as e:
        raise TransferError(f"failed to read input while detecting content-type: {e}") from e
    return bytes(buf)


def sniff(reader: BinaryIO) -> SniffResult:
    """Consume the first SNIFF_LEN bytes of reader and classify them.

    The returned prefix must be sent ahead of the rest of the stream; the
    reader is not rewound.
    """
    prefix = read_prefix(reader, SNIFF_LEN)
    media_type = detect_content_type(prefix)
    logger.debug("detected content-type %s from first %d bytes", media_type, len(prefix))
    return SniffResult(media_type=media_type, prefix=prefix)
