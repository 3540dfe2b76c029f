"""Tests for content-type sniffing."""

import io

import pytest

from s3tool.errors import TransferError
from s3tool.sniff import DEFAULT_MEDIA_TYPE, detect_content_type, sniff


class TrickleReader(io.RawIOBase):
    """Returns at most a few bytes per read, like a slow pipe."""

    def __init__(self, data: bytes, step: int = 7) -> None:
        self._data = data
        self._pos = 0
        self._step = step

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        n = self._step if size < 0 else min(size, self._step)
        chunk = self._data[self._pos : self._pos + n]
        self._pos += len(chunk)
        return chunk

    def seek(self, *args):
        raise io.UnsupportedOperation("not seekable")


class BrokenReader(io.RawIOBase):
    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        raise OSError("device went away")


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"  \n<!DOCTYPE html><html></html>", "text/html; charset=utf-8"),
        (b"<html>\n<body>hi</body>", "text/html; charset=utf-8"),
        (b"<p>paragraph</p>", "text/html; charset=utf-8"),
        (b"<?xml version='1.0'?><a/>", "text/xml; charset=utf-8"),
        (b"%PDF-1.7\n...", "application/pdf"),
        (b"%!PS-Adobe-3.0", "application/postscript"),
        (b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR", "image/png"),
        (b"\xff\xd8\xff\xe0\x00\x10JFIF", "image/jpeg"),
        (b"GIF89a\x01\x00", "image/gif"),
        (b"RIFF\x24\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"RIFF\x24\x00\x00\x00WAVEfmt ", "audio/wave"),
        (b"ID3\x03\x00", "audio/mpeg"),
        (b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00mp42isom", "video/mp4"),
        (b"\x1f\x8b\x08\x00\x00\x00", "application/x-gzip"),
        (b"PK\x03\x04\x14\x00", "application/zip"),
        (b"\x00asm\x01\x00\x00\x00", "application/wasm"),
        (b"wOF2\x00\x01", "font/woff2"),
        (b"\xfe\xff\x00h", "text/plain; charset=utf-16be"),
        (b"\xef\xbb\xbfhello", "text/plain; charset=utf-8"),
        (b"just some plain text\n", "text/plain; charset=utf-8"),
        (b"\x00\x01\x02\x03binary", DEFAULT_MEDIA_TYPE),
        (b"", DEFAULT_MEDIA_TYPE),
    ],
)
def test_detect_content_type(data, expected):
    assert detect_content_type(data) == expected


def test_html_tag_needs_terminator():
    # "<a" followed by a letter is not the <a> tag.
    assert detect_content_type(b"<abc def") == "text/plain; charset=utf-8"


def test_only_first_512_bytes_are_considered():
    data = b"a" * 512 + b"\x00\x01\x02"
    assert detect_content_type(data) == "text/plain; charset=utf-8"


@pytest.mark.parametrize("length", [0, 1, 100, 511, 512, 513, 4096])
def test_sniff_prefix_is_leading_bytes(length):
    data = bytes((i * 31) % 256 for i in range(length))
    reader = io.BytesIO(data)

    result = sniff(reader)

    assert result.prefix == data[: min(512, length)]
    assert result.count == min(512, length)
    # Nothing past the prefix has been consumed.
    assert reader.read() == data[result.count :]


def test_sniff_empty_stream():
    result = sniff(io.BytesIO(b""))
    assert result.count == 0
    assert result.prefix == b""
    assert result.media_type == DEFAULT_MEDIA_TYPE


def test_sniff_fills_window_across_short_reads():
    data = b"<html>" + b"x" * 2000
    reader = TrickleReader(data)

    result = sniff(reader)

    assert result.count == 512
    assert result.prefix == data[:512]
    assert result.media_type == "text/html; charset=utf-8"


def test_sniff_read_error_is_transfer_error():
    with pytest.raises(TransferError, match="device went away"):
        sniff(BrokenReader())
