import logging
import time
from dataclasses import dataclass
from typing import BinaryIO, Optional

from .errors import ConfigurationError, TransferError, store_errors
from .models import TransferRequest
from .relay import StreamRelay
from .sniff import sniff

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    key: str
    content_type: str
    size_bytes: int
    parts: int
    duration_sec: float


@dataclass
class DownloadResult:
    key: str
    size_bytes: int
    duration_sec: float


def default_upload_key(path: str) -> str:
    """Destination key for a local path: leading '.' and '/' characters removed."""
    return path.lstrip("./")


def default_download_path(key: str) -> str:
    """Local file name for a key: its final path component."""
    name = key.rstrip("/").rsplit("/", 1)[-1]
    if not name or name in (".", ".."):
        raise ConfigurationError(f"I don't know how to handle the path '{key}'")
    return name


def upload(store, request: TransferRequest) -> UploadResult:
    """Stream request.source to request.key as a parallel multipart upload.

    The content type is fixed (given or sniffed from the first bytes) before
    anything is sent. Sniffed bytes are relayed ahead of the rest of the
    source, so non-seekable inputs such as stdin are sent intact.
    """
    if not request.key:
        raise ConfigurationError("missing destination key for upload")
    if request.part_size < 1:
        raise ConfigurationError(f"part size must be at least 1 byte, got {request.part_size}")
    if request.concurrency < 1:
        raise ConfigurationError(f"concurrency must be at least 1, got {request.concurrency}")

    prefix = b""
    content_type = request.content_type
    if not content_type:
        logger.debug("%s: detecting content-type from first 512b", request.label)
        sniffed = sniff(request.source)
        content_type, prefix = sniffed.media_type, sniffed.prefix

    start = time.perf_counter()
    relay = StreamRelay(request.source, prefix=prefix).start()
    try:
        logger.debug("%s: uploading %s file to %s", request.label, content_type, request.key)
        handle = store.new_upload(request.key, {"Content-Type": content_type})
        parts = handle.parallel_stream(relay, request.part_size, request.concurrency)
        size = relay.result()
        handle.commit()
    finally:
        relay.close()

    return UploadResult(
        key=request.key,
        content_type=content_type,
        size_bytes=size,
        parts=parts,
        duration_sec=time.perf_counter() - start,
    )


def copy_stream(body, out: BinaryIO, chunk_size: int = 64 * 1024) -> int:
    total = 0
    chunks = body.iter_chunks(chunk_size=chunk_size) if hasattr(body, "iter_chunks") else iter(
        lambda: body.read(chunk_size), b""
    )
    try:
        for chunk in chunks:
            if not chunk:
                continue
            out.write(chunk)
            total += len(chunk)
    except OSError as e:
        raise TransferError(f"failed to write downloaded data: {e}") from e
    return total


def _drain(key: str, body, out: BinaryIO, start: float) -> DownloadResult:
    try:
        with store_errors("read", key):
            size = copy_stream(body, out)
    finally:
        body.close()
    return DownloadResult(key=key, size_bytes=size, duration_sec=time.perf_counter() - start)


def download(store, key: str, out: BinaryIO) -> DownloadResult:
    """Stream an object's contents into an open binary file."""
    start = time.perf_counter()
    return _drain(key, store.get(key), out, start)


def download_to_path(store, key: str, dest: Optional[str] = None) -> DownloadResult:
    dest = dest or default_download_path(key)
    start = time.perf_counter()
    # Fetch before touching the destination so a missing key leaves it alone.
    body = store.get(key)
    logger.debug("downloading %s to %s", key, dest)
    try:
        out = open(dest, "wb")
    except OSError as e:
        body.close()
        raise TransferError(f"cannot write {dest}: {e}") from e
    with out:
        return _drain(key, body, out, start)
