"""
Bounded producer/consumer hand-off between a local source and the uploader.

A background thread forwards the sniffed prefix and then the rest of the
source into a size-limited queue; the uploader reads from the relay as if it
were a file. The producer's outcome is published on a Future so a failing
source surfaces as an ordinary exception in the caller.
"""
import logging
import queue
import threading
from concurrent.futures import Future
from typing import BinaryIO, Optional

from .errors import TransferError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_CHUNKS = 16

# How often a blocked producer or reader re-checks whether the relay was closed.
_PUT_POLL_SEC = 0.1


class _Eof:
    pass


class _Failure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


_EOF = _Eof()


class StreamRelay:
    def __init__(
        self,
        source: BinaryIO,
        prefix: bytes = b"",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_chunks: int = DEFAULT_MAX_CHUNKS,
    ) -> None:
        self._source = source
        self._prefix = bytes(prefix)
        self._chunk_size = max(1, int(chunk_size))
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=max(1, int(max_chunks)))
        self._abandoned = threading.Event()
        self._outcome: Future = Future()
        self._thread: Optional[threading.Thread] = None

        # consumer-side state
        self._pending = b""
        self._offset = 0
        self._eof = False
        self._error: Optional[BaseException] = None

    def start(self) -> "StreamRelay":
        if self._thread is not None:
            raise RuntimeError("relay already started")
        self._thread = threading.Thread(target=self._produce, name="s3tool-relay", daemon=True)
        self._thread.start()
        return self

    def __enter__(self) -> "StreamRelay":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---- producer side -------------------------------------------------

    def _put(self, item: object) -> bool:
        while not self._abandoned.is_set():
            try:
                self._queue.put(item, timeout=_PUT_POLL_SEC)
                return True
            except queue.Full:
                continue
        return False

    def _produce(self) -> None:
        total = 0
        try:
            if self._prefix:
                if not self._put(self._prefix):
                    raise TransferError("relay closed by reader before the stream was fully sent")
                total += len(self._prefix)
            while True:
                chunk = self._source.read(self._chunk_size)
                if not chunk:
                    break
                if not self._put(bytes(chunk)):
                    raise TransferError("relay closed by reader before the stream was fully sent")
                total += len(chunk)
        except TransferError as e:
            self._fail(e)
            return
        except Exception as e:
            self._fail(TransferError(f"failed to read upload source: {e}"), cause=e)
            return

        self._put(_EOF)
        logger.debug("relay finished after %d bytes", total)
        self._outcome.set_result(total)

    def _fail(self, error: TransferError, cause: Optional[BaseException] = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        logger.debug("relay aborted: %s", error)
        self._outcome.set_exception(error)
        self._put(_Failure(error))

    # ---- consumer side -------------------------------------------------

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes (all remaining if negative), blocking for data.

        Returns b"" only at end of stream. Raises TransferError if the
        producer failed.
        """
        if self._error is not None:
            raise TransferError(str(self._error)) from self._error

        out = bytearray()
        while size < 0 or len(out) < size:
            if self._offset >= len(self._pending):
                if self._eof:
                    break
                item = self._get()
                if item is _EOF:
                    self._eof = True
                    break
                if isinstance(item, _Failure):
                    self._error = item.error
                    raise TransferError(str(item.error)) from item.error
                self._pending = item
                self._offset = 0

            want = len(self._pending) - self._offset
            if size >= 0:
                want = min(want, size - len(out))
            out += self._pending[self._offset : self._offset + want]
            self._offset += want
        return bytes(out)

    def _get(self) -> object:
        while True:
            if self._abandoned.is_set():
                raise TransferError("relay was closed while reading")
            try:
                return self._queue.get(timeout=_PUT_POLL_SEC)
            except queue.Empty:
                continue

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        """Stop the relay; a blocked producer or reader gives up."""
        self._abandoned.set()

    def result(self, timeout: Optional[float] = None) -> int:
        """Total bytes relayed, or the producer's error re-raised."""
        return self._outcome.result(timeout=timeout)
