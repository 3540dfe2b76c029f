"""
Parallel multipart upload of a single byte stream.

The stream is read strictly in order and cut into fixed-size parts; a fixed
pool of asyncio workers sends one part each at a time (the blocking boto3
call runs in a thread), and the upload is committed with the parts listed in
ascending order once every part has been acknowledged.
"""
import asyncio
import logging
from typing import BinaryIO, Dict, List, Optional

from .config import DEFAULT_CONCURRENCY, DEFAULT_PART_SIZE
from .errors import ConfigurationError, S3ToolError, TransferError, store_errors

logger = logging.getLogger(__name__)


def read_part(reader: BinaryIO, size: int) -> bytes:
    """Read exactly size bytes, or fewer only at end of stream."""
    buf = bytearray()
    try:
        while len(buf) < size:
            chunk = reader.read(size - len(buf))
            if not chunk:
                break
            buf += chunk
    except S3ToolError:
        raise
    except OSError as e:
        raise TransferError(f"failed to read upload stream: {e}") from e
    return bytes(buf)


class Upload:
    """Handle for one in-progress multipart upload."""

    def __init__(self, s3, bucket: str, key: str, upload_id: str) -> None:
        self._s3 = s3
        self.bucket = bucket
        self.key = key
        self.upload_id = upload_id
        # part number -> etag, for parts the store acknowledged
        self._acked: Dict[int, str] = {}
        self._dispatched = 0
        self._failed = False
        self._committed = False

    @property
    def dispatched(self) -> int:
        return self._dispatched

    def parts(self) -> List[dict]:
        return [{"PartNumber": n, "ETag": self._acked[n]} for n in sorted(self._acked)]

    def _send_part(self, number: int, body: bytes) -> str:
        logger.debug("uploading part %d of %s (%d bytes)", number, self.key, len(body))
        with store_errors(f"upload part {number} of", self.key):
            resp = self._s3.upload_part(
                Bucket=self.bucket,
                Key=self.key,
                UploadId=self.upload_id,
                PartNumber=number,
                Body=body,
            )
        return resp["ETag"]

    def parallel_stream(
        self,
        reader: BinaryIO,
        part_size: int = DEFAULT_PART_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> int:
        """Upload everything reader yields; returns the number of parts sent."""
        if part_size < 1:
            raise ConfigurationError(f"part size must be at least 1 byte, got {part_size}")
        if concurrency < 1:
            raise ConfigurationError(f"concurrency must be at least 1, got {concurrency}")
        if self._dispatched:
            raise TransferError(f"upload of {self.key} has already been streamed")

        try:
            return asyncio.run(self._stream(reader, int(part_size), int(concurrency)))
        except BaseException:
            self._failed = True
            raise

    async def _stream(self, reader: BinaryIO, part_size: int, concurrency: int) -> int:
        pending: asyncio.Queue = asyncio.Queue(maxsize=concurrency)
        lock = asyncio.Lock()

        async def worker() -> None:
            while True:
                item = await pending.get()
                if item is None:
                    return
                number, body = item
                etag = await asyncio.to_thread(self._send_part, number, body)
                async with lock:
                    self._acked[number] = etag

        async def dispatch() -> int:
            number = 0
            while True:
                body = await asyncio.to_thread(read_part, reader, part_size)
                # An empty stream still produces one (empty) part.
                if not body and number > 0:
                    break
                number += 1
                await pending.put((number, body))
                self._dispatched = number
                if len(body) < part_size:
                    break
            for _ in range(concurrency):
                await pending.put(None)
            return number

        dispatcher = asyncio.create_task(dispatch())
        workers = [asyncio.create_task(worker()) for _ in range(concurrency)]
        tasks = [dispatcher, *workers]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # A read still blocked in the executor must return before asyncio.run can finish.
            close = getattr(reader, "close", None)
            if close is not None:
                close()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        logger.debug("streamed %d part(s) to %s", dispatcher.result(), self.key)
        return dispatcher.result()

    def commit(self) -> Optional[str]:
        """Complete the upload; every dispatched part must be acknowledged."""
        if self._committed:
            raise TransferError(f"upload of {self.key} was already committed")
        if self._failed:
            raise TransferError(f"refusing to commit failed upload of {self.key}")
        if not self._dispatched or len(self._acked) != self._dispatched:
            raise TransferError(
                f"refusing to commit {self.key}: {len(self._acked)} of {self._dispatched} part(s) acknowledged"
            )

        with store_errors("complete upload of", self.key):
            resp = self._s3.complete_multipart_upload(
                Bucket=self.bucket,
                Key=self.key,
                UploadId=self.upload_id,
                MultipartUpload={"Parts": self.parts()},
            )
        self._committed = True
        logger.debug("committed %s with %d part(s)", self.key, self._dispatched)
        return (resp or {}).get("ETag")
