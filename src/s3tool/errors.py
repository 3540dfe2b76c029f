from contextlib import contextmanager
from typing import Iterator, Optional

from botocore.exceptions import BotoCoreError, ClientError

# S3 error codes meaning the addressed object no longer exists.
MISSING_KEY_CODES = {"NoSuchKey", "NotFound", "404"}


class S3ToolError(RuntimeError):
    """Base class for every error reported by s3tool."""


class ConfigurationError(S3ToolError):
    """Raised when required options are missing or invalid, before any network call."""


class TransferError(S3ToolError):
    """Raised when reading, relaying or uploading a byte stream fails."""


class StoreError(S3ToolError):
    """Raised when the object store rejects or fails a request."""

    def __init__(self, message: str, code: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.key = key


class SelectionError(StoreError):
    """Raised when a selected key disappeared between listing and action."""


@contextmanager
def store_errors(action: str, key: Optional[str] = None) -> Iterator[None]:
    """Re-raise botocore failures inside the block as StoreError."""
    try:
        yield
    except ClientError as e:
        error = e.response.get("Error", {}) if isinstance(e.response, dict) else {}
        code = str(error.get("Code") or "") or None
        message = error.get("Message") or str(e)
        target = f" {key}" if key else ""
        raise StoreError(f"failed to {action}{target}: {message}", code=code, key=key) from e
    except BotoCoreError as e:
        target = f" {key}" if key else ""
        raise StoreError(f"failed to {action}{target}: {e}", key=key) from e
