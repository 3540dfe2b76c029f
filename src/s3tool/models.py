from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Optional, Tuple

from .config import DEFAULT_CONCURRENCY, DEFAULT_PART_SIZE


@dataclass
class TransferRequest:
    source: BinaryIO
    key: str
    content_type: Optional[str] = None
    part_size: int = DEFAULT_PART_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    # Label for log messages only ("-" for standard input).
    label: str = "-"


@dataclass(frozen=True)
class ObjectSummary:
    key: str
    last_modified: Optional[datetime] = None
    owner_name: str = ""
    etag: str = ""
    size: int = 0


@dataclass(frozen=True)
class BucketSummary:
    name: str
    creation_date: Optional[datetime] = None
    owner_name: str = ""


@dataclass(frozen=True)
class ACLGrant:
    permission: str
    grantee_name: str = ""
    group: str = ""

    @property
    def is_user(self) -> bool:
        return bool(self.grantee_name) or not self.group


@dataclass(frozen=True)
class BulkSelection:
    """Keys chosen from one listing snapshot, in listing order."""

    root: str
    listing: Tuple[ObjectSummary, ...]
    keys: Tuple[str, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.keys)

    def __iter__(self):
        return iter(self.keys)

    def __contains__(self, key: object) -> bool:
        return key in self.keys
