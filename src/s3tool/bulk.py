"""
Recursive selection and sequential bulk actions over a listing snapshot.

Bulk actions are fail-fast and non-transactional: the first key that fails
stops the run, and keys handled before it stay changed.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Tuple, Union

from .errors import MISSING_KEY_CODES, SelectionError, StoreError
from .models import BulkSelection, ObjectSummary

logger = logging.getLogger(__name__)


def _snapshot(listing: Iterable[Union[str, ObjectSummary]]) -> Tuple[ObjectSummary, ...]:
    return tuple(e if isinstance(e, ObjectSummary) else ObjectSummary(key=e) for e in listing)


def normalize_root(root: str) -> str:
    """Strip at most one trailing slash."""
    return root[:-1] if root.endswith("/") else root


def is_under(key: str, root: str) -> bool:
    # The delimiter guard keeps "logs" from matching "logs2024".
    return key == root or key.startswith(root + "/")


def select(root: str, listing: Iterable[Union[str, ObjectSummary]]) -> BulkSelection:
    """Select the keys at or below root from one listing snapshot."""
    snapshot = _snapshot(listing)
    root = normalize_root(root)
    keys = tuple(entry.key for entry in snapshot if is_under(entry.key, root))
    logger.debug("selected %d of %d key(s) under %r", len(keys), len(snapshot), root)
    return BulkSelection(root=root, listing=snapshot, keys=keys)


def select_all(listing: Iterable[Union[str, ObjectSummary]]) -> BulkSelection:
    snapshot = _snapshot(listing)
    return BulkSelection(root="", listing=snapshot, keys=tuple(entry.key for entry in snapshot))


@dataclass(frozen=True)
class DeleteObject:
    def __call__(self, store, key: str) -> None:
        logger.debug("  - deleting %s", key)
        store.delete(key)


@dataclass(frozen=True)
class ChangeACL:
    policy: str

    def __call__(self, store, key: str) -> None:
        logger.debug("  - chacl %s %s", key, self.policy)
        store.change_acl(key, self.policy)


Action = Callable[[object, str], None]


def apply(store, action: Action, selection: Union[BulkSelection, Iterable[str]]) -> int:
    """Run action on each selected key in order, stopping at the first failure.

    Returns the number of keys processed. There is no rollback: keys before
    the failing one keep their new state and later keys are never attempted.
    """
    done = 0
    for key in selection:
        try:
            action(store, key)
        except SelectionError:
            raise
        except StoreError as e:
            if e.code in MISSING_KEY_CODES:
                raise SelectionError(
                    f"{key} disappeared after it was listed: {e}", code=e.code, key=key
                ) from e
            raise
        done += 1
    logger.debug("bulk operation finished after %d key(s)", done)
    return done
