"""Keyed Locks - Per-instance mutual exclusion with bounded wait"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from ..domain.errors import ConcurrentModificationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class KeyedLockManager:
    """
    One lock per key, created on demand and dropped when no caller holds or
    waits on it. Waiting is bounded; a caller that cannot get the lock in
    time receives ConcurrentModificationError and may retry.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        wait = self.timeout_seconds if timeout is None else timeout
        entry = self._checkout(key)
        acquired = entry[0].acquire(timeout=wait)
        try:
            if not acquired:
                logger.warning(f"Lock wait exhausted for {key} after {wait}s")
                raise ConcurrentModificationError(
                    f"{key} is busy, retry later",
                    details={"key": key, "timeout_seconds": wait}
                )
            yield
        finally:
            if acquired:
                entry[0].release()
            self._checkin(key)

    def _checkout(self, key: str) -> List:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                return
            entry[1] -= 1
            if entry[1] <= 0:
                del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
