"""Keyed Lock - Per-authorization mutual exclusion"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from ..config.settings import settings
from ..domain.errors import ConcurrencyError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLock:
    """
    One mutex per key, created on demand and dropped once no thread holds
    or waits for it. Different keys never block each other.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = (
            settings.workflow_lock_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def _checkout(self, key: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.holders += 1
            return entry

    def _release(self, key: str, entry: _Entry) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(key, None)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold the lock for ``key``

        Raises:
            ConcurrencyError: lock not acquired within the timeout
        """
        entry = self._checkout(key)
        if not entry.lock.acquire(timeout=self.timeout_seconds):
            self._release(key, entry)
            logger.warning(f"Timed out waiting for workflow lock on {key}", extra={"authorization_id": key})
            raise ConcurrencyError(
                f"Authorization {key} is busy; try again",
                details={"authorization_id": key, "timeout_seconds": self.timeout_seconds}
            )
        try:
            yield
        finally:
            entry.lock.release()
            self._release(key, entry)

    def active_keys(self) -> int:
        """Number of keys currently held or awaited"""
        with self._guard:
            return len(self._entries)
