import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from mediarelay.schemas import MediaMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A fetched metadata document and the moment it was stored."""

    metadata: MediaMetadata
    fetched_at: float


class MetadataCache:
    """
    Thread-safe TTL cache of media metadata with a background expiry sweep.

    Entries are immutable and swapped as a whole under the lock, so a reader
    either sees the previous entry or the new one. Expired entries are dropped
    by whichever comes first: the lookup that finds them or the periodic sweep.
    Failed fetches are never stored.
    """

    def __init__(self, ttl: float, sweep_interval: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.fetched_at >= self.ttl

    def get(self, key: str) -> Tuple[Optional[MediaMetadata], bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            if self._is_expired(entry, self._clock()):
                # Only drop the entry we judged stale, not a fresher concurrent put
                if self._entries.get(key) is entry:
                    del self._entries[key]
                return None, False
            return entry.metadata, True

    def put(self, key: str, metadata: MediaMetadata) -> None:
        entry = CacheEntry(metadata=metadata, fetched_at=self._clock())
        with self._lock:
            self._entries[key] = entry

    def sweep(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Metadata cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def start(self) -> None:
        """Start the background sweep task on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"Metadata cache started (ttl={self.ttl}s, sweep every {self.sweep_interval}s)")

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                return
            except Exception as e:
                logger.warning(f"Metadata cache sweep error: {e}")

    async def close(self) -> None:
        """Stop the sweep task."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
