"""Time-bounded read caches: a generic TTL map and the per-store directory/file cache"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from mdcms.core.utils import paths
from mdcms.store.tree import Listing, RemoteFile

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class ReadCache(Generic[T]):
    """Unbounded key -> value map with per-entry expiry.

    Reads past expiry count as a miss and evict the entry. The clock is
    injectable so expiry can be tested without sleeping.
    """

    def __init__(self, ttl: float, clock: Clock = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + (ttl if ttl is not None else self.ttl))

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class DirectoryFileCache:
    """File and directory-listing caches for one content store, keyed by repo path."""

    def __init__(self, ttl: float = 3600.0, clock: Clock = time.monotonic):
        self.files: ReadCache[RemoteFile] = ReadCache(ttl, clock)
        self.dirs: ReadCache[Listing] = ReadCache(ttl, clock)

    def get_file(self, path: str) -> Optional[RemoteFile]:
        hit = self.files.get(path)
        logger.debug(f"file cache {'hit' if hit else 'miss'}: {path}")
        return hit

    def set_file(self, path: str, file: RemoteFile) -> None:
        self.files.set(path, file)

    def get_dir(self, path: str) -> Optional[Listing]:
        hit = self.dirs.get(path)
        logger.debug(f"dir cache {'hit' if hit is not None else 'miss'}: {path}")
        return hit

    def set_dir(self, path: str, listing: Listing) -> None:
        self.dirs.set(path, listing)

    def invalidate_path(self, path: str) -> None:
        """Drop the file entry and its parent directory listing."""
        self.files.invalidate(path)
        self.dirs.invalidate(paths.parent(path))
        logger.debug(f"cache invalidated: {path}")

    def invalidate_dir(self, path: str) -> None:
        self.dirs.invalidate(path)
