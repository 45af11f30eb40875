import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 24 * 60 * 60  # 30 days
DEFAULT_HEAD_TIMEOUT = 5.0
DEFAULT_MAX_ENTRIES = 10000

HEAD_HEADERS = {
    'Accept': 'image/png,image/jpeg',
    'User-Agent': 'TileViewer/1.0',
    'Cache-Control': 'max-age=2592000',
}


@dataclass(frozen=True)
class TileSizeCacheEntry:
    """Last known byte size of a tile URL"""
    url: str
    size_bytes: int
    fetched_at: float
    etag: Optional[str] = None


class TileSizeCache:
    """TTL and size bounded cache of tile byte sizes keyed by URL.

    Sizes come from HEAD requests. Failed requests are never cached and never
    raise; they yield 0. Two threads missing on the same URL may both request it,
    the later write wins.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, timeout: float = DEFAULT_HEAD_TIMEOUT,
                 max_entries: int = DEFAULT_MAX_ENTRIES, clock: Callable[[], float] = time.time,
                 headers: Optional[Dict[str, str]] = None):
        self.ttl = ttl
        self.timeout = timeout
        self.max_entries = max_entries
        self._clock = clock
        self._headers = dict(headers or HEAD_HEADERS)
        self._entries: 'OrderedDict[str, TileSizeCacheEntry]' = OrderedDict()
        self._lock = threading.Lock()

    def create_session(self) -> requests.Session:
        """Session used for size lookups (no retries)"""
        return requests.Session()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_fresh(self, entry: TileSizeCacheEntry, now: float) -> bool:
        return (now - entry.fetched_at) < self.ttl

    def get(self, url: str) -> Optional[TileSizeCacheEntry]:
        """Fresh entry for url, or None"""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(url)
            if entry is None or not self._is_fresh(entry, now):
                return None
            self._entries.move_to_end(url)
            return entry

    def set(self, url: str, size_bytes: int, etag: Optional[str] = None) -> TileSizeCacheEntry:
        entry = TileSizeCacheEntry(url=url, size_bytes=size_bytes, fetched_at=self._clock(), etag=etag)
        with self._lock:
            self._entries[url] = entry
            self._entries.move_to_end(url)
            while len(self._entries) > self.max_entries:
                evicted_url, _ = self._entries.popitem(last=False)
                logger.debug("Evicted tile size entry %s", evicted_url)
        return entry

    def get_tile_size(self, url: str) -> int:
        """Byte size of the tile at url; 0 when it cannot be determined"""
        cached = self.get(url)
        if cached is not None:
            return cached.size_bytes

        try:
            session = self.create_session()
            try:
                response = session.head(url, headers=self._headers, timeout=self.timeout,
                                        allow_redirects=True)
            finally:
                session.close()
            response.raise_for_status()
        except requests.Timeout:
            logger.warning("Tile size request timed out: %s", url)
            return 0
        except requests.RequestException as e:
            logger.error("Error getting tile size for %s: %s", url, e)
            return 0

        size = response.headers.get('Content-Length')
        if not size:
            return 0
        try:
            size_bytes = int(size)
        except ValueError:
            logger.error("Invalid Content-Length %r for %s", size, url)
            return 0

        self.set(url, size_bytes, response.headers.get('ETag'))
        return size_bytes

    def clean_expired_entries(self) -> int:
        """Drop entries older than the TTL, returns how many were removed"""
        now = self._clock()
        with self._lock:
            expired = [url for url, entry in self._entries.items() if not self._is_fresh(entry, now)]
            for url in expired:
                del self._entries[url]
        if expired:
            logger.info("Removed %d expired tile size entries", len(expired))
        return len(expired)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
