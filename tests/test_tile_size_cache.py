import os
import sys
from typing import Dict, List, Optional

import pytest
import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from utils.tile_size_cache import TileSizeCache, DEFAULT_TTL_SECONDS


TILE_URL = "https://tile.example.com/3/1/2.png"


class DummyResponse:
    def __init__(self, status_code: int, headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self.headers = headers or {}

    def raise_for_status(self):
        if not (200 <= self.status_code < 300):
            raise requests.HTTPError(f"HTTP {self.status_code}")


class DummySession:
    """Records HEAD requests and answers from a canned response or exception"""

    def __init__(self, calls: List[str], response=None, error: Optional[Exception] = None):
        self.calls = calls
        self.response = response
        self.error = error
        self.timeouts: List[Optional[float]] = []
        self.closed = False

    def head(self, url, headers=None, timeout=None, allow_redirects=True):
        self.calls.append(url)
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_cache(response=None, error=None, clock=None, **kwargs):
    calls: List[str] = []
    cache = TileSizeCache(clock=clock or FakeClock(), **kwargs)
    cache.create_session = lambda: DummySession(calls, response, error)  # type: ignore
    return cache, calls


class TestTileSizeCache:
    """Test cases for TileSizeCache"""

    def test_second_call_within_ttl_is_served_from_cache(self):
        cache, calls = make_cache(DummyResponse(200, {'Content-Length': '1234', 'ETag': '"abc"'}))

        assert cache.get_tile_size(TILE_URL) == 1234
        assert cache.get_tile_size(TILE_URL) == 1234
        assert calls == [TILE_URL]

        entry = cache.get(TILE_URL)
        assert entry.size_bytes == 1234
        assert entry.etag == '"abc"'

    def test_head_request_uses_five_second_timeout(self):
        session = DummySession([], DummyResponse(200, {'Content-Length': '42'}))
        cache = TileSizeCache(clock=FakeClock())
        cache.create_session = lambda: session  # type: ignore

        assert cache.get_tile_size(TILE_URL) == 42
        assert session.timeouts == [5.0]
        assert session.closed

    def test_expired_entry_triggers_new_request(self):
        clock = FakeClock()
        cache, calls = make_cache(DummyResponse(200, {'Content-Length': '10'}), clock=clock)

        cache.get_tile_size(TILE_URL)
        clock.now += DEFAULT_TTL_SECONDS
        cache.get_tile_size(TILE_URL)

        assert len(calls) == 2

    def test_missing_content_length_returns_zero_and_is_not_cached(self):
        cache, calls = make_cache(DummyResponse(200, {}))

        assert cache.get_tile_size(TILE_URL) == 0
        assert cache.get_tile_size(TILE_URL) == 0
        assert len(calls) == 2
        assert len(cache) == 0

    def test_http_error_returns_zero(self):
        cache, calls = make_cache(DummyResponse(404, {'Content-Length': '99'}))
        assert cache.get_tile_size(TILE_URL) == 0
        assert len(cache) == 0

    @pytest.mark.parametrize("error", [requests.Timeout("timed out"), requests.ConnectionError("refused")])
    def test_transport_failures_are_soft(self, error):
        cache, calls = make_cache(error=error)
        assert cache.get_tile_size(TILE_URL) == 0
        assert cache.get_tile_size(TILE_URL) == 0
        assert len(calls) == 2

    def test_clean_expired_entries(self):
        clock = FakeClock()
        cache, _ = make_cache(clock=clock)
        cache.set("https://a/0/0/0.png", 1)
        clock.now += DEFAULT_TTL_SECONDS - 10
        cache.set("https://b/0/0/0.png", 2)
        clock.now += 10

        assert cache.clean_expired_entries() == 1
        assert cache.get("https://a/0/0/0.png") is None
        assert cache.get("https://b/0/0/0.png").size_bytes == 2

    def test_clear_all(self):
        cache, _ = make_cache()
        cache.set("https://a/0/0/0.png", 1)
        cache.set("https://b/0/0/0.png", 2)
        cache.clear_all()
        assert len(cache) == 0

    def test_max_entries_evicts_least_recently_used(self):
        cache, _ = make_cache(max_entries=2)
        cache.set("https://a", 1)
        cache.set("https://b", 2)
        cache.get("https://a")
        cache.set("https://c", 3)

        assert len(cache) == 2
        assert cache.get("https://b") is None
        assert cache.get("https://a").size_bytes == 1

    def test_instances_do_not_share_state(self):
        first, _ = make_cache()
        second, _ = make_cache()
        first.set(TILE_URL, 5)
        assert second.get(TILE_URL) is None
