"""
In-memory storage for digest sessions and the crawler endpoint's busy guard.
"""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from site_digest.models.digest import DigestResult, DigestStatus


class DigestStore:
    """Interface of a digest persistence backend"""

    def save(self, result: DigestResult) -> None:
        raise NotImplementedError

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError


class MemoryDigestStore(DigestStore):
    """Thread-safe in-memory digest store keyed by session id"""

    def __init__(self):
        self._results: Dict[str, DigestResult] = {}
        self._lock = threading.RLock()

    def create_session(self, root_url: str, session_id: Optional[str] = None) -> DigestResult:
        """Register a new pending session"""
        with self._lock:
            result = DigestResult(root_url=root_url)
            if session_id:
                result.session_id = session_id
            self._results[result.session_id] = result
            return result

    def start_session(self, root_url: str, session_id: Optional[str] = None) -> Optional[DigestResult]:
        """Register a session unless one with the same id is still running; None if it is"""
        with self._lock:
            if session_id and self.is_active(session_id):
                return None
            return self.create_session(root_url, session_id)

    def save(self, result: DigestResult) -> None:
        with self._lock:
            result.updated_at = datetime.now()
            self._results[result.session_id] = result

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            result = self._results.get(session_id)
            return result.to_dict() if result else None

    def get_result(self, session_id: str) -> Optional[DigestResult]:
        with self._lock:
            return self._results.get(session_id)

    def is_active(self, session_id: str) -> bool:
        """True while the session is still pending or crawling"""
        with self._lock:
            result = self._results.get(session_id)
            return bool(result) and result.status in (DigestStatus.PENDING, DigestStatus.CRAWLING)


class CrawlGuard:
    """One in-flight crawl per process, plus a short-lived cache of the last result.

    acquire() answers "acquired", "in_progress" (same URL already running) or
    "busy" (a different URL is running).
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._active_url: Optional[str] = None
        self._last: Optional[Tuple[Tuple[str, Optional[int]], float, Dict[str, Any]]] = None

    def cached(self, url: str, max_pages: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Last successful payload for this (url, max_pages) while it is fresh"""
        with self._lock:
            if self._last is None:
                return None
            cached_key, finished_at, payload = self._last
            if cached_key != (url, max_pages) or self._clock() - finished_at >= self.ttl_seconds:
                return None
            return payload

    def acquire(self, url: str) -> str:
        with self._lock:
            if self._active_url is None:
                self._active_url = url
                return "acquired"
            return "in_progress" if self._active_url == url else "busy"

    def release(self, url: str, payload: Optional[Dict[str, Any]] = None,
                max_pages: Optional[int] = None) -> None:
        """Free the slot; a successful payload is cached for (url, max_pages)"""
        with self._lock:
            if self._active_url == url:
                self._active_url = None
            if payload is not None:
                self._last = ((url, max_pages), self._clock(), payload)

    @property
    def active_url(self) -> Optional[str]:
        with self._lock:
            return self._active_url


# Global instances
_digest_store = None
_crawl_guard = None
_store_lock = threading.Lock()

def get_digest_store() -> MemoryDigestStore:
    """Get the global session store instance"""
    global _digest_store
    with _store_lock:
        if _digest_store is None:
            _digest_store = MemoryDigestStore()
        return _digest_store

def get_crawl_guard() -> CrawlGuard:
    """Get the global crawl guard instance"""
    global _crawl_guard
    with _store_lock:
        if _crawl_guard is None:
            _crawl_guard = CrawlGuard()
        return _crawl_guard

def reset_stores() -> None:
    """Reset the global store and guard (useful for testing)"""
    global _digest_store, _crawl_guard
    with _store_lock:
        _digest_store = MemoryDigestStore()
        _crawl_guard = CrawlGuard()
