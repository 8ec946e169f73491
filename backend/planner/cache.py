"""
Time-bounded caches used by the recommendation engines.

- TTLCache: keyed memoization with a per-entry time to live.
- ContextCache: per-user cache of assistant context with hit/miss
  statistics and oldest-first eviction when full.

Both are in-process and guarded by a lock so they can be shared between
request threads. Clocks are injectable (seconds, monotonic by default).
"""

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _json_size(value: Any) -> int:
    return len(json.dumps(value, default=str))


# ==================== TTL memoization ====================

@dataclass
class _TTLEntry:
    value: Any
    stored_at: float
    ttl: float


class TTLCache:
    """
    Memoize computed values for a limited time.

    A cached value is served while ``now - stored_at < ttl``; afterwards the
    next call recomputes and replaces it. Expired entries are swept once
    ``cleanup_interval`` seconds have passed since the last sweep, and the
    oldest entry is evicted when ``max_entries`` is reached.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_entries: int = 1000,
        cleanup_interval: float = 60,
        clock: Clock = time.monotonic
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: Dict[str, _TTLEntry] = {}
        self._lock = threading.RLock()
        self._last_cleanup = clock()
        self.hits = 0
        self.misses = 0

    def memoize_with_ttl(self, key: str, fn: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None and now - entry.stored_at < entry.ttl:
                self.hits += 1
                return entry.value

            self.misses += 1
            value = fn()
            if now - self._last_cleanup >= self.cleanup_interval:
                self.clean_expired_cache()
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict_oldest_entry()
            self._entries[key] = _TTLEntry(value=value, stored_at=now, ttl=ttl)
            return value

    def clean_expired_cache(self) -> int:
        """Drop every entry whose age reached its TTL. Returns how many went."""
        with self._lock:
            now = self._clock()
            self._last_cleanup = now
            expired = [
                key for key, entry in self._entries.items()
                if now - entry.stored_at >= entry.ttl
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("TTLCache: removed %d expired entries", len(expired))
        return len(expired)

    def _evict_oldest_entry(self) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda key: self._entries[key].stored_at)
        del self._entries[oldest_key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._clock() - entry.stored_at < entry.ttl

    def stats(self) -> Dict:
        total = self.hits + self.misses
        return {
            'entries': len(self._entries),
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': round(self.hits / total * 100, 2) if total else 0.0,
        }


def measure_performance(
    label: str,
    fn: Callable[[], Any],
    threshold_ms: float = 100.0,
    clock: Clock = time.perf_counter
) -> Any:
    """Run ``fn`` and log a warning if it was slower than ``threshold_ms``."""
    start = clock()
    result = fn()
    elapsed_ms = (clock() - start) * 1000
    if elapsed_ms > threshold_ms:
        logger.warning("Performance warning: %s took %.2fms", label, elapsed_ms)
    return result


# ==================== Context cache ====================

@dataclass
class CacheEntry:
    """A cached assistant context for one user and context type."""
    context: Dict
    timestamp: float
    expires_at: float
    user_id: str
    context_hash: str
    analysis: Optional[Dict] = None
    hits: int = 0


@dataclass
class CacheStats:
    total_entries: int
    hit_rate: float
    miss_rate: float
    avg_age: float
    memory_usage: int

    def to_dict(self) -> Dict:
        return {
            'total_entries': self.total_entries,
            'hit_rate': round(self.hit_rate, 2),
            'miss_rate': round(self.miss_rate, 2),
            'avg_age_seconds': round(self.avg_age, 2),
            'memory_usage_kb': self.memory_usage,
        }


class ContextCache:
    """
    Cache of per-user assistant context.

    Entries are keyed by ``user_id:context_type``. Re-storing an unchanged
    context (same hash) only extends its expiry. When the cache is full the
    entry with the oldest timestamp is evicted. Expired entries are swept
    lazily once ``cleanup_interval`` seconds have passed since the last sweep.
    """

    def __init__(
        self,
        max_entries: int = 100,
        default_ttl: float = 5 * 60,
        cleanup_interval: float = 60,
        clock: Clock = time.monotonic
    ):
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._last_cleanup = clock()
        self.hit_count = 0
        self.miss_count = 0

    @staticmethod
    def generate_context_hash(context: Dict) -> str:
        """Fingerprint the parts of a context that signal it has changed."""
        key = {
            'user_id': context.get('user_id'),
            'tasks_count': len(context.get('recent_tasks') or []),
            'projects_count': len(context.get('recent_projects') or []),
            'last_update': context.get('last_task_update'),
            'work_pattern': context.get('work_pattern'),
            'time_of_day': context.get('time_of_day'),
        }
        payload = json.dumps(key, sort_keys=True, default=str).encode('utf-8')
        return hashlib.sha1(payload).hexdigest()[:16]

    @staticmethod
    def _key(user_id: str, context_type: str) -> str:
        return f"{user_id}:{context_type}"

    def get(self, user_id: str, context_type: str = 'default') -> Optional[CacheEntry]:
        with self._lock:
            self._maybe_cleanup()
            key = self._key(user_id, context_type)
            entry = self._cache.get(key)

            if entry is None:
                self.miss_count += 1
                return None

            if self._clock() > entry.expires_at:
                del self._cache[key]
                self.miss_count += 1
                return None

            entry.hits += 1
            self.hit_count += 1
            return entry

    def set(
        self,
        user_id: str,
        context: Dict,
        analysis: Optional[Dict] = None,
        context_type: str = 'default',
        ttl: Optional[float] = None
    ) -> None:
        with self._lock:
            self._maybe_cleanup()
            key = self._key(user_id, context_type)
            context_hash = self.generate_context_hash(context)
            ttl = self.default_ttl if ttl is None else ttl
            now = self._clock()

            existing = self._cache.get(key)
            if existing is not None and existing.context_hash == context_hash:
                existing.expires_at = now + ttl
                return

            if existing is None and len(self._cache) >= self.max_entries:
                self._evict_oldest_entry()

            self._cache[key] = CacheEntry(
                context=context,
                analysis=analysis,
                timestamp=now,
                expires_at=now + ttl,
                user_id=user_id,
                context_hash=context_hash,
            )

    def has(self, user_id: str, context_type: str = 'default') -> bool:
        return self.get(user_id, context_type) is not None

    def has_changed(self, user_id: str, context: Dict, context_type: str = 'default') -> bool:
        entry = self.get(user_id, context_type)
        if entry is None:
            return True
        return entry.context_hash != self.generate_context_hash(context)

    def get_with_fallback(
        self,
        user_id: str,
        fallback: Callable[[], Dict],
        context_type: str = 'default'
    ) -> Dict:
        """Return the cached context, building and caching it on a miss."""
        cached = self.get(user_id, context_type)
        if cached is not None:
            return cached.context

        context = fallback()
        self.set(user_id, context, context_type=context_type)
        return context

    def invalidate(self, user_id: str, context_type: Optional[str] = None) -> int:
        """Drop one context type for a user, or all of them. Returns the count."""
        with self._lock:
            if context_type is not None:
                return 1 if self._cache.pop(self._key(user_id, context_type), None) else 0

            keys = [key for key, entry in self._cache.items() if entry.user_id == user_id]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.hit_count = 0
            self.miss_count = 0

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> CacheStats:
        with self._lock:
            total_requests = self.hit_count + self.miss_count
            entries = list(self._cache.values())
            now = self._clock()

            avg_age = (
                sum(now - entry.timestamp for entry in entries) / len(entries)
                if entries else 0.0
            )
            memory = sum(
                _json_size(entry.context) + (_json_size(entry.analysis) if entry.analysis else 0)
                for entry in entries
            )

            return CacheStats(
                total_entries=len(entries),
                hit_rate=(self.hit_count / total_requests) * 100 if total_requests else 0.0,
                miss_rate=(self.miss_count / total_requests) * 100 if total_requests else 0.0,
                avg_age=avg_age,
                memory_usage=round(memory / 1024),
            )

    def get_popular_entries(self, limit: int = 5) -> List[Dict]:
        with self._lock:
            now = self._clock()
            popular = [
                {'key': key, 'hits': entry.hits, 'age': round(now - entry.timestamp, 2)}
                for key, entry in self._cache.items()
            ]
        popular.sort(key=lambda item: item['hits'], reverse=True)
        return popular[:limit]

    def cleanup(self) -> int:
        """Remove expired entries now. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            self._last_cleanup = now
            expired = [key for key, entry in self._cache.items() if now > entry.expires_at]
            for key in expired:
                del self._cache[key]

        if expired:
            logger.info("ContextCache: cleaned up %d expired entries", len(expired))
        return len(expired)

    def _maybe_cleanup(self) -> None:
        if self._clock() - self._last_cleanup >= self.cleanup_interval:
            self.cleanup()

    def _evict_oldest_entry(self) -> None:
        if not self._cache:
            return
        oldest_key = min(self._cache, key=lambda key: self._cache[key].timestamp)
        del self._cache[oldest_key]
        logger.debug("ContextCache: evicted %s", oldest_key)
