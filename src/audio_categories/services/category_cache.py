"""
Read-through query cache for category listings.

Thread-safe cache for tree, flat, by-parent and count queries with a TTL
per entry, explicit invalidation on mutation, and instrumentation (hit and
miss counters, rolling execution log, slow-query list). Each process wires
up its own instance; nothing here is a module-level singleton.
"""

import logging
import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

from audio_categories.models.enums import QueryType
from audio_categories.services.dto import (
    DEFAULT_WARMUP_QUERIES,
    BenchmarkEntry,
    BenchmarkResult,
    CacheStats,
    QueryExecution,
    QuerySpec,
    WarmupEntry,
    WarmupResult,
)
from audio_categories.services.logging_utils import get_service_logger, log_operation
from audio_categories.utils.config import Config, get_config
from audio_categories.utils.datetime_utils import elapsed_ms, monotonic_ms, utc_now

logger = get_service_logger(__name__)

Loader = Callable[[QuerySpec], Any]


@dataclass
class _CacheEntry:
    spec: QuerySpec
    value: Any
    stored_at: float


def _result_count(value: Any) -> int:
    try:
        return len(value)
    except TypeError:
        return 1


class CategoryQueryCache:
    """
    Thread-safe cache for category read queries.

    Entries expire ttl_seconds after they were stored; expired entries are
    recomputed on next access and dropped by purge_expired(). The store is
    bounded to max_entries, evicting the oldest entry first.

    A value computed during a miss is only stored if no invalidation ran
    while it was being computed, so a reader can never re-insert a value
    that predates a committed write.

    Args:
        ttl_seconds: Entry time-to-live
        max_entries: Maximum number of cached queries
        slow_query_threshold_ms: Executions slower than this are flagged
        execution_log_size: Length of the rolling execution log
        slow_query_log_size: Length of the slow-query list
        clock: Monotonic clock in seconds used for expiry
    """

    def __init__(
        self,
        ttl_seconds: float = 600,
        max_entries: int = 100,
        slow_query_threshold_ms: float = 100.0,
        execution_log_size: int = 50,
        slow_query_log_size: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._generation = 0

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._recent: deque = deque(maxlen=execution_log_size)
        self._slow: deque = deque(maxlen=slow_query_log_size)

    @classmethod
    def from_config(cls, config: Optional[Config] = None, **overrides) -> "CategoryQueryCache":
        """Build a cache from the application configuration."""
        config = config or get_config()
        settings = {
            "ttl_seconds": config.cache_ttl_seconds,
            "max_entries": config.cache_max_entries,
            "slow_query_threshold_ms": config.slow_query_threshold_ms,
            "execution_log_size": config.execution_log_size,
            "slow_query_log_size": config.slow_query_log_size,
        }
        settings.update(overrides)
        return cls(**settings)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def _is_expired(self, entry: _CacheEntry, now: float) -> bool:
        return now - entry.stored_at >= self.ttl

    def get(self, spec: QuerySpec) -> Optional[Any]:
        """Cached value if present and not expired. Does not touch counters."""
        key = spec.cache_key()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def get_or_compute(self, spec: QuerySpec, compute: Callable[[], Any]) -> Any:
        """
        Return the cached value for spec, computing and storing it on a miss.

        Errors raised by compute propagate unchanged and nothing is stored.

        Args:
            spec: Query to serve
            compute: Zero-argument callable producing a fresh value

        Returns:
            The (cached or fresh) query result
        """
        key = spec.cache_key()
        start = monotonic_ms()

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not self._is_expired(entry, self._clock()):
                self._hits += 1
                self._record(key, spec, elapsed_ms(start), True, entry.value)
                logger.debug(f"Cache hit: {key}")
                return entry.value
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            generation = self._generation

        value = compute()

        with self._lock:
            if generation == self._generation:
                self._store(key, spec, value)
            self._record(key, spec, elapsed_ms(start), False, value)
        return value

    def _store(self, key: str, spec: QuerySpec, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = _CacheEntry(spec, value, self._clock())
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Cache evicted oldest entry: {evicted}")

    def _record(self, key: str, spec: QuerySpec, elapsed: float, hit: bool, value: Any) -> None:
        slow = elapsed > self.slow_query_threshold_ms
        execution = QueryExecution(
            key=key,
            query_type=spec.query_type,
            elapsed_ms=elapsed,
            cache_hit=hit,
            result_count=_result_count(value),
            timestamp=utc_now(),
            slow=slow,
        )
        self._recent.append(execution)
        if slow:
            self._slow.append(execution)
            log_operation(
                logger,
                operation="category_query",
                outcome="slow",
                level=logging.WARNING,
                key=key,
                elapsed_ms=round(elapsed, 2),
            )

    # ------------------------------------------------------------------
    # Invalidation and maintenance
    # ------------------------------------------------------------------

    def invalidate(self, affected_parent_ids: Optional[Iterable[Optional[int]]] = None) -> int:
        """
        Drop entries that a committed write could have changed.

        Whole-listing entries (tree, flat, counts) are always dropped.
        By-parent entries are dropped when their parent is in
        affected_parent_ids (None in that set means the root group).
        By-parent entries carrying audio counts are always dropped, since a
        level-1 count includes the audio of its sub-categories and so moves
        whenever any sub-category moves or goes away.
        Passing None drops everything.

        Returns:
            Number of entries removed
        """
        with self._lock:
            self._generation += 1
            if affected_parent_ids is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                affected = set(affected_parent_ids)
                doomed = [
                    key
                    for key, entry in self._entries.items()
                    if entry.spec.query_type != QueryType.BY_PARENT
                    or entry.spec.include_count
                    or entry.spec.parent_id in affected
                ]
                for key in doomed:
                    del self._entries[key]
                removed = len(doomed)

        log_operation(
            logger,
            operation="invalidate_cache",
            outcome="success",
            level=logging.DEBUG,
            removed=removed,
        )
        return removed

    def invalidate_query(self, spec: QuerySpec) -> bool:
        """Drop a single query's entry. Returns True if one was present."""
        with self._lock:
            return self._entries.pop(spec.cache_key(), None) is not None

    def clear(self, reset_stats: bool = False) -> None:
        """Remove all entries, optionally zeroing the instrumentation too."""
        with self._lock:
            self._generation += 1
            self._entries.clear()
            if reset_stats:
                self._hits = 0
                self._misses = 0
                self._evictions = 0
                self._recent.clear()
                self._slow.clear()
        log_operation(logger, operation="clear_cache", outcome="success", reset_stats=reset_stats)

    def purge_expired(self) -> int:
        """Drop expired entries. Returns number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            log_operation(logger, operation="purge_expired", outcome="success", removed=len(expired))
        return len(expired)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self):
        with self._lock:
            return list(self._entries.keys())

    def stats(self) -> CacheStats:
        """Snapshot of the counters and execution logs."""
        with self._lock:
            total = self._hits + self._misses
            recent = list(self._recent)
            average = sum(e.elapsed_ms for e in recent) / len(recent) if recent else 0.0
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                evictions=self._evictions,
                hit_rate=(self._hits / total) if total else 0.0,
                average_latency_ms=average,
                slow_queries=list(self._slow),
                recent_queries=recent,
            )

    # ------------------------------------------------------------------
    # Warm-up and benchmark
    # ------------------------------------------------------------------

    def warm(self, loader: Loader, specs: Optional[Sequence[QuerySpec]] = None) -> WarmupResult:
        """
        Populate the cache for a set of common queries.

        Args:
            loader: Computes a fresh value for a QuerySpec
            specs: Queries to warm (defaults to DEFAULT_WARMUP_QUERIES)

        Returns:
            WarmupResult with the elapsed time of each query
        """
        specs = list(specs) if specs is not None else list(DEFAULT_WARMUP_QUERIES)
        result = WarmupResult()
        for spec in specs:
            start = monotonic_ms()
            value = self.get_or_compute(spec, lambda spec=spec: loader(spec))
            result.entries.append(
                WarmupEntry(spec.cache_key(), elapsed_ms(start), _result_count(value))
            )

        log_operation(
            logger,
            operation="warm_cache",
            outcome="success",
            queries=len(result.entries),
            total_ms=round(result.total_ms, 2),
        )
        return result

    def benchmark(
        self, loader: Loader, specs: Optional[Sequence[QuerySpec]] = None
    ) -> BenchmarkResult:
        """
        Measure cold vs warm latency for each query.

        The cache is cleared first; each query then runs once against an
        empty entry (cold) and once immediately after (warm).

        Args:
            loader: Computes a fresh value for a QuerySpec
            specs: Queries to measure (defaults to DEFAULT_WARMUP_QUERIES)

        Returns:
            BenchmarkResult with per-query latency pairs
        """
        specs = list(specs) if specs is not None else list(DEFAULT_WARMUP_QUERIES)
        self.clear()
        result = BenchmarkResult()
        for spec in specs:
            self.invalidate_query(spec)

            start = monotonic_ms()
            self.get_or_compute(spec, lambda spec=spec: loader(spec))
            cold = elapsed_ms(start)

            start = monotonic_ms()
            self.get_or_compute(spec, lambda spec=spec: loader(spec))
            warm = elapsed_ms(start)

            result.entries.append(BenchmarkEntry(spec.cache_key(), cold, warm))

        log_operation(
            logger,
            operation="benchmark_cache",
            outcome="success",
            queries=len(result.entries),
            efficiency=round(result.cache_efficiency, 3),
        )
        return result

    def describe(self) -> Dict[str, Any]:
        """Plain-dict stats for CLI output."""
        stats = self.stats()
        return {
            "hits": stats.hits,
            "misses": stats.misses,
            "size": stats.size,
            "hitRate": round(stats.hit_rate, 4),
            "evictions": stats.evictions,
            "averageLatencyMs": round(stats.average_latency_ms, 3),
            "slowQueries": [q.key for q in stats.slow_queries],
        }
