import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from app.config import settings
from app.core.database import AsyncSessionLocal

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
BALANCE = "balance"
CATEGORIES = "categories"
GOALS = "goals"
BILLS = "bills"
MONTHLY_REPORT = "monthly-report"
ACTIVITY_LOG = "activity-log"

ALL_BUCKETS = (TRANSACTIONS, BALANCE, CATEGORIES, GOALS, BILLS, MONTHLY_REPORT, ACTIVITY_LOG)

Loader = Callable[..., Awaitable[Any]]


@dataclass
class CacheEntry:
    key: tuple
    loader: Loader
    stale_time: float
    refetch_interval: float | None = None
    data: Any = None
    status: str = "pending"
    error: Exception | None = None
    updated_at: float = 0.0
    accessed_at: float = 0.0
    invalidated: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def bucket(self) -> str:
        return self.key[0]

    @property
    def user_id(self) -> str:
        return self.key[1]

    @property
    def params(self) -> tuple:
        return self.key[2:]


class QueryCache:
    """User-scoped query cache keyed by (bucket, user_id, *params).

    Reads are served from memory until the entry goes stale or is invalidated.
    Loaders receive an AsyncSession plus the user id and params; refetches that
    happen outside a request open their own session from ``session_factory``.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(QueryCache, cls).__new__(cls)
            cls._instance._entries = {}
            cls._instance.session_factory = AsyncSessionLocal
            cls._instance.clock = time.monotonic
        return cls._instance

    def _matching(self, bucket: str | None, user_id: str | None) -> list[CacheEntry]:
        return [
            e for e in self._entries.values()
            if (bucket is None or e.bucket == bucket) and (user_id is None or e.user_id == user_id)
        ]

    def is_stale(self, entry: CacheEntry) -> bool:
        if entry.invalidated or entry.status != "success":
            return True
        return (self.clock() - entry.updated_at) >= entry.stale_time

    async def fetch(
            self,
            bucket: str,
            user_id: str,
            loader: Loader,
            *,
            db=None,
            params: tuple = (),
            stale_time: float | None = None,
            refetch_interval: float | None = None,
    ):
        key = (bucket, user_id, *params)
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(
                key=key,
                loader=loader,
                stale_time=settings.CACHE_STALE_SECONDS if stale_time is None else stale_time,
                refetch_interval=refetch_interval,
            )
            self._entries[key] = entry

        entry.accessed_at = self.clock()
        if not self.is_stale(entry):
            return entry.data

        await self._load(entry, db)
        if entry.status == "error":
            raise entry.error
        return entry.data

    async def _load(self, entry: CacheEntry, db=None):
        async with entry.lock:
            entry.status = "pending" if entry.updated_at == 0.0 else entry.status
            try:
                if db is not None:
                    data = await entry.loader(db, entry.user_id, *entry.params)
                else:
                    async with self.session_factory() as session:
                        data = await entry.loader(session, entry.user_id, *entry.params)
            except Exception as e:
                entry.status = "error"
                entry.error = e
                logger.warning("Query %s failed: %s", ":".join(map(str, entry.key)), e)
                return
            entry.data = data
            entry.status = "success"
            entry.error = None
            entry.invalidated = False
            entry.updated_at = self.clock()

    async def invalidate(self, bucket: str, user_id: str) -> int:
        """Marks every entry of the bucket (any params) stale. Idempotent."""
        entries = self._matching(bucket, user_id)
        for entry in entries:
            entry.invalidated = True
        return len(entries)

    async def refetch(self, bucket: str, user_id: str) -> int:
        entries = self._matching(bucket, user_id)
        await asyncio.gather(*(self._load(e) for e in entries))
        return len(entries)

    def entry(self, bucket: str, user_id: str, params: tuple = ()) -> CacheEntry | None:
        return self._entries.get((bucket, user_id, *params))

    def peek(self, bucket: str, user_id: str, params: tuple = ()):
        entry = self.entry(bucket, user_id, params)
        return entry.data if entry is not None else None

    def clear(self, user_id: str | None = None) -> int:
        if user_id is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        keys = [k for k, e in self._entries.items() if e.user_id == user_id]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def stats(self, user_id: str | None = None) -> dict:
        entries = self._matching(None, user_id)
        now = self.clock()
        return {
            "total_queries": len(entries),
            "stale_queries": sum(1 for e in entries if self.is_stale(e)),
            # an entry counts as observed while it was read within its freshness window
            "active_queries": sum(1 for e in entries if now - e.accessed_at < e.stale_time),
            "error_queries": sum(1 for e in entries if e.status == "error"),
            "loading_queries": sum(1 for e in entries if e.status == "pending"),
        }

    async def refetch_due(self) -> int:
        now = self.clock()
        due = [
            e for e in self._entries.values()
            if e.refetch_interval is not None and now - e.updated_at >= e.refetch_interval
        ]
        await asyncio.gather(*(self._load(e) for e in due))
        return len(due)

    async def run_refetch_loop(self, poll_seconds: float = 5.0):
        while True:
            await asyncio.sleep(poll_seconds)
            try:
                count = await self.refetch_due()
            except Exception as e:
                logger.error("Periodic refetch failed: %s", e)
                continue
            if count:
                logger.debug("Periodic refetch refreshed %d queries", count)


query_cache = QueryCache()
