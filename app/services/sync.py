import asyncio
import logging

from app.config import settings
from app.core.cache import (
    ACTIVITY_LOG, ALL_BUCKETS, BALANCE, BILLS, CATEGORIES, GOALS, MONTHLY_REPORT, TRANSACTIONS,
    QueryCache, query_cache,
)

logger = logging.getLogger(__name__)

# Derived views the cache cannot discover on its own
DEPENDENT_BUCKETS = {
    TRANSACTIONS: (BALANCE, MONTHLY_REPORT, ACTIVITY_LOG),
    CATEGORIES: (TRANSACTIONS,),
    BILLS: (ACTIVITY_LOG,),
    GOALS: (ACTIVITY_LOG,),
}

FINANCIAL_BUCKETS = (TRANSACTIONS, BALANCE, MONTHLY_REPORT, ACTIVITY_LOG)


def dependent_closure(bucket: str) -> list[str]:
    seen = [bucket]
    pending = list(DEPENDENT_BUCKETS.get(bucket, ()))
    while pending:
        current = pending.pop(0)
        if current in seen:
            continue
        seen.append(current)
        pending.extend(DEPENDENT_BUCKETS.get(current, ()))
    return seen


async def invalidate_with_dependents(bucket: str, user_id: str, cache: QueryCache | None = None):
    cache = cache or query_cache
    await asyncio.gather(*(cache.invalidate(b, user_id) for b in dependent_closure(bucket)))


class DataSync:
    """Coarse and fine grained invalidation over the named cache buckets of one user."""

    def __init__(
            self,
            cache: QueryCache | None = None,
            settle_seconds: float | None = None,
            financial_settle_seconds: float | None = None,
    ):
        self.cache = cache or query_cache
        self.settle_seconds = settings.SYNC_SETTLE_SECONDS if settle_seconds is None else settle_seconds
        self.financial_settle_seconds = (
            settings.SYNC_FINANCIAL_SETTLE_SECONDS if financial_settle_seconds is None else financial_settle_seconds
        )

    async def _invalidate(self, user_id: str, buckets) -> None:
        await asyncio.gather(*(self.cache.invalidate(b, user_id) for b in buckets))

    async def _refetch(self, user_id: str, buckets) -> None:
        await asyncio.gather(*(self.cache.refetch(b, user_id) for b in buckets))

    async def sync_all_data(self, user_id: str) -> None:
        await self._invalidate(user_id, ALL_BUCKETS)
        await asyncio.sleep(self.settle_seconds)
        await self._refetch(user_id, (TRANSACTIONS, BALANCE, ACTIVITY_LOG))
        logger.info("Full data sync finished for user %s", user_id)

    async def sync_financial_data(self, user_id: str) -> None:
        await self._invalidate(user_id, FINANCIAL_BUCKETS)
        await asyncio.sleep(self.financial_settle_seconds)
        await self._refetch(user_id, (TRANSACTIONS, BALANCE))
        logger.info("Financial data sync finished for user %s", user_id)

    async def sync_categories(self, user_id: str) -> None:
        await self._invalidate(user_id, (CATEGORIES, TRANSACTIONS))
        logger.info("Categories synced for user %s", user_id)

    async def sync_goals(self, user_id: str) -> None:
        await self.cache.invalidate(GOALS, user_id)
        logger.info("Goals synced for user %s", user_id)

    async def sync_bills(self, user_id: str) -> None:
        await self.cache.invalidate(BILLS, user_id)
        logger.info("Bills synced for user %s", user_id)

    async def force_refresh(self, user_id: str, bucket: str) -> None:
        if bucket not in ALL_BUCKETS:
            raise ValueError(f"Unknown cache bucket: {bucket}")
        await self.cache.invalidate(bucket, user_id)
        logger.info("Query %s forced to refresh", bucket)

    def clear_all_cache(self, user_id: str | None = None) -> int:
        removed = self.cache.clear(user_id)
        logger.info("Cache cleared (%d queries)", removed)
        return removed

    def get_cache_stats(self, user_id: str | None = None) -> dict:
        return self.cache.stats(user_id)


data_sync = DataSync()
