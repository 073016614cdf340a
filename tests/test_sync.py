import pytest

from app.core.cache import (
    ACTIVITY_LOG, ALL_BUCKETS, BALANCE, BILLS, CATEGORIES, GOALS, MONTHLY_REPORT, TRANSACTIONS, query_cache,
)
from app.services.sync import DataSync, dependent_closure, invalidate_with_dependents


class CountingLoader:
    def __init__(self):
        self.calls = 0

    async def __call__(self, db, user_id, *params):
        self.calls += 1
        return self.calls


@pytest.fixture
async def loaders(clock, session_factory):
    loaders = {}
    for user_id in ("u1", "u2"):
        for bucket in ALL_BUCKETS:
            loader = CountingLoader()
            loaders[(bucket, user_id)] = loader
            await query_cache.fetch(bucket, user_id, loader, db=object())
    return loaders


@pytest.fixture
def sync():
    return DataSync(cache=query_cache, settle_seconds=0, financial_settle_seconds=0)


def stale(bucket, user_id="u1"):
    return query_cache.is_stale(query_cache.entry(bucket, user_id))


def test_dependent_closure_follows_edges_transitively():
    assert dependent_closure(CATEGORIES) == [CATEGORIES, TRANSACTIONS, BALANCE, MONTHLY_REPORT, ACTIVITY_LOG]
    assert dependent_closure(GOALS) == [GOALS, ACTIVITY_LOG]
    assert dependent_closure(BALANCE) == [BALANCE]


async def test_invalidate_with_dependents_marks_derived_views(loaders):
    await invalidate_with_dependents(BILLS, "u1")

    assert stale(BILLS)
    assert stale(ACTIVITY_LOG)
    assert not stale(TRANSACTIONS)
    assert not stale(BILLS, "u2")


async def test_sync_all_data_invalidates_everything_and_refetches_core(loaders, sync):
    await sync.sync_all_data("u1")

    for bucket in (TRANSACTIONS, BALANCE, ACTIVITY_LOG):
        assert loaders[(bucket, "u1")].calls == 2
        assert not stale(bucket)
    for bucket in (CATEGORIES, GOALS, BILLS, MONTHLY_REPORT):
        assert loaders[(bucket, "u1")].calls == 1
        assert stale(bucket)
    assert not any(stale(b, "u2") for b in ALL_BUCKETS)


async def test_sync_financial_data_touches_only_financial_buckets(loaders, sync):
    await sync.sync_financial_data("u1")

    assert loaders[(TRANSACTIONS, "u1")].calls == 2
    assert loaders[(BALANCE, "u1")].calls == 2
    assert stale(MONTHLY_REPORT)
    assert stale(ACTIVITY_LOG)
    assert not stale(CATEGORIES)
    assert not stale(GOALS)
    assert not stale(BILLS)


async def test_sync_categories_also_invalidates_transactions(loaders, sync):
    await sync.sync_categories("u1")

    assert stale(CATEGORIES)
    assert stale(TRANSACTIONS)
    assert not stale(BALANCE)


async def test_force_refresh_rejects_unknown_bucket(loaders, sync):
    await sync.force_refresh("u1", GOALS)
    assert stale(GOALS)

    with pytest.raises(ValueError):
        await sync.force_refresh("u1", "cards")


async def test_clear_all_cache_and_stats(loaders, sync):
    assert sync.get_cache_stats("u1")["total_queries"] == len(ALL_BUCKETS)

    removed = sync.clear_all_cache("u1")

    assert removed == len(ALL_BUCKETS)
    assert sync.get_cache_stats("u1")["total_queries"] == 0
    assert sync.get_cache_stats("u2")["total_queries"] == len(ALL_BUCKETS)
