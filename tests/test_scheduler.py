import asyncio

import pytest

from conftest import StubOrchestrator
from order_sync.core.exceptions import ConfigurationError
from order_sync.models.order import ShopOrderSet
from order_sync.services.fetch_orchestrator import FetchResult
from order_sync.services.normalizer import normalize_many
from order_sync.services.order_store import OrderStore
from order_sync.services.sync_scheduler import POLL_JOB_ID, SyncScheduler
from order_sync.services.sync_service import SyncService


def _result(make_raw_order, *ids):
    orders = normalize_many([make_raw_order(i) for i in ids], "S1")
    return FetchResult(shops=[ShopOrderSet(shop_id="S1", shop_name="Shop", orders=orders)], total_orders=len(orders))


@pytest.fixture
def orchestrator(make_raw_order):
    return StubOrchestrator([_result(make_raw_order, 1, 2)])


@pytest.fixture
async def scheduler(orchestrator, cache_store, settings):
    service = SyncService(orchestrator, cache_store, OrderStore(), settings)
    scheduler = SyncScheduler(service, poll_interval_seconds=3600)
    yield scheduler
    await scheduler.stop()


@pytest.mark.asyncio
async def test_cold_start_with_empty_cache_syncs_in_background(scheduler, orchestrator):
    await scheduler.start(start_polling=False)
    await asyncio.gather(*list(scheduler.service._background))

    assert orchestrator.calls == 1
    assert scheduler.service.history[0].sync_type == "startup"
    assert len(scheduler.service.order_store.orders) == 2
    assert not scheduler.is_polling


@pytest.mark.asyncio
async def test_cold_start_with_fresh_cache_skips_sync(scheduler, orchestrator, cache_store, make_raw_order):
    orders = normalize_many([make_raw_order(1)], "S1")
    await cache_store.save(orders, [ShopOrderSet(shop_id="S1", shop_name="Shop", orders=orders)])

    await scheduler.start(start_polling=False)

    assert orchestrator.calls == 0
    assert [o.id for o in scheduler.service.order_store.orders] == ["1"]


@pytest.mark.asyncio
async def test_polling_can_be_started_and_stopped(scheduler):
    scheduler.start_polling()

    assert scheduler.is_running
    assert scheduler.is_polling
    assert scheduler.scheduler.get_job(POLL_JOB_ID) is not None
    assert scheduler.get_next_poll_time() is not None

    scheduler.stop_polling()

    assert not scheduler.is_polling
    assert scheduler.get_next_poll_time() is None


@pytest.mark.asyncio
async def test_start_polling_replaces_interval(scheduler):
    scheduler.start_polling()
    scheduler.start_polling(interval_seconds=60)

    job = scheduler.scheduler.get_job(POLL_JOB_ID)
    assert job.trigger.interval.total_seconds() == 60
    assert len(scheduler.scheduler.get_jobs()) == 1


@pytest.mark.asyncio
async def test_poll_runs_incremental_sync(scheduler, orchestrator):
    await scheduler._run_poll()

    run = scheduler.service.history[0]
    assert run.sync_type == "poll"
    assert run.added == 2
    assert orchestrator.calls == 1


@pytest.mark.asyncio
async def test_poll_is_dropped_while_sync_in_flight(scheduler, orchestrator):
    scheduler.service._in_flight = 1

    await scheduler._run_poll()

    assert orchestrator.calls == 0
    assert scheduler.service.history == []


@pytest.mark.asyncio
async def test_poll_without_credentials_is_skipped(scheduler, orchestrator):
    orchestrator.error = ConfigurationError("No API credentials configured")

    await scheduler._run_poll()

    assert scheduler.service.history[0].success is False
