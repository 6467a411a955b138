"""
Tests for SchedulerService: ticks with hook calls, run-once and scheduled mode.
"""

import asyncio
from datetime import timedelta
from unittest.mock import patch

import httpx
import pytest

from fetcher.backoff import BackoffPlanner
from fetcher.models import FetchStatus
from scheduler.models import SchedulerConfig
from scheduler.scheduler_service import SchedulerService
from utilities.watchlist import FeedConfig, WatchList

FEED_URL = "https://example.com/feed.xml"
HUB_SOURCE = "docker-hub://library/python"
HOOK = "https://ci.example.com/hooks/rebuild"
SECOND_HOOK = "https://ci.example.com/hooks/docs"
INTERVAL = timedelta(minutes=30)


async def wait_until(predicate, timeout: float = 5.0) -> None:
    """Poll `predicate` until it holds or the timeout expires."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(_poll(), timeout)


class FakeRemote:
    """Serves a mutable feed and records hook calls."""
    
    def __init__(self, feed_body: bytes, hub_body: bytes = b'{"results": []}'):
        self.feed_body = feed_body
        self.hub_body = hub_body
        self.hook_calls = []
        self.fetches = 0
    
    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.hook_calls.append(request)
            return httpx.Response(200)
        self.fetches += 1
        if request.url.host == "hub.docker.com":
            return httpx.Response(200, content=self.hub_body)
        return httpx.Response(200, content=self.feed_body)


class BlockingRemote:
    """Holds every GET open until released."""
    
    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
    
    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.started.set()
        await self.release.wait()
        return httpx.Response(200)


class TestSchedulerService:
    """Test cases for SchedulerService."""
    
    @pytest.fixture
    def scheduler_config(self):
        return SchedulerConfig(interval=INTERVAL, rate_limit_per_second=100)
    
    @pytest.fixture
    def make_service(self, make_client, scheduler_config, clock):
        def _make(watch_list, remote):
            planner = BackoffPlanner(base_interval=INTERVAL, clock=clock)
            return SchedulerService(
                watch_list, scheduler_config, client=make_client(remote), planner=planner
            )
        return _make
    
    @pytest.mark.asyncio
    async def test_hook_fires_only_on_change(self, make_service, clock, rss_factory):
        """First observation is silent; a new item triggers the hook."""
        remote = FakeRemote(rss_factory([{"guid": "release-1"}]))
        watch_list = WatchList(feed=[FeedConfig(feed=FEED_URL, hook=HOOK, body={"ref": "main"})])
        service = make_service(watch_list, remote)
        
        summary = await service.run_tick()
        assert summary.sources_fetched == 1
        assert summary.changes_detected == 0
        assert remote.hook_calls == []
        
        clock.advance(minutes=30)
        remote.feed_body = rss_factory([{"guid": "release-2"}, {"guid": "release-1"}])
        summary = await service.run_tick()
        
        assert summary.changes_detected == 1
        assert summary.notifications_sent == 1
        assert len(remote.hook_calls) == 1
        assert str(remote.hook_calls[0].url) == HOOK
    
    @pytest.mark.asyncio
    async def test_not_due_sources_are_counted_as_skipped(self, make_service, clock, rss_factory):
        remote = FakeRemote(rss_factory([{"guid": "release-1"}]))
        service = make_service(WatchList(feed=[FeedConfig(feed=FEED_URL, hook=HOOK)]), remote)
        
        await service.run_tick()
        clock.advance(minutes=10)
        summary = await service.run_tick()
        
        assert summary.sources_skipped == 1
        assert summary.sources_fetched == 0
        assert remote.fetches == 1
    
    @pytest.mark.asyncio
    async def test_shared_source_calls_every_hook(self, make_service, clock, rss_factory):
        """Feeds watching the same address are fetched once and all notified."""
        remote = FakeRemote(rss_factory([{"guid": "release-1"}]))
        watch_list = WatchList(feed=[
            FeedConfig(feed=FEED_URL, hook=HOOK),
            FeedConfig(feed=FEED_URL, hook=SECOND_HOOK),
        ])
        service = make_service(watch_list, remote)
        
        await service.run_tick()
        clock.advance(minutes=30)
        remote.feed_body = rss_factory([{"guid": "release-2"}])
        summary = await service.run_tick()
        
        assert remote.fetches == 2
        assert summary.notifications_sent == 2
        assert {str(call.url) for call in remote.hook_calls} == {HOOK, SECOND_HOOK}
    
    @pytest.mark.asyncio
    async def test_errors_collected_in_summary(self, make_service, rss_factory):
        """Per-source failures are reported without stopping the tick."""
        remote = FakeRemote(b"not a feed")
        watch_list = WatchList(feed=[
            FeedConfig(feed=FEED_URL, hook=HOOK),
            FeedConfig(feed="docker-hub://not-a-coordinate", hook=HOOK),
            FeedConfig(feed=HUB_SOURCE, hook=HOOK),
        ])
        service = make_service(watch_list, remote)
        
        summary = await service.run_tick()
        
        assert summary.sources_fetched == 3
        assert len(summary.errors) == 2
        assert not summary.success
        assert remote.fetches == 2
    
    @pytest.mark.asyncio
    async def test_run_once_closes_client(self, make_service, rss_factory):
        """Run-once mode performs one tick and closes the HTTP client."""
        remote = FakeRemote(rss_factory([{"guid": "release-1"}]))
        service = make_service(WatchList(feed=[FeedConfig(feed=FEED_URL, hook=HOOK)]), remote)
        
        with patch.object(service, "run_tick", wraps=service.run_tick) as run_tick:
            await service.start(run_once=True)
        
        run_tick.assert_awaited_once()
        assert remote.fetches == 1
        assert service.client.is_closed
    
    @pytest.mark.asyncio
    async def test_hub_listing_change(self, make_service, clock, hub_tags_factory):
        """Registry sources notify when the tag listing changes."""
        remote = FakeRemote(b"", hub_tags_factory([(1, "latest", "2025-01-06T10:00:00Z")]))
        service = make_service(WatchList(feed=[FeedConfig(feed=HUB_SOURCE, hook=HOOK)]), remote)
        
        await service.run_tick()
        clock.advance(minutes=30)
        remote.hub_body = hub_tags_factory([(1, "latest", "2025-01-07T10:00:00Z")])
        
        results = [result async for result in service.feed_scheduler.tick(service.watch_list.sources)]
        
        assert results[0].status == FetchStatus.FETCHED
        assert results[0].notify is True
    
    def test_default_client_uses_user_agent(self, scheduler_config):
        """Without an injected client the service sends the configured User-Agent."""
        service = SchedulerService(WatchList(), scheduler_config)
        
        assert service.client.headers["User-Agent"] == scheduler_config.user_agent
        assert service.planner.base_interval == INTERVAL


class TestScheduledMode:
    """Test cases for the recurring APScheduler mode."""
    
    @pytest.fixture
    def make_service(self, make_client, clock):
        def _make(remote):
            config = SchedulerConfig(interval=INTERVAL, rate_limit_per_second=100)
            planner = BackoffPlanner(base_interval=INTERVAL, clock=clock)
            watch_list = WatchList(feed=[FeedConfig(feed=FEED_URL, hook=HOOK)])
            return SchedulerService(watch_list, config, client=make_client(remote), planner=planner)
        return _make
    
    @pytest.mark.asyncio
    async def test_first_tick_runs_immediately_and_stop_closes(self, make_service, rss_factory):
        """The job fires on start; stop shuts the scheduler down and closes the client."""
        remote = FakeRemote(rss_factory([{"guid": "release-1"}]))
        service = make_service(remote)
        
        task = asyncio.create_task(service.start())
        await wait_until(lambda: remote.fetches == 1 and service._current_tick is None)
        
        job = service.scheduler.get_job("feed_tick")
        assert job.max_instances == 1
        assert job.coalesce is True
        
        service.stop()
        await asyncio.wait_for(task, timeout=5)
        
        assert remote.fetches == 1
        assert service.client.is_closed
        assert not service.scheduler.running
    
    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_tick(self, make_service, clock):
        """A tick blocked in a fetch is cancelled without touching source state."""
        remote = BlockingRemote()
        service = make_service(remote)
        
        task = asyncio.create_task(service.start())
        await asyncio.wait_for(remote.started.wait(), timeout=5)
        tick = service._current_tick
        
        service.stop()
        await asyncio.wait_for(task, timeout=5)
        await asyncio.wait([tick], timeout=5)
        
        assert tick.done()
        assert service._current_tick is None
        plan = service.feed_scheduler.plans[FEED_URL]
        assert plan.next_eligible_time == clock()
        assert plan.validators.is_empty()
        assert FEED_URL not in service.feed_scheduler.store
        assert service.client.is_closed
