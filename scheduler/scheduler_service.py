"""
Polling scheduler for watched sources.

This module provides:
- FeedScheduler: one tick over the watch list (due check, fetch, backoff, change decision)
- SchedulerService: recurring ticks with APScheduler, hook calls and graceful shutdown
"""

import asyncio
import signal
import time
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, Mapping, Optional

import httpx
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from asyncio_throttle import Throttler

from fetcher.backoff import BackoffPlanner, PlanInput
from fetcher.models import ErrorKind, FetchOutcome, FetchStatus, SchedulePlan, Source, SourceKind
from fetcher.readers import RegistryTagReader, SourceReader, SyndicationReader
from scheduler.fingerprinting import FingerprintStore
from scheduler.models import ChangeDecision, SchedulerConfig, TickResult, TickSummary
from scheduler.notifier import WebhookNotifier
from utilities.logger import FetchLogger
from utilities.watchlist import WatchList

logger = structlog.get_logger(__name__)


class FeedScheduler:
    """
    Runs ticks over an ordered list of sources.

    Owns the per-source SchedulePlan map; fingerprints live in the
    FingerprintStore. State for a source is only written after its fetch has
    completed, so cancelling a tick mid-fetch leaves that source untouched.
    """
    
    def __init__(
        self,
        readers: Mapping[SourceKind, SourceReader],
        planner: BackoffPlanner,
        store: Optional[FingerprintStore] = None,
    ):
        """
        Initialize the scheduler.
        
        Args:
            readers: Reader per source kind
            planner: Backoff planner (also the clock)
            store: Fingerprint store
        """
        self.readers = dict(readers)
        self.planner = planner
        self.store = store or FingerprintStore()
        self.plans: Dict[str, SchedulePlan] = {}
        self.fetch_logger = FetchLogger("feed_scheduler")
    
    def plan_for(self, source: Source, now: Optional[datetime] = None) -> SchedulePlan:
        """Current plan of ``source``, creating a due plan on first observation."""
        plan = self.plans.get(source.source_id)
        if plan is None:
            plan = self.planner.first_plan(now)
            self.plans[source.source_id] = plan
        return plan
    
    async def tick(self, sources: Iterable[Source]) -> AsyncIterator[TickResult]:
        """
        Process every source once, in order, yielding one result per source.
        
        Args:
            sources: Sources in configured order
            
        Yields:
            TickResult per source
        """
        tick_time = self.planner.clock()
        for source in sources:
            yield await self.process(source, tick_time)
    
    async def process(self, source: Source, tick_time: Optional[datetime] = None) -> TickResult:
        """
        Process a single source: skip if not due, otherwise fetch and decide.
        
        Args:
            source: Source to process
            tick_time: Start time of the enclosing tick
            
        Returns:
            TickResult for the source
        """
        now = tick_time or self.planner.clock()
        plan = self.plan_for(source, now)
        
        if not plan.is_elapsed(now):
            self.fetch_logger.log_skipped(source.source_id, plan.next_eligible_time.isoformat())
            return TickResult(source=source, next_eligible_time=plan.next_eligible_time)
        
        outcome = await self._fetch(source, plan)
        
        plan_input = PlanInput.from_fetch_outcome(outcome, plan)
        # rate-limit pauses count from the response, regular intervals from the tick
        reference = None if outcome.status == FetchStatus.RATE_LIMITED else now
        new_plan = self.planner.next_plan(plan_input, plan, now=reference)
        self.plans[source.source_id] = new_plan
        
        decision = None
        if outcome.status == FetchStatus.FETCHED:
            decision = self.store.observe(source.source_id, outcome.fingerprint)
        elif outcome.status == FetchStatus.RATE_LIMITED:
            self.fetch_logger.log_rate_limited(source.source_id, new_plan.next_eligible_time.isoformat())
        elif outcome.is_failure:
            self.fetch_logger.log_error(outcome.error or "", source=source.source_id, kind=outcome.error_kind.value)
        
        notify = decision == ChangeDecision.CHANGED
        if notify:
            self.fetch_logger.log_change(source.source_id)
        self.fetch_logger.log_fetch_result(
            source.source_id, outcome.status.value, decision.value if decision else None
        )
        
        return TickResult(
            source=source,
            fetched=True,
            status=outcome.status,
            decision=decision,
            notify=notify,
            error_kind=outcome.error_kind,
            error=outcome.error,
            next_eligible_time=new_plan.next_eligible_time,
        )
    
    async def _fetch(self, source: Source, plan: SchedulePlan) -> FetchOutcome:
        reader = self.readers[source.kind]
        try:
            return await reader.fetch(source.reader_address, plan.validators)
        except Exception as e:
            logger.exception("Unexpected error while fetching source", source=source.source_id)
            return FetchOutcome.failed(ErrorKind.UNEXPECTED, f"Unexpected error: {e}")


class SchedulerService:
    """Recurring polling service: ticks, hook calls and shutdown."""
    
    def __init__(
        self,
        watch_list: WatchList,
        config: SchedulerConfig,
        client: Optional[httpx.AsyncClient] = None,
        planner: Optional[BackoffPlanner] = None,
    ):
        """
        Initialize scheduler service.
        
        Args:
            watch_list: Sources and their hooks
            config: Scheduler configuration
            client: HTTP client shared by readers and notifier
            planner: Backoff planner, built from ``config`` when omitted
        """
        self.watch_list = watch_list
        self.config = config
        self.client = client or httpx.AsyncClient(
            timeout=config.request_timeout,
            headers={"User-Agent": config.user_agent},
            follow_redirects=True,
        )
        self.logger = logger.bind(component="scheduler_service")
        
        throttler = Throttler(rate_limit=config.rate_limit_per_second)
        readers = {
            SourceKind.SYNDICATION: SyndicationReader(self.client, throttler),
            SourceKind.REGISTRY_TAGS: RegistryTagReader(self.client, throttler),
        }
        self.planner = planner or BackoffPlanner(
            base_interval=config.interval,
            default_backoff=config.default_backoff,
            safety_margin=config.safety_margin,
        )
        self.feed_scheduler = FeedScheduler(readers, self.planner)
        self.notifier = WebhookNotifier(self.client)
        self.scheduler = AsyncIOScheduler(timezone=config.timezone)
        self.fetch_logger = FetchLogger("scheduler_service")
        
        self._stop_event: Optional[asyncio.Event] = None
        self._current_tick: Optional[asyncio.Task] = None
    
    async def run_tick(self) -> TickSummary:
        """Run one tick over the watch list and fire hooks for changed sources."""
        self._current_tick = asyncio.current_task()
        started = time.monotonic()
        sources = self.watch_list.sources
        summary = TickSummary(started_at=self.planner.clock(), sources_total=len(sources))
        self.fetch_logger.log_tick_start(len(sources))
        
        try:
            async for result in self.feed_scheduler.tick(sources):
                if result.skipped:
                    summary.sources_skipped += 1
                    continue
                
                summary.sources_fetched += 1
                if result.status == FetchStatus.RATE_LIMITED:
                    summary.rate_limited += 1
                if result.error:
                    summary.errors.append(f"{result.source.address}: {result.error}")
                if result.notify:
                    summary.changes_detected += 1
                    for feed in self.watch_list.feed_for(result.source):
                        if await self.notifier.notify(feed):
                            summary.notifications_sent += 1
        finally:
            self._current_tick = None
        
        summary.duration_seconds = time.monotonic() - started
        self.fetch_logger.log_tick_complete(
            summary.sources_fetched,
            summary.sources_skipped,
            summary.changes_detected,
            len(summary.errors),
            summary.duration_seconds,
            success=summary.success,
        )
        return summary
    
    async def start(self, run_once: bool = False) -> None:
        """
        Start polling.
        
        Args:
            run_once: Run a single tick and return instead of scheduling
        """
        self.logger.info(
            "Running feed watcher",
            feeds=len(self.watch_list.feed),
            interval_seconds=self.config.interval.total_seconds(),
            run_once=run_once
        )
        
        if run_once:
            try:
                await self.run_tick()
            finally:
                await self.close()
            return
        
        self._stop_event = asyncio.Event()
        self._setup_signal_handlers()
        
        self.scheduler.add_job(
            func=self.run_tick,
            trigger=IntervalTrigger(
                seconds=self.config.interval.total_seconds(),
                timezone=self.config.timezone
            ),
            id='feed_tick',
            name='Feed Tick',
            next_run_time=datetime.now(self.scheduler.timezone),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        
        try:
            await self._stop_event.wait()
        finally:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)
            await self.close()
            self.logger.info("Scheduler service stopped")
    
    def stop(self) -> None:
        """Stop between ticks, cancelling an in-flight tick."""
        self.logger.info("Stopping scheduler service")
        if self._current_tick is not None and not self._current_tick.done():
            self._current_tick.cancel()
        if self._stop_event is not None:
            self._stop_event.set()
    
    async def close(self) -> None:
        await self.client.aclose()
    
    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.stop)
            except NotImplementedError:
                signal.signal(signum, lambda *_: loop.call_soon_threadsafe(self.stop))
