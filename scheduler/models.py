"""
Models for scheduling and change detection.

This module defines Pydantic models for:
- Change decisions of the fingerprint store
- Per-source tick results
- Tick summaries
- Scheduler configuration
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from fetcher.backoff import DEFAULT_BACKOFF, SAFETY_MARGIN
from fetcher.models import ErrorKind, FetchStatus, Source


class ChangeDecision(str, Enum):
    """Verdict of comparing a new fingerprint with the cached one."""
    FIRST_SEEN = "first_seen"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


class TickResult(BaseModel):
    """Outcome of processing one source during a tick."""
    source: Source
    fetched: bool = Field(default=False, description="Whether a fetch was attempted")
    status: Optional[FetchStatus] = Field(default=None, description="Fetch outcome tag, None when skipped")
    decision: Optional[ChangeDecision] = Field(default=None)
    notify: bool = Field(default=False, description="Whether the notification sink should fire")
    error_kind: Optional[ErrorKind] = Field(default=None)
    error: Optional[str] = Field(default=None)
    next_eligible_time: Optional[datetime] = Field(default=None)

    @property
    def skipped(self) -> bool:
        return not self.fetched


class TickSummary(BaseModel):
    """Aggregate of a full tick over the watch list."""
    started_at: datetime
    duration_seconds: float = Field(default=0.0)
    sources_total: int = Field(default=0)
    sources_fetched: int = Field(default=0)
    sources_skipped: int = Field(default=0)
    changes_detected: int = Field(default=0)
    notifications_sent: int = Field(default=0)
    rate_limited: int = Field(default=0)
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class SchedulerConfig(BaseModel):
    """Configuration for the polling scheduler."""
    interval: timedelta = Field(default=timedelta(minutes=30), description="Base polling interval")
    default_backoff: timedelta = Field(default=DEFAULT_BACKOFF, description="Pause after a 429 without Retry-After")
    safety_margin: timedelta = Field(default=SAFETY_MARGIN, description="Extra delay added to rate-limit pauses")
    timezone: str = Field(default="UTC", description="Timezone for the scheduler")
    request_timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    rate_limit_per_second: float = Field(default=2.0, gt=0, description="Outbound request rate limit")
    user_agent: str = Field(default="feed-watch/1.0", min_length=1)
