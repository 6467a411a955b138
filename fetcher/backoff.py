"""
Backoff planning for watched sources.

Computes the next eligible fetch time of a source from the outcome of its
previous fetch. A rate limit pauses only the affected source; every other
outcome keeps the uniform base interval.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

import structlog
from pydantic import BaseModel, Field

from fetcher.models import CacheValidators, FetchOutcome, FetchStatus, SchedulePlan

logger = structlog.get_logger(__name__)

# waiting 6 hours after a 429 should be slow enough for everyone
DEFAULT_BACKOFF = timedelta(hours=6)
SAFETY_MARGIN = timedelta(seconds=1)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PlanKind(str, Enum):
    """Outcome classes the planner distinguishes."""
    INITIAL = "initial"
    RATE_LIMITED = "rate_limited"
    COMPLETED = "completed"


class PlanInput(BaseModel):
    """Planner view of the previous fetch."""
    kind: PlanKind
    retry_after: Optional[timedelta] = Field(default=None)
    validators: CacheValidators = Field(default_factory=CacheValidators)

    @classmethod
    def initial(cls) -> "PlanInput":
        return cls(kind=PlanKind.INITIAL)

    @classmethod
    def rate_limited(cls, retry_after: Optional[timedelta] = None) -> "PlanInput":
        return cls(kind=PlanKind.RATE_LIMITED, retry_after=retry_after)

    @classmethod
    def completed(cls, validators: CacheValidators) -> "PlanInput":
        return cls(kind=PlanKind.COMPLETED, validators=validators)

    @classmethod
    def from_fetch_outcome(cls, outcome: FetchOutcome, previous: Optional[SchedulePlan] = None) -> "PlanInput":
        """
        Map a reader outcome onto a planner input.

        Failed fetches keep the validators of the previous plan, so the next
        attempt revalidates against the last good response.
        """
        if outcome.status == FetchStatus.RATE_LIMITED:
            return cls.rate_limited(outcome.retry_after)
        if outcome.status == FetchStatus.FAILED:
            validators = previous.validators if previous else CacheValidators()
            return cls.completed(validators)
        return cls.completed(outcome.validators)


class BackoffPlanner:
    """State transition function from fetch outcome to SchedulePlan."""

    def __init__(
        self,
        base_interval: timedelta,
        default_backoff: timedelta = DEFAULT_BACKOFF,
        safety_margin: timedelta = SAFETY_MARGIN,
        clock: Clock = utc_now,
    ):
        """
        Initialize the planner.

        Args:
            base_interval: Regular polling cadence
            default_backoff: Pause after a 429 without a numeric Retry-After
            safety_margin: Added to every rate-limit pause to absorb clock skew
            clock: Source of the current time
        """
        self.base_interval = base_interval
        self.default_backoff = default_backoff
        self.safety_margin = safety_margin
        self.clock = clock

    def first_plan(self, now: Optional[datetime] = None) -> SchedulePlan:
        """Plan for a source that has never been observed: due immediately."""
        return SchedulePlan(next_eligible_time=now or self.clock())

    def next_plan(
        self,
        plan_input: PlanInput,
        previous: Optional[SchedulePlan] = None,
        now: Optional[datetime] = None,
    ) -> SchedulePlan:
        """
        Compute the plan that replaces ``previous``.

        Args:
            plan_input: Outcome of the fetch that just finished
            previous: Plan in force during that fetch, if any
            now: Reference time; defaults to the planner clock

        Returns:
            New SchedulePlan, never earlier than ``previous``
        """
        now = now or self.clock()

        if plan_input.kind == PlanKind.RATE_LIMITED:
            pause = plan_input.retry_after if plan_input.retry_after is not None else self.default_backoff
            next_time = now + pause + self.safety_margin
            validators = previous.validators if previous else CacheValidators()
            logger.debug(
                "Planned rate-limit backoff",
                pause_seconds=pause.total_seconds(),
                next_eligible_time=next_time.isoformat()
            )
        elif plan_input.kind == PlanKind.COMPLETED:
            next_time = now + self.base_interval
            validators = plan_input.validators
        else:
            next_time = now + self.base_interval
            validators = CacheValidators()

        if previous is not None and previous.next_eligible_time > next_time:
            next_time = previous.next_eligible_time

        return SchedulePlan(next_eligible_time=next_time, validators=validators)
