import asyncio
import enum
import time
from dataclasses import dataclass, field


class Window(enum.Enum):
    SESSION = "5h"
    WEEKLY = "7d"


class PollPhase(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RESOLVING_IDENTITY = "resolving_identity"
    FETCHING_USAGE = "fetching_usage"


@dataclass(frozen=True, slots=True)
class QuotaWindow:
    """
    QuotaWindow is the canonical reading of a single quota
    period, independent of the upstream response shape.
    """

    used: "int" = 0
    # tokens allowed; 1 when unknown so nothing divides by zero
    limit: "int" = 1
    # ISO-8601 string as sent by the server, None when unknown
    reset_at: "str | None" = None

    @property
    def ratio(self) -> "float":
        if self.limit <= 0:
            return 0.0
        return self.used / self.limit

    @property
    def percent(self) -> "int":
        # halves round up, 2.5% reads as 3%
        if self.limit <= 0:
            return 0
        return (200 * self.used + self.limit) // (2 * self.limit)


@dataclass(frozen=True, slots=True)
class UsageSnapshot:
    """
    UsageSnapshot pairs the session and weekly readings
    normalized from one usage payload.
    """

    session: "QuotaWindow" = field(default_factory=QuotaWindow)
    weekly: "QuotaWindow" = field(default_factory=QuotaWindow)
    # unix timestamp of the fetch, not part of equality
    fetched_at: "float" = field(default_factory=time.time, compare=False)

    def window(self, kind: "Window") -> "QuotaWindow":
        return self.session if kind is Window.SESSION else self.weekly

    @property
    def worst_ratio(self) -> "float":
        return max(self.session.ratio, self.weekly.ratio)

    @property
    def worst_percent(self) -> "int":
        return max(self.session.percent, self.weekly.percent)


@dataclass(slots=True)
class PollState:
    """
    PollState holds everything the scheduler mutates between
    cycles. Only the last-used counters outlive the process.
    """

    last_session_used: "int" = 0
    last_weekly_used: "int" = 0
    current_interval: "float" = 0
    timer: "asyncio.TimerHandle | None" = None
