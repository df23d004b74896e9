"""
Sliding-window rate admission controller

Tracks Freshservice calls made in the last window and decides whether one
more call fits the plan limits: an overall ceiling across all endpoints and a
tighter ceiling for ticket endpoints.
"""
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Literal

from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)

Category = Literal["tickets", "agents", "other"]

TICKETS: Category = "tickets"
AGENTS: Category = "agents"
OTHER: Category = "other"


@dataclass(frozen=True)
class CallRecord:
    timestamp: float
    category: str


class RateLimitTracker:
    """
    Admission control over a sliding window

    Args:
        overall_limit: Maximum calls per window across all categories
        tickets_limit: Maximum ticket-category calls per window
        window_seconds: Window length
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        overall_limit: int = 400,
        tickets_limit: int = 120,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.overall_limit = overall_limit
        self.tickets_limit = tickets_limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._calls: Deque[CallRecord] = deque()

    def _purge(self) -> float:
        now = self._clock()
        # Only calls with now - timestamp < window are counted
        while self._calls and now - self._calls[0].timestamp >= self.window_seconds:
            self._calls.popleft()
        return now

    def can_admit(self, category: Category = OTHER) -> bool:
        """Whether one more call in `category` fits both ceilings right now"""
        self._purge()

        if len(self._calls) >= self.overall_limit:
            logger.warning(f"Rate limit: overall limit ({self.overall_limit}/min) would be exceeded")
            return False

        if category == TICKETS:
            ticket_calls = sum(1 for call in self._calls if call.category == TICKETS)
            if ticket_calls >= self.tickets_limit:
                logger.warning(f"Rate limit: tickets limit ({self.tickets_limit}/min) would be exceeded")
                return False

        return True

    def record_call(self, category: Category = OTHER) -> None:
        self._calls.append(CallRecord(timestamp=self._clock(), category=category))

    def try_admit(self, category: Category = OTHER) -> bool:
        """Check and record in one step"""
        if not self.can_admit(category):
            return False
        self.record_call(category)
        return True

    def wait_time_ms(self) -> float:
        """Milliseconds until the oldest counted call leaves the window"""
        now = self._purge()
        if not self._calls:
            return 0.0
        oldest = self._calls[0].timestamp
        return max(0.0, (self.window_seconds - (now - oldest)) * 1000)

    def _release_wait_ms(self, calls: List[CallRecord], limit: int, now: float) -> float:
        # The (len - limit + 1)-th oldest call must leave before one more fits
        excess = len(calls) - limit + 1
        if excess <= 0:
            return 0.0
        if excess > len(calls):
            return self.window_seconds * 1000
        released = calls[excess - 1].timestamp
        return max(0.0, (self.window_seconds - (now - released)) * 1000)

    def admission_wait_ms(self, category: Category = OTHER) -> float:
        """Milliseconds until a call in `category` would pass both ceilings"""
        now = self._purge()
        waits = [self._release_wait_ms(list(self._calls), self.overall_limit, now)]
        if category == TICKETS:
            ticket_calls = [call for call in self._calls if call.category == TICKETS]
            waits.append(self._release_wait_ms(ticket_calls, self.tickets_limit, now))
        return max(waits)

    def stats(self) -> Dict[str, object]:
        self._purge()
        return {
            "total_requests": len(self._calls),
            "ticket_requests": sum(1 for call in self._calls if call.category == TICKETS),
            "time_window": f"{self.window_seconds:g} seconds",
        }
