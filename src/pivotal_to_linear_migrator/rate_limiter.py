"""Rate limiting for Linear API requests.

Linear enforces two independent hourly budgets: a request count and a
computed query complexity. Both are reported back on every response.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Final

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_REQUEST_LIMIT: Final = 1500
DEFAULT_COMPLEXITY_LIMIT: Final = 250_000


@dataclass
class Budget:
    """One budget as last reported by the API."""

    name: str
    limit: int
    remaining: int
    reset_at: float | None = None  # epoch seconds

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0

    def replenish(self) -> None:
        self.remaining = self.limit
        self.reset_at = None


def _header_int(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


class RateLimiter:
    """Throttles requests while either budget is used up.

    Usage:
        limiter.acquire()
        response = session.post(...)
        limiter.update(response.headers)

    While a budget is used up, `acquire` sleeps one fraction of the time
    left until its reset and then lets the request go out. The headers of
    that response re-evaluate the budgets, so a budget restored before the
    announced time is noticed after a single short sleep.
    """

    SLEEP_FRACTION: Final = 10
    MIN_SLEEP_SECONDS: Final = 1.0

    requests: Budget
    complexity: Budget

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        timezone: dt.tzinfo = dt.UTC,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._timezone = timezone
        self.requests = Budget("request", DEFAULT_REQUEST_LIMIT, DEFAULT_REQUEST_LIMIT)
        self.complexity = Budget("complexity", DEFAULT_COMPLEXITY_LIMIT, DEFAULT_COMPLEXITY_LIMIT)

    @property
    def exhausted(self) -> bool:
        return self.requests.exhausted or self.complexity.exhausted

    def _exhausted_budgets(self) -> list[Budget]:
        return [b for b in (self.requests, self.complexity) if b.exhausted]

    def _format_reset(self, reset_at: float) -> str:
        return dt.datetime.fromtimestamp(reset_at, tz=self._timezone).isoformat(sep=" ", timespec="seconds")

    def acquire(self) -> None:
        """Sleep one fraction of the time to reset if either budget is used up.

        Returns after at most one sleep. A budget whose reset is unknown or
        already past is treated as replenished.
        """
        if not self.exhausted:
            return

        now = self._clock()
        pending: list[Budget] = []
        for budget in self._exhausted_budgets():
            if budget.reset_at is None or budget.reset_at <= now:
                # The window has rolled over
                budget.replenish()
            else:
                pending.append(budget)
        if not pending:
            return

        reset_at = max(b.reset_at for b in pending if b.reset_at is not None)
        delay = max((reset_at - now) / self.SLEEP_FRACTION, self.MIN_SLEEP_SECONDS)
        names = ", ".join(b.name for b in pending)
        logger.info(
            f"Rate limit reached ({names}). Sleeping for {delay:.1f} seconds. "
            f"Full reset at {self._format_reset(reset_at)}"
        )
        self._sleep(delay)

    def update(self, headers: Mapping[str, str]) -> None:
        """Record the budgets reported in a response's headers."""
        for budget, prefix in ((self.requests, "X-RateLimit-Requests"), (self.complexity, "X-RateLimit-Complexity")):
            limit = _header_int(headers, f"{prefix}-Limit")
            remaining = _header_int(headers, f"{prefix}-Remaining")
            reset_ms = _header_int(headers, f"{prefix}-Reset")

            if limit is not None:
                budget.limit = limit
            if remaining is not None:
                budget.remaining = max(remaining, 0)
            if reset_ms is not None:
                budget.reset_at = reset_ms / 1000.0

        logger.debug(
            f"Rate limits: requests {self.requests.remaining}/{self.requests.limit}, "
            f"complexity {self.complexity.remaining}/{self.complexity.limit}"
        )
