"""Token-bucket pacing for arrival-rate executors."""

from __future__ import annotations

import asyncio
import time


class TokenBucketRateLimiter:
    """Async token bucket releasing iteration starts at a variable rate.

    Each :meth:`acquire` consumes one token. Tokens refill at
    ``rate / time_unit`` per second up to ``capacity``, which defaults to
    one time unit of burst and follows :meth:`update_rate`. Tokens accrued
    while a waiter oversleeps are kept, so high rates are not clipped by
    wake-up latency. A rate of zero pauses releases until
    :meth:`update_rate` sets a positive rate again, which is how a ramp
    through a zero-target stage is expressed.

    Attributes:
        rate: Tokens per time unit.
        time_unit: Length of the time unit in seconds.
        capacity: Maximum burst size.
    """

    def __init__(
        self,
        rate: float,
        time_unit: float = 1.0,
        capacity: float | None = None,
    ) -> None:
        """Initialize the limiter.

        Args:
            rate: Tokens per *time_unit*. Must be >= 0.
            time_unit: Seconds per time unit. Must be > 0.
            capacity: Maximum tokens held. Must be > 0. Defaults to ``rate``
                (at least one token), resized whenever the rate changes.

        Raises:
            ValueError: If an argument is out of range.
        """
        if rate < 0:
            msg = f"rate must be non-negative, got {rate}"
            raise ValueError(msg)
        if time_unit <= 0:
            msg = f"time_unit must be positive, got {time_unit}"
            raise ValueError(msg)
        if capacity is not None and capacity <= 0:
            msg = f"capacity must be positive, got {capacity}"
            raise ValueError(msg)

        self._rate = rate
        self._time_unit = time_unit
        self._fixed_capacity = capacity
        self._capacity = self._capacity_for(rate)
        # The first start is released immediately unless the rate is zero.
        self._tokens = min(1.0, self._capacity) if rate > 0 else 0.0
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()
        self._rate_changed = asyncio.Event()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def time_unit(self) -> float:
        return self._time_unit

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def per_second(self) -> float:
        """Return the refill rate in tokens per second."""
        return self._rate / self._time_unit

    async def acquire(self) -> None:
        """Wait for one token and consume it.

        Waiters are served one at a time, in arrival order.
        """
        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                if self._rate == 0:
                    self._rate_changed.clear()
                    await self._rate_changed.wait()
                else:
                    wait_time = (1.0 - self._tokens) / self.per_second
                    # Wake early if the rate changes mid-wait.
                    self._rate_changed.clear()
                    try:
                        await asyncio.wait_for(self._rate_changed.wait(), timeout=wait_time)
                    except TimeoutError:
                        pass
                self._refill()
            self._tokens -= 1.0

    def update_rate(self, new_rate: float) -> None:
        """Change the rate, keeping tokens accrued at the old rate.

        Args:
            new_rate: Tokens per time unit. Must be >= 0.

        Raises:
            ValueError: If *new_rate* is negative.
        """
        if new_rate < 0:
            msg = f"rate must be non-negative, got {new_rate}"
            raise ValueError(msg)
        if new_rate == self._rate:
            return
        self._refill()
        self._rate = new_rate
        self._capacity = self._capacity_for(new_rate)
        self._tokens = min(self._tokens, self._capacity)
        self._rate_changed.set()

    def _capacity_for(self, rate: float) -> float:
        if self._fixed_capacity is not None:
            return self._fixed_capacity
        return max(rate, 1.0)

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self._capacity, self._tokens + elapsed * self.per_second)
        self._last_refill = now
