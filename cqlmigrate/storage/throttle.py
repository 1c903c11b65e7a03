# ==============================================
# Throttles (InFlightRequestCounter)
# ==============================================
#
# PURPOSE:
#   Keep the number of outstanding asynchronous writes below the
#   target pool's per-connection cap, with hysteresis:
#     - block once the count reaches the HIGH watermark (the cap)
#     - resume only when it has fallen to the LOW watermark (cap // 2)
#
# CLASSES:
# --------
# - InFlightThrottle
#     Tracks the count itself. acquire() before each submission,
#     release() when the write completes (success or final failure).
#     Waiting is on a condition variable, no polling. Increment and
#     decrement are guarded by its lock because completions arrive
#     on the driver's event-loop thread.
#
# - PoolStateThrottle
#     Reads the live in-flight count from the connection's pool state
#     and polls at a fixed interval while above the watermark.
#     release() is a no-op: the pool maintains the count.
#
# ==============================================

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class InFlightThrottle:
    def __init__(self, max_in_flight: int, low_watermark: Optional[int] = None):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be positive")
        self.high_watermark = max_in_flight
        self.low_watermark = max_in_flight // 2 if low_watermark is None else low_watermark
        self._count = 0
        self._cond = threading.Condition()
        self.pauses = 0

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._count

    def acquire(self) -> None:
        with self._cond:
            if self._count >= self.high_watermark:
                self.pauses += 1
                logger.debug("Throttling: %d in flight, waiting for %d",
                             self._count, self.low_watermark)
                self._cond.wait_for(lambda: self._count <= self.low_watermark)
            self._count += 1

    def release(self) -> None:
        with self._cond:
            if self._count <= 0:
                raise RuntimeError("release() called more times than acquire()")
            self._count -= 1
            if self._count <= self.low_watermark:
                self._cond.notify_all()


class PoolStateThrottle:
    def __init__(
        self,
        in_flight: Callable[[], int],
        max_in_flight: Callable[[], int],
        poll_interval: float = 0.01,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._in_flight = in_flight
        self._max_in_flight = max_in_flight
        self.poll_interval = poll_interval
        self._sleep = sleep
        self.pauses = 0

    @classmethod
    def for_connection(cls, connection, poll_interval: float = 0.01) -> "PoolStateThrottle":
        return cls(connection.in_flight_requests, connection.max_requests_per_connection, poll_interval)

    @property
    def in_flight(self) -> int:
        return self._in_flight()

    def acquire(self) -> None:
        maximum = self._max_in_flight()
        if self._in_flight() < maximum:
            return
        self.pauses += 1
        logger.debug("Throttling: pool at %d in flight, polling every %.3fs",
                     maximum, self.poll_interval)
        while self._in_flight() > maximum // 2:
            self._sleep(self.poll_interval)

    def release(self) -> None:
        pass
