import logging
import threading
import time
from typing import Callable


logger = logging.getLogger(__name__)


class RateLimiter:
    """Minimum-interval gate shared by every request of one or more sync runs.

    The time of the last dispatch is guarded by a lock, so one limiter can be
    shared between concurrent orchestrators that draw on the same quota.
    """

    def __init__(
        self,
        min_interval_s: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if min_interval_s < 0:
            raise ValueError("min_interval_s cannot be negative")
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_dispatch = None

    def wait(self) -> float:
        """Block until the next request may be dispatched and claim the slot.

        Returns:
            Seconds slept
        """
        with self._lock:
            waited = 0.0
            if self._last_dispatch is not None:
                elapsed = self._clock() - self._last_dispatch
                if elapsed < self.min_interval_s:
                    waited = self.min_interval_s - elapsed
                    logger.debug(f"Rate limiting: sleeping {waited:.3f}s")
                    self._sleep(waited)
            self._last_dispatch = self._clock()
            return waited
