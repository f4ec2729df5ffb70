# h2h_scraper/pacer.py

import time
import logging
import threading
from typing import Callable, Optional

from h2h_scraper.config import PACING_CONFIG

logger = logging.getLogger(__name__)


class AdaptivePacer:
    """
    Decides how long to wait before the next outbound request.

    Recovers speed slowly (three straight successes shave 10% off the delay)
    and backs off fast (every error jumps to base * 2^errors, capped at 16x
    base and at max_delay). One instance per crawl worker; state is not
    persisted across restarts.
    """

    def __init__(self, base_delay: float = None, min_delay: float = None,
                 max_delay: float = None, config: dict = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        config = config or PACING_CONFIG
        self.base_delay = base_delay if base_delay is not None else config['base_delay']
        self.min_delay = min_delay if min_delay is not None else config['min_delay']
        self.max_delay = max_delay if max_delay is not None else config['max_delay']
        self.successes_to_speed_up = config.get('successes_to_speed_up', 3)
        self.speed_up_factor = config.get('speed_up_factor', 0.9)
        self.max_backoff_exponent = config.get('max_backoff_exponent', 4)

        self._clock = clock
        self._sleep = sleep
        self.current_delay = self._bounded(self.base_delay)
        self.last_request_time: Optional[float] = None
        self.consecutive_successes = 0
        self.consecutive_errors = 0

    def _bounded(self, delay: float) -> float:
        return max(self.min_delay, min(self.max_delay, delay))

    def time_until_next(self) -> float:
        """Milliseconds left before the next request may go out"""
        if self.last_request_time is None:
            return 0.0
        elapsed_ms = (self._clock() - self.last_request_time) * 1000
        return max(0.0, self.current_delay - elapsed_ms)

    def wait_for_next(self, stop_event: Optional[threading.Event] = None) -> bool:
        """
        Block until current_delay has passed since the last request, then
        stamp now as the last request time.

        Returns False without stamping if stop_event was set while waiting.
        """
        wait_ms = self.time_until_next()
        if wait_ms > 0:
            logger.debug(f"Pacer: waiting {wait_ms:.0f}ms (current delay: {self.current_delay:.0f}ms)")
            if stop_event is not None:
                if stop_event.wait(wait_ms / 1000):
                    return False
            else:
                self._sleep(wait_ms / 1000)
        elif stop_event is not None and stop_event.is_set():
            return False

        self.last_request_time = self._clock()
        return True

    def on_success(self):
        """Record a successful request - gradually reduce delay"""
        self.consecutive_errors = 0
        self.consecutive_successes += 1

        if self.consecutive_successes >= self.successes_to_speed_up:
            old_delay = self.current_delay
            self.current_delay = max(self.min_delay, self.current_delay * self.speed_up_factor)
            if old_delay != self.current_delay:
                logger.debug(f"Pacer: reduced delay from {old_delay:.0f}ms to {self.current_delay:.0f}ms")
            self.consecutive_successes = 0

    def on_error(self):
        """Record a failed request - exponentially increase delay"""
        self.consecutive_successes = 0
        self.consecutive_errors += 1

        old_delay = self.current_delay
        multiplier = 2 ** min(self.consecutive_errors, self.max_backoff_exponent)
        self.current_delay = self._bounded(self.base_delay * multiplier)

        logger.warning(f"Pacer: increased delay from {old_delay:.0f}ms to {self.current_delay:.0f}ms "
                       f"after {self.consecutive_errors} consecutive errors")

    def reset(self):
        """Back to base delay (e.g. when starting a new batch)"""
        self.current_delay = self._bounded(self.base_delay)
        self.consecutive_errors = 0
        self.consecutive_successes = 0
        logger.debug("Pacer: reset to base delay")

    def get_stats(self) -> dict:
        return {
            'current_delay': self.current_delay,
            'base_delay': self.base_delay,
            'min_delay': self.min_delay,
            'max_delay': self.max_delay,
            'consecutive_errors': self.consecutive_errors,
            'consecutive_successes': self.consecutive_successes,
        }
