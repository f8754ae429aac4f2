"""
Poll Fallback - periodic rescan independent of notifications.

This is the reliability backstop: even with the notification channel
completely down, every event is picked up within one poll interval plus
processing time.
"""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PollFallback:
    """
    Background thread requesting a sweep every ``interval`` seconds.

    The actual fetch happens in the consumer's dispatch loop; this class only
    keeps the timer. ``record_failure()``/``record_success()`` stretch the
    interval while the store is unavailable.
    """

    def __init__(
        self,
        on_poll: Callable[[], None],
        interval: float = 5.0,
        max_backoff: float = 30.0,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.on_poll = on_poll
        self.interval = interval
        self.max_backoff = max(max_backoff, interval)
        self.polls = 0
        self._consecutive_failures = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def next_delay(self) -> float:
        """Interval, stretched exponentially after store failures."""
        if self._consecutive_failures == 0:
            return self.interval
        return min(self.interval * (1.5 ** min(self._consecutive_failures, 10)), self.max_backoff)

    def record_failure(self) -> None:
        self._consecutive_failures += 1

    def record_success(self) -> None:
        self._consecutive_failures = 0

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name="poll-fallback", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Abandon the current timer wait."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        logger.info(f"Starting poll fallback (interval={self.interval}s)")

        # Event.wait returns True as soon as stop() is called
        while not self._stop_event.wait(self.next_delay()):
            self.polls += 1
            try:
                self.on_poll()
            except Exception as e:
                logger.error(f"Error requesting poll: {e}", exc_info=True)

        logger.info("Poll fallback stopped")
