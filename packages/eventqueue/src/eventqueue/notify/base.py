"""
Notification Listener base.

A notification is only a hint that something may be waiting. The listener
never trusts the payload: it asks the consumer to run its normal fetch path.
Every (re)subscription is followed by a catch-up request because anything
published while no subscription existed is lost for good.
"""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

WakeCallback = Callable[[int | None], None]


class NotificationListener:
    """
    Long-lived subscriber running in a background thread.

    Subclasses implement open(), receive() and close() for a transport.
    """

    transport = "abstract"

    def __init__(
        self,
        on_wake: WakeCallback,
        on_reconnect: Callable[[], None] | None = None,
        timeout: float = 1.0,
        max_backoff: float = 30.0,
        base_backoff: float = 0.5,
    ):
        self.on_wake = on_wake
        self.on_reconnect = on_reconnect or (lambda: on_wake(None))
        self.timeout = timeout
        self.max_backoff = max_backoff
        self.base_backoff = base_backoff
        self.subscriptions = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # --- transport hooks ---

    def open(self) -> None:
        """Connect and subscribe to the channel."""
        raise NotImplementedError

    def receive(self, timeout: float) -> list[str]:
        """Wait up to timeout seconds and return received payloads."""
        raise NotImplementedError

    def close(self) -> None:
        """Close the subscription. Must be safe to call when not open."""
        raise NotImplementedError

    # --- lifecycle ---

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> threading.Thread:
        """Run the listener in a daemon thread."""
        self._thread = threading.Thread(
            target=self.run,
            name=f"{self.transport}-listener",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Request shutdown; the subscription is closed by the listener thread."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def backoff_delay(self, failures: int) -> float:
        """Exponential backoff with a ceiling."""
        return min(self.base_backoff * (2 ** max(failures - 1, 0)), self.max_backoff)

    def run(self) -> None:
        """Subscribe, listen, and resubscribe until stopped."""
        logger.info(f"Starting {self.transport} notification listener")
        failures = 0

        while not self._stop_event.is_set():
            try:
                self.open()
            except Exception as e:
                failures += 1
                delay = self.backoff_delay(failures)
                logger.warning(
                    f"Failed to subscribe ({self.transport}): {e}; retrying in {delay:.1f}s",
                    extra={"failures": failures},
                )
                self.close()
                self._stop_event.wait(delay)
                continue

            failures = 0
            self.subscriptions += 1
            if self.subscriptions > 1:
                logger.info(f"Resubscribed ({self.transport}), requesting catch-up scan")
            else:
                logger.info(f"Subscribed ({self.transport}), requesting initial catch-up scan")
            self.on_reconnect()

            try:
                self.listen()
            except Exception as e:
                logger.warning(f"Subscription lost ({self.transport}): {e}", exc_info=True)
            finally:
                self.close()

        logger.info(f"{self.transport} notification listener stopped")

    def listen(self) -> None:
        """Deliver notifications until stopped or the transport fails."""
        while not self._stop_event.is_set():
            for payload in self.receive(self.timeout):
                self.deliver(payload)

    def deliver(self, payload: str) -> None:
        hint = parse_event_id(payload)
        if hint is None:
            logger.warning(f"Ignoring malformed notification payload {payload!r}, scanning anyway")
        else:
            logger.debug(f"Notification for event {hint}")
        self.on_wake(hint)


def parse_event_id(payload: object) -> int | None:
    """Parse a textual event id; None when the payload is not an integer."""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    try:
        return int(str(payload).strip())
    except ValueError:
        return None
