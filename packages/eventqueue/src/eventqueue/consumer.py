"""
Event Consumer - Listener + Poll Fallback feeding one dispatch loop.

Both background threads only enqueue scan requests. The dispatch loop
drains and coalesces them:
- notification / reconnect -> scan from the dispatcher cursor
- poll                     -> sweep from the beginning of the table

The sweep matters because ids are assigned at insert but become visible at
commit, so a lower id can show up after a higher one was already handled.
Only unprocessed rows are read, so a sweep costs the backlog, not the table.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable

from sqlalchemy.orm import sessionmaker

from basecore.db import session_scope
from eventqueue.dispatcher import DispatchReport, EventDispatcher
from eventqueue.handlers import HandlerRouter
from eventqueue.notify.base import NotificationListener
from eventqueue.persistence import EventStore
from eventqueue.poller import PollFallback

logger = logging.getLogger(__name__)

ListenerFactory = Callable[..., NotificationListener]


class ScanRequest:
    """Reasons for running a scan."""
    NOTIFY = "notify"
    RECONNECT = "reconnect"
    POLL = "poll"


class EventConsumer:
    """
    One consumer process worth of event delivery.

    Several consumers may run against the same table; conflicts are settled
    by the conditional update in EventStore.mark_processed.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        router: HandlerRouter,
        listener_factory: ListenerFactory | None = None,
        poll_interval: float = 5.0,
        batch_size: int = 100,
        max_backoff: float = 30.0,
        purge_keep: int | None = None,
        purge_interval: float = 3600.0,
        name: str = "event-consumer",
    ):
        self.name = name
        self.session_factory = session_factory
        self.requests: queue.Queue[str] = queue.Queue()
        self._stop_event = threading.Event()

        self.dispatcher = EventDispatcher(
            session_factory,
            router,
            batch_size=batch_size,
            should_stop=self._stop_event.is_set,
        )
        self.poller = PollFallback(self.request_poll, interval=poll_interval, max_backoff=max_backoff)
        self.listener = (
            listener_factory(on_wake=self.notify, on_reconnect=self.request_catch_up)
            if listener_factory
            else None
        )

        self.purge_keep = purge_keep
        self.purge_interval = purge_interval
        self._next_purge = 0.0
        self.max_backoff = max_backoff

    # --- wake-up sources ---

    def notify(self, hint: int | None = None) -> None:
        """Called by the listener for every notification."""
        self.requests.put(ScanRequest.NOTIFY)

    def request_catch_up(self) -> None:
        """Called by the listener after every (re)subscription."""
        self.requests.put(ScanRequest.RECONNECT)

    def request_poll(self) -> None:
        """Called by the poll fallback every interval."""
        self.requests.put(ScanRequest.POLL)

    # --- dispatch loop ---

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def _drain(self, first: str) -> set[str]:
        kinds = {first}
        while True:
            try:
                kinds.add(self.requests.get_nowait())
            except queue.Empty:
                return kinds

    def process_pending(self, timeout: float | None = 0) -> DispatchReport | None:
        """
        Run one scan for all queued requests.

        Args:
            timeout: Seconds to wait for a request (None blocks, 0 does not wait)

        Returns:
            The scan report, or None if nothing was requested
        """
        try:
            if timeout == 0:
                first = self.requests.get_nowait()
            else:
                first = self.requests.get(timeout=timeout)
        except queue.Empty:
            return None

        kinds = self._drain(first)
        if ScanRequest.POLL in kinds:
            report = self.dispatcher.scan(after_id=0)
            self.poller.record_success()
        else:
            report = self.dispatcher.scan()
        return report

    def purge(self) -> int:
        """Delete processed events older than the newest purge_keep ids."""
        if self.purge_keep is None:
            return 0

        with session_scope(self.session_factory) as db:
            store = EventStore(db)
            before_id = store.max_id() - self.purge_keep + 1
            deleted = store.purge_processed(before_id) if before_id > 1 else 0

        if deleted:
            logger.info(f"Purged {deleted} processed events below id {before_id}")
        return deleted

    def _maybe_purge(self) -> None:
        if self.purge_keep is None or time.monotonic() < self._next_purge:
            return
        self._next_purge = time.monotonic() + self.purge_interval
        try:
            self.purge()
        except Exception as e:
            logger.error(f"Error purging processed events: {e}", exc_info=True)

    def start(self) -> None:
        """Start the background threads and queue the startup sweep."""
        logger.info(
            f"Starting {self.name} (poll_interval={self.poller.interval}s, "
            f"batch={self.dispatcher.batch_size}, "
            f"listener={self.listener.transport if self.listener else 'none'})"
        )
        # Events committed while no consumer was running
        self.request_poll()
        self.poller.start()
        if self.listener is not None:
            self.listener.start()

    def run(self) -> None:
        """Run until stop() is called."""
        self.start()
        try:
            while not self._stop_event.is_set():
                self._maybe_purge()
                try:
                    self.process_pending(timeout=1.0)
                except Exception as e:
                    # Store unavailable or failed while confirming; nothing is lost
                    self.poller.record_failure()
                    delay = self.poller.next_delay()
                    logger.error(f"Error in dispatch loop: {e}; retrying in {delay:.1f}s", exc_info=True)
                    if not self._stop_event.wait(delay):
                        self.request_catch_up()
        finally:
            self.shutdown()

    def stop(self) -> None:
        """Request shutdown; in-flight handlers finish, nothing is force-marked."""
        self._stop_event.set()
        self.poller.stop()
        if self.listener is not None:
            self.listener.stop()

    def shutdown(self, timeout: float = 5.0) -> None:
        self.stop()
        self.poller.join(timeout)
        if self.listener is not None:
            self.listener.join(timeout)
        logger.info(f"{self.name} shut down (cursor={self.dispatcher.cursor})")
