"""
Consumer Dispatcher - fetch, handle, confirm.

For every unprocessed event found from a starting id:
1. Run the handler for its type
2. Only on handler success, mark it processed and commit
3. On handler failure, log and move on; the event stays unprocessed

Handlers must be idempotent. mark_processed guarantees the processed
transition happens once, not that the handler runs once.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session, sessionmaker

from eventqueue.contracts import Event, MarkResult
from eventqueue.handlers import HandlerRouter
from eventqueue.persistence import EventStore

logger = logging.getLogger(__name__)


class DispatchOutcome:
    """Outcome of dispatching a single event."""
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DispatchReport:
    """Summary of one scan."""

    start_id: int = 0
    last_id: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    failed_ids: list[int] = field(default_factory=list)

    @property
    def seen(self) -> int:
        return self.processed + self.skipped + self.failed


class EventDispatcher:
    """
    Dispatches unprocessed events to their handlers.

    Keeps a cursor: the highest id up to which every event this dispatcher
    has seen is done. A failed event pins the cursor below it so that a
    cursor-scoped scan (notification or reconnect) retries it.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        router: HandlerRouter,
        batch_size: int = 100,
        should_stop: Callable[[], bool] | None = None,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.session_factory = session_factory
        self.router = router
        self.batch_size = batch_size
        self.should_stop = should_stop or (lambda: False)
        self.cursor = 0

    def dispatch(self, db: Session, event: Event) -> str:
        """
        Handle a single event and confirm it.

        Handler errors are logged and reported as FAILED. Store errors while
        confirming are re-raised after rollback; the event stays unprocessed.
        """
        try:
            self.router.handle(event)
        except Exception as e:
            db.rollback()
            logger.error(
                f"Handler failed for event {event.id}: {e}",
                extra={"event_id": event.id, "event_type": event.event_type.value},
                exc_info=True,
            )
            return DispatchOutcome.FAILED

        try:
            result = EventStore(db).mark_processed(event.id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        if result is MarkResult.SUCCESS:
            logger.info(
                f"Processed event {event.id}",
                extra={"event_id": event.id, "event_type": event.event_type.value},
            )
            return DispatchOutcome.PROCESSED

        if result is MarkResult.ALREADY_PROCESSED:
            # Race with another consumer - discard our result
            logger.debug(f"Event {event.id} was processed by another consumer")
        else:
            logger.warning(f"Event {event.id} disappeared before it could be marked processed")
        return DispatchOutcome.SKIPPED

    def scan(self, after_id: int | None = None) -> DispatchReport:
        """
        Page through unprocessed events and dispatch them in id order.

        Args:
            after_id: Start after this id; defaults to the cursor

        Returns:
            DispatchReport for the scan
        """
        start = self.cursor if after_id is None else after_id
        report = DispatchReport(start_id=start, last_id=start)
        position = start
        advance_to = start
        pinned = False

        db = self.session_factory()
        try:
            store = EventStore(db)
            while not self.should_stop():
                events = store.fetch_unprocessed(position, self.batch_size)
                # End the read transaction before running handlers
                db.rollback()

                for event in events:
                    if self.should_stop():
                        break

                    outcome = self.dispatch(db, event)
                    position = event.id
                    report.last_id = event.id

                    if outcome == DispatchOutcome.FAILED:
                        report.failed += 1
                        report.failed_ids.append(event.id)
                        pinned = True
                        continue

                    if outcome == DispatchOutcome.PROCESSED:
                        report.processed += 1
                    else:
                        report.skipped += 1
                    if not pinned:
                        advance_to = event.id

                if len(events) < self.batch_size:
                    break
        finally:
            db.close()
            # A scan starting past the cursor says nothing about the gap before it
            if start <= self.cursor:
                self.cursor = max(self.cursor, advance_to)

        if report.seen:
            logger.info(
                f"Scan from {start}: processed={report.processed} skipped={report.skipped} "
                f"failed={report.failed} cursor={self.cursor}"
            )
        return report
