"""Test doubles and helpers shared by the event queue tests."""

import queue
import threading
import time

from eventqueue.notify.base import NotificationListener

DROP = object()


class RecordingHandler:
    """Handler that records event ids and fails for selected ids."""

    def __init__(self, fail_ids=()):
        self.calls: list[int] = []
        self.fail_ids = set(fail_ids)
        self._lock = threading.Lock()

    def __call__(self, event):
        with self._lock:
            self.calls.append(event.id)
        if event.id in self.fail_ids:
            raise RuntimeError(f"handler failed for {event.id}")


class ScriptedListener(NotificationListener):
    """
    In-process notification transport.

    publish() is at-most-once like NOTIFY: payloads published while the
    listener is disconnected are lost.
    """

    transport = "scripted"

    def __init__(self, on_wake, **kwargs):
        kwargs.setdefault("timeout", 0.05)
        kwargs.setdefault("base_backoff", 0.01)
        super().__init__(on_wake, **kwargs)
        self.inbox: queue.Queue = queue.Queue()
        self.connected = threading.Event()
        self.allow_open = threading.Event()
        self.allow_open.set()
        self.fail_opens = 0
        self.opens = 0

    def open(self):
        while not self.allow_open.wait(0.01):
            if self.stopped:
                raise ConnectionError("stopped while connecting")
        if self.fail_opens:
            self.fail_opens -= 1
            raise ConnectionError("connection refused")
        self.opens += 1
        self.connected.set()

    def receive(self, timeout):
        try:
            item = self.inbox.get(timeout=timeout)
        except queue.Empty:
            return []
        if item is DROP:
            raise ConnectionError("connection dropped")
        return [item]

    def close(self):
        self.connected.clear()

    def publish(self, payload: str) -> bool:
        if not self.connected.is_set():
            return False
        self.inbox.put(payload)
        return True

    def drop(self):
        self.inbox.put(DROP)


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll predicate until true or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
