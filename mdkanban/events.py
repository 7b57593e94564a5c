"""
Change notifier: fans board change messages out to connected SSE clients.

The notifier is created once by the server and injected into the watcher
and the routes; nothing here is module-global.
"""
import json
import logging
import queue
import threading
import time
from typing import Any, Dict, Iterator, Set

logger = logging.getLogger(__name__)

KEEPALIVE_SECS = 15.0


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def format_sse(message: Dict[str, Any]) -> str:
    """One Server-Sent-Events frame carrying a JSON payload."""
    return f"data: {json.dumps(message)}\n\n"


class Subscription:
    """One connected client's inbox."""

    def __init__(self, maxsize: int = 100):
        self.queue: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=maxsize)
        self.closed = False


class ChangeNotifier:
    """Routes change messages to every subscriber."""

    def __init__(self, max_queue: int = 100):
        self.max_queue = max_queue
        self._subscribers: Set[Subscription] = set()
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """Register a new client."""
        sub = Subscription(self.max_queue)
        with self._lock:
            self._subscribers.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.closed = True
        with self._lock:
            self._subscribers.discard(sub)

    def publish(self, message: Dict[str, Any]) -> int:
        """Deliver a message to all subscribers. Returns how many got it.

        A client whose inbox is full is disconnected instead of blocking
        the publisher (usually the watcher thread).
        """
        with self._lock:
            subscribers = list(self._subscribers)
        delivered = 0
        for sub in subscribers:
            try:
                sub.queue.put_nowait(message)
                delivered += 1
            except queue.Full:
                logger.warning("Dropping slow SSE client (queue full)")
                self.unsubscribe(sub)
        return delivered

    def stream(self, sub: Subscription, keepalive: float = KEEPALIVE_SECS) -> Iterator[str]:
        """SSE frames for one client until it disconnects."""
        try:
            yield format_sse({"event": "connected"})
            while not sub.closed:
                try:
                    message = sub.queue.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield format_sse(message)
        finally:
            self.unsubscribe(sub)
