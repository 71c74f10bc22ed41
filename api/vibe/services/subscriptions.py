import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Iterator

from ..config import STREAM_HEARTBEAT_SECONDS

logger = logging.getLogger(__name__)


def matches_topic(uid: str) -> str:
    return f"matches:{uid}"


def messages_topic(match_id: str) -> str:
    return f"messages:{match_id}"


def likes_topic(uid: str) -> str:
    return f"likes:{uid}"


class Subscription:
    """A live view over one topic.

    Every delivery re-runs ``load`` and hands back the full current snapshot.
    Notifications that pile up before the consumer reads collapse into one.
    """

    def __init__(self, hub: "SnapshotHub", topic: str, load: Callable[[], Any]):
        self.topic = topic
        self._hub = hub
        self._load = load
        self._dirty = threading.Event()
        self._dirty.set()
        self.closed = False

    def notify(self) -> None:
        self._dirty.set()

    def next_snapshot(self, timeout: float | None = None) -> Any | None:
        """Block until something changed; ``None`` on timeout or after ``close``."""
        if self.closed:
            return None
        if not self._dirty.wait(timeout):
            return None
        self._dirty.clear()
        if self.closed:
            return None
        return self._load()

    def stream(self, heartbeat: float = STREAM_HEARTBEAT_SECONDS) -> Iterator[Any | None]:
        # Yields None on idle so the transport can send a keep-alive.
        while not self.closed:
            yield self.next_snapshot(timeout=heartbeat)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._hub._remove(self)
        self._dirty.set()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class SnapshotHub:
    def __init__(self) -> None:
        self._subs: dict[str, set[Subscription]] = defaultdict(set)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, load: Callable[[], Any]) -> Subscription:
        sub = Subscription(self, topic, load)
        with self._lock:
            self._subs[topic].add(sub)
        return sub

    def publish(self, *topics: str) -> int:
        with self._lock:
            targets = [sub for topic in topics for sub in self._subs.get(topic, ())]
        for sub in targets:
            sub.notify()
        if targets:
            logger.debug("[STREAM] notified %s subscribers on %s", len(targets), ",".join(topics))
        return len(targets)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subs.get(topic, ()))

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subs.get(sub.topic)
            if subs is None:
                return
            subs.discard(sub)
            if not subs:
                del self._subs[sub.topic]
