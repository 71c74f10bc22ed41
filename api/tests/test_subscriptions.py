import threading

import pytest

from vibe.errors import NotFoundError
from vibe.http_helpers import sse_events
from vibe.services.subscriptions import SnapshotHub, matches_topic, messages_topic


def _counter():
    calls = {"n": 0}

    def load():
        calls["n"] += 1
        return calls["n"]

    return calls, load


def test_first_read_delivers_initial_snapshot():
    hub = SnapshotHub()
    calls, load = _counter()
    with hub.subscribe(matches_topic("alice"), load) as sub:
        assert sub.next_snapshot(timeout=0) == 1
        assert sub.next_snapshot(timeout=0) is None
    assert calls["n"] == 1


def test_notifications_coalesce_into_one_snapshot():
    hub = SnapshotHub()
    calls, load = _counter()
    sub = hub.subscribe(messages_topic("alice_bob"), load)
    sub.next_snapshot(timeout=0)

    assert hub.publish(messages_topic("alice_bob")) == 1
    hub.publish(messages_topic("alice_bob"))
    hub.publish(messages_topic("alice_bob"))

    assert sub.next_snapshot(timeout=0) == 2
    assert sub.next_snapshot(timeout=0) is None
    sub.close()


def test_publish_only_reaches_matching_topics():
    hub = SnapshotHub()
    _, load = _counter()
    alice = hub.subscribe(matches_topic("alice"), load)
    hub.subscribe(matches_topic("alice"), load)
    hub.subscribe(matches_topic("bob"), load)

    assert hub.subscriber_count(matches_topic("alice")) == 2
    assert hub.publish(matches_topic("alice")) == 2
    assert hub.publish(matches_topic("alice"), matches_topic("bob")) == 3
    assert hub.publish(matches_topic("carol")) == 0

    alice.close()
    assert hub.subscriber_count(matches_topic("alice")) == 1


def test_close_ends_stream_and_wakes_waiter():
    hub = SnapshotHub()
    sub = hub.subscribe("t", lambda: "snap")
    results = []

    def consume():
        for item in sub.stream(heartbeat=5):
            results.append(item)

    worker = threading.Thread(target=consume)
    worker.start()
    sub.close()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert set(results) <= {"snap", None}
    assert hub.subscriber_count("t") == 0
    assert sub.next_snapshot(timeout=0) is None


def test_stream_yields_none_on_idle():
    hub = SnapshotHub()
    sub = hub.subscribe("t", lambda: "snap")
    stream = sub.stream(heartbeat=0.01)

    assert next(stream) == "snap"
    assert next(stream) is None
    hub.publish("t")
    assert next(stream) == "snap"
    sub.close()


def test_sse_frames_and_cleanup():
    hub = SnapshotHub()
    sub = hub.subscribe(matches_topic("alice"), lambda: [{"match_id": "alice_bob"}])
    frames = sse_events(sub, "matches", heartbeat=0.01)

    assert next(frames) == 'event: matches\ndata: [{"match_id": "alice_bob"}]\n\n'
    assert next(frames) == ": keep-alive\n\n"
    frames.close()

    assert sub.closed
    assert hub.subscriber_count(matches_topic("alice")) == 0


def test_sse_ends_with_closed_event_when_snapshot_is_gone():
    hub = SnapshotHub()
    state = {"gone": False}

    def load():
        if state["gone"]:
            raise NotFoundError("Match not found")
        return [{"id": "m1"}]

    sub = hub.subscribe(messages_topic("alice_bob"), load)
    frames = sse_events(sub, "messages", heartbeat=1)
    assert next(frames) == 'event: messages\ndata: [{"id": "m1"}]\n\n'

    state["gone"] = True
    hub.publish(messages_topic("alice_bob"))

    assert next(frames) == 'event: closed\ndata: {"detail": "Match not found"}\n\n'
    with pytest.raises(StopIteration):
        next(frames)
    assert sub.closed
    assert hub.subscriber_count(messages_topic("alice_bob")) == 0
