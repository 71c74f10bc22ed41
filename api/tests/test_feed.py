from sqlalchemy.exc import OperationalError

from vibe.services import feed as feed_module
from vibe.services.ads import FALLBACK_ADS, house_entry
from vibe.services.feed import (
    AdRotation,
    FeedSession,
    FeedSessionRegistry,
    FeedState,
    build_feed_page,
    compose_feed,
    is_sponsored_id,
)
from vibe.services.profiles import get_profile

CENTER = (18.5362, 73.8940)
ADS = [{"ad_id": "a1", "name": "One"}, {"ad_id": "a2", "name": "Two"}, {"ad_id": "a3", "name": "Three"}]


def _cards(n, role="host"):
    return [{"id": f"u{i}", "uid": f"u{i}", "role": role} for i in range(n)]


def _inventory():
    return {"hunter": list(ADS), "host": list(ADS)}


def test_stride_three_puts_ads_at_positions_4_8_12():
    items = compose_feed(_cards(10), AdRotation(ADS), stride=3, min_viable=5, house=house_entry())

    assert len(items) == 13
    ad_positions = [i + 1 for i, item in enumerate(items) if item["is_ad"]]
    assert ad_positions == [4, 8, 12]
    assert [items[p - 1]["ad_id"] for p in ad_positions] == ["a1", "a2", "a3"]
    real = [item["id"] for item in items if not item["is_ad"]]
    assert real == [f"u{i}" for i in range(10)]


def test_default_stride_gives_one_ad_per_four_candidates():
    for n in (3, 4, 9, 17):
        items = compose_feed(_cards(n), AdRotation(ADS), stride=4, min_viable=0)
        assert sum(1 for item in items if item["is_ad"]) == n // 4


def test_ad_ids_are_unique_and_never_collide_with_users():
    items = compose_feed(_cards(12), AdRotation(ADS[:1]), stride=2, min_viable=0)
    ad_ids = [item["id"] for item in items if item["is_ad"]]

    assert len(ad_ids) == len(set(ad_ids)) == 6
    assert all(is_sponsored_id(ad_id) for ad_id in ad_ids)
    assert not any(is_sponsored_id(item["id"]) for item in items if not item["is_ad"])


def test_rotation_counter_keeps_advancing_and_wraps():
    rotation = AdRotation(ADS)
    picks = [rotation.next()["ad_id"] for _ in range(7)]

    assert picks == ["a1", "a2", "a3", "a1", "a2", "a3", "a1"]
    assert rotation.counter == 7
    assert AdRotation([]).next() is None


def test_short_feed_gets_one_house_entry():
    items = compose_feed(_cards(2), AdRotation(ADS), stride=4, min_viable=5, house=house_entry())

    assert [item["kind"] for item in items] == ["profile", "profile", "house"]
    assert items[-1]["is_ad"] is True
    assert items[-1]["ad_id"] == "house_premium"


def test_viable_feed_gets_no_house_entry():
    items = compose_feed(_cards(5), AdRotation(ADS), stride=4, min_viable=5, house=house_entry())
    assert not any(item["kind"] == "house" for item in items)


def test_empty_candidates_still_yield_house_entry():
    items = compose_feed([], AdRotation(ADS), stride=4, min_viable=5, house=house_entry())
    assert [item["kind"] for item in items] == ["house"]


def test_feed_state_merge_dedupes_and_keeps_single_house():
    state = FeedState()
    first = compose_feed(_cards(2), AdRotation(ADS), stride=4, min_viable=5, house=house_entry())
    second = compose_feed(_cards(3), AdRotation(ADS), stride=4, min_viable=5, house=house_entry())

    state.merge(first)
    added = state.merge(second)

    assert [item["id"] for item in added] == ["u2"]
    assert sum(1 for item in state.items() if item["kind"] == "house") == 1
    assert len(state) == 4


def test_feed_state_removes_by_id_not_position():
    state = FeedState()
    state.merge(compose_feed(_cards(4), AdRotation(ADS), stride=0, min_viable=0))

    assert state.remove("u2")["id"] == "u2"
    assert state.remove("u2") is None
    assert [item["id"] for item in state.items()] == ["u0", "u1", "u3"]


def test_refill_skips_while_fetch_in_flight():
    session = FeedSession("viewer", "hunter", _inventory())
    inner = {}

    def fetch(skip_ids):
        assert session.fetch_in_flight
        inner["result"] = session.refill(lambda _: _cards(1))
        return _cards(2)

    added = session.refill(fetch, stride=4, min_viable=0)

    assert inner["result"] is None
    assert [item["id"] for item in added] == ["u0", "u1"]
    assert not session.fetch_in_flight


def test_refill_releases_guard_when_fetch_fails():
    session = FeedSession("viewer", "hunter", _inventory())

    def boom(skip_ids):
        raise RuntimeError("backend down")

    try:
        session.refill(boom)
    except RuntimeError:
        pass
    assert not session.fetch_in_flight


def test_refill_passes_seen_and_current_ids_as_skip_set():
    session = FeedSession("viewer", "hunter", _inventory())
    session.refill(lambda _: _cards(2), stride=0, min_viable=0)
    seen = {}

    def fetch(skip_ids):
        seen["skip"] = set(skip_ids)
        return []

    session.refill(fetch, stride=0, min_viable=0)
    assert {"u0", "u1"} <= seen["skip"]

    session.reset()
    session.refill(fetch, stride=0, min_viable=0)
    assert seen["skip"] == set()


def test_two_phase_swipe_requeues_failed_card_at_front():
    session = FeedSession("viewer", "hunter", _inventory())
    session.refill(lambda _: _cards(3), stride=0, min_viable=0)

    session.begin_swipe("u0")
    assert [item["id"] for item in session.items()] == ["u1", "u2"]
    assert session.pending_ids() == {"u0"}

    assert session.fail_swipe("u0") is True
    assert [item["id"] for item in session.items()] == ["u0", "u1", "u2"]
    assert session.pending_ids() == set()

    session.begin_swipe("u1")
    session.confirm_swipe("u1")
    assert [item["id"] for item in session.items()] == ["u0", "u2"]
    assert session.pending_ids() == set()


def test_failed_swipe_without_requeue_drops_card():
    session = FeedSession("viewer", "hunter", _inventory())
    session.refill(lambda _: _cards(2), stride=0, min_viable=0)

    session.begin_swipe("u0")
    assert session.fail_swipe("u0", requeue=False) is False
    assert [item["id"] for item in session.items()] == ["u1"]


def test_registry_reuses_sessions_and_end_clears_them():
    registry = FeedSessionRegistry(_inventory())
    session = registry.get("viewer", "hunter")
    session.refill(lambda _: _cards(2), stride=0, min_viable=0)

    assert registry.get("viewer") is session
    assert registry.end("viewer") is True
    assert registry.end("viewer") is False
    assert registry.get("viewer", "hunter") is not session


def test_registry_drops_sessions_idle_past_ttl():
    now = [0.0]
    registry = FeedSessionRegistry(_inventory(), ttl_seconds=10, clock=lambda: now[0])
    stale = registry.get("stale", "hunter")
    stale.refill(lambda _: _cards(2), stride=0, min_viable=0)
    now[0] = 5.0
    fresh = registry.get("fresh", "hunter")

    now[0] = 12.0
    assert registry.get("fresh") is fresh
    assert len(registry) == 1
    assert stale.items() == []
    assert registry.peek("stale") is None


def test_registry_evicts_least_recently_used_past_max():
    registry = FeedSessionRegistry(_inventory(), max_sessions=2)
    first = registry.get("u1", "hunter")
    registry.get("u2", "hunter")
    registry.get("u1")
    registry.get("u3", "hunter")

    assert len(registry) == 2
    assert registry.peek("u1") is first
    assert registry.peek("u2") is None
    assert registry.peek("u3") is not None


def test_peek_never_creates_a_session():
    registry = FeedSessionRegistry(_inventory())

    assert registry.peek("viewer") is None
    assert len(registry) == 0
    session = registry.get("viewer", "hunter")
    assert registry.peek("viewer") is session


def test_role_switch_resets_rotation_and_items():
    registry = FeedSessionRegistry({"hunter": list(ADS), "host": [{"ad_id": "h1", "name": "Host ad"}]})
    session = registry.get("viewer", "hunter")
    session.refill(lambda _: _cards(2), stride=1, min_viable=0)
    assert len(session.items()) == 4

    registry.get("viewer", "host")
    assert session.items() == []
    assert session.rotation.next()["ad_id"] == "h1"


def test_build_feed_page_serves_nearby_opposite_role(db, add_profile):
    add_profile("viewer", role="hunter", lat=CENTER[0], lng=CENTER[1])
    add_profile("host-near", role="host", lat=CENTER[0] + 0.01, lng=CENTER[1])
    add_profile("hunter-near", role="hunter", lat=CENTER[0] + 0.01, lng=CENTER[1])
    add_profile("host-far", role="host", lat=CENTER[0] + 1.0, lng=CENTER[1])
    viewer = get_profile(db, "viewer")
    session = FeedSession("viewer", "hunter", {"hunter": list(FALLBACK_ADS["hunter"])})

    page = build_feed_page(db, session, viewer, 10)

    assert page["retry"] is False
    profiles = [item for item in page["items"] if not item["is_ad"]]
    assert [item["id"] for item in profiles] == ["host-near"]
    assert profiles[0]["distance_km"] > 0
    assert 60 <= profiles[0]["compatibility"] <= 99
    assert page["items"][-1]["kind"] == "house"

    again = build_feed_page(db, session, viewer, 10)
    assert again["added"] == 0


def test_build_feed_page_without_location(db, add_profile):
    add_profile("viewer", role="hunter", lat=None, lng=None)
    viewer = get_profile(db, "viewer")
    session = FeedSession("viewer", "hunter", _inventory())

    page = build_feed_page(db, session, viewer, 10)

    assert page["reason"] == "missing_location"
    assert page["items"] == []


def test_build_feed_page_degrades_to_retry_on_store_failure(db, add_profile, monkeypatch):
    add_profile("viewer", role="hunter")
    viewer = get_profile(db, "viewer")
    session = FeedSession("viewer", "hunter", _inventory())

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    monkeypatch.setattr(feed_module, "fetch_nearby_profiles", broken)
    page = build_feed_page(db, session, viewer, 10)

    assert page == {"items": [], "added": 0, "retry": True}
    assert not session.fetch_in_flight
