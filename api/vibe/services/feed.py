from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import (
    AD_STRIDE,
    FEED_MIN_VIABLE,
    FEED_SESSION_MAX,
    FEED_SESSION_TTL_SECONDS,
    GEO_BUCKET_LIMIT,
    GEO_MAX_RESULTS,
    INTERACTION_WINDOW_DAYS,
)
from ..models import UserProfile
from .ads import house_entry, load_ad_inventory
from .exclusion import fetch_blocked_ids, fetch_recent_interaction_ids, filter_candidates
from .geo import round_distance, valid_coordinate
from .nearby import NearbyProfile, fetch_nearby_profiles
from .profiles import compatibility_score

logger = logging.getLogger(__name__)

SPONSORED_ID_PREFIX = "sponsored:"


class AdRotation:
    """Round-robin over a role's sponsored entries. The counter only moves forward."""

    def __init__(self, entries: list[dict[str, Any]]):
        self._entries = list(entries)
        self.counter = 0

    def __bool__(self) -> bool:
        return bool(self._entries)

    def next(self) -> dict[str, Any] | None:
        if not self._entries:
            return None
        entry = self._entries[self.counter % len(self._entries)]
        self.counter += 1
        return dict(entry)


def sponsored_item(entry: dict[str, Any], kind: str = "sponsored") -> dict[str, Any]:
    item = dict(entry)
    item["id"] = f"{SPONSORED_ID_PREFIX}{uuid.uuid4().hex}"
    item["is_ad"] = True
    item["kind"] = kind
    return item


def is_sponsored_id(item_id: str) -> bool:
    return str(item_id).startswith(SPONSORED_ID_PREFIX)


def compose_feed(
    candidates: list[dict[str, Any]],
    rotation: AdRotation,
    *,
    stride: int = AD_STRIDE,
    min_viable: int = FEED_MIN_VIABLE,
    house: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    real = 0
    for candidate in candidates:
        items.append({**candidate, "is_ad": False, "kind": "profile"})
        real += 1
        if stride > 0 and real % stride == 0:
            entry = rotation.next()
            if entry is not None:
                items.append(sponsored_item(entry))
    if house is not None and len(items) < min_viable:
        items.append(sponsored_item(house, kind="house"))
    return items


class FeedState:
    """Client-held feed: ordered, unique by id, removal by id."""

    def __init__(self) -> None:
        self._items: list[dict[str, Any]] = []

    def ids(self) -> set[str]:
        return {item["id"] for item in self._items}

    def items(self) -> list[dict[str, Any]]:
        return [dict(item) for item in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def merge(self, page: list[dict[str, Any]]) -> list[dict[str, Any]]:
        present = self.ids()
        has_house = any(item.get("kind") == "house" for item in self._items)
        added = []
        for item in page:
            if item["id"] in present:
                continue
            if item.get("kind") == "house":
                if has_house:
                    continue
                has_house = True
            present.add(item["id"])
            self._items.append(item)
            added.append(item)
        return added

    def remove(self, item_id: str) -> dict[str, Any] | None:
        for index, item in enumerate(self._items):
            if item["id"] == item_id:
                return self._items.pop(index)
        return None

    def push_front(self, item: dict[str, Any]) -> bool:
        if item["id"] in self.ids():
            return False
        self._items.insert(0, item)
        return True

    def clear(self) -> None:
        self._items = []


class FeedSession:
    """Per-user session state: seen-cache, ad rotation, feed, pending swipes.

    Lives for one login session and is dropped by ``reset`` on logout. The
    seen-cache is a cost optimisation only; the interaction history in the store
    stays the authority on who was already swiped.
    """

    def __init__(self, uid: str, role: str | None, inventory: dict[str, list[dict[str, Any]]] | None = None):
        self.uid = uid
        self.role = role
        self._inventory = inventory if inventory is not None else load_ad_inventory()
        self.rotation = AdRotation(self._inventory.get(role or "", []))
        self.state = FeedState()
        self.seen: set[str] = set()
        self.profile_cache: dict[str, dict[str, Any]] = {}
        self._pending: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._fetch_guard = threading.Lock()

    @property
    def fetch_in_flight(self) -> bool:
        return self._fetch_guard.locked()

    def set_role(self, role: str | None) -> None:
        with self._lock:
            if role != self.role:
                self.role = role
                self.rotation = AdRotation(self._inventory.get(role or "", []))
                self.state.clear()

    def items(self) -> list[dict[str, Any]]:
        with self._lock:
            return self.state.items()

    def refill(
        self,
        fetch: Callable[[set[str]], list[dict[str, Any]]],
        *,
        stride: int = AD_STRIDE,
        min_viable: int = FEED_MIN_VIABLE,
        house: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]] | None:
        """Fetch, compose and merge a page. Returns ``None`` when a fetch is already running."""
        if not self._fetch_guard.acquire(blocking=False):
            logger.debug("[FEED] refill skipped for %s: fetch already in flight", self.uid)
            return None
        try:
            with self._lock:
                skip = set(self.seen) | self.state.ids() | set(self._pending)
            candidates = fetch(skip)
            with self._lock:
                page = compose_feed(candidates, self.rotation, stride=stride, min_viable=min_viable, house=house)
                added = self.state.merge(page)
                self.seen.update(c["id"] for c in candidates)
            return added
        finally:
            self._fetch_guard.release()

    def begin_swipe(self, item_id: str) -> dict[str, Any] | None:
        """Phase one: take the card out of view and mark it pending."""
        with self._lock:
            item = self.state.remove(item_id)
            self._pending[item_id] = item or {"id": item_id, "is_ad": is_sponsored_id(item_id)}
            return item

    def confirm_swipe(self, item_id: str) -> None:
        with self._lock:
            self._pending.pop(item_id, None)

    def fail_swipe(self, item_id: str, *, requeue: bool = True) -> bool:
        """Phase two on failure. A re-queued card goes back to the front for a retry."""
        with self._lock:
            item = self._pending.pop(item_id, None)
            if not requeue or not item or item.get("is_ad") or "kind" not in item:
                return False
            return self.state.push_front(item)

    def pending_ids(self) -> set[str]:
        with self._lock:
            return set(self._pending)

    def reset(self) -> None:
        with self._lock:
            self.state.clear()
            self.seen.clear()
            self.profile_cache.clear()
            self._pending.clear()
            self.rotation = AdRotation(self._inventory.get(self.role or "", []))


class FeedSessionRegistry:
    """uid -> FeedSession, bounded by an idle TTL and a maximum size (least recently used goes first)."""

    def __init__(
        self,
        inventory: dict[str, list[dict[str, Any]]] | None = None,
        *,
        ttl_seconds: float = FEED_SESSION_TTL_SECONDS,
        max_sessions: int = FEED_SESSION_MAX,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._inventory = inventory
        self._sessions: OrderedDict[str, FeedSession] = OrderedDict()
        self._touched: dict[str, float] = {}
        self._ttl = ttl_seconds
        self._max = max(1, max_sessions)
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _evict_locked(self, now: float) -> list[FeedSession]:
        evicted = []
        while self._sessions:
            uid, session = next(iter(self._sessions.items()))
            if len(self._sessions) <= self._max and now - self._touched[uid] <= self._ttl:
                break
            self._sessions.popitem(last=False)
            self._touched.pop(uid, None)
            evicted.append(session)
        return evicted

    def peek(self, uid: str) -> FeedSession | None:
        """The live session for ``uid`` if there is one; never creates."""
        with self._lock:
            now = self._clock()
            evicted = self._evict_locked(now)
            session = self._sessions.get(uid)
            if session is not None:
                self._sessions.move_to_end(uid)
                self._touched[uid] = now
        for stale in evicted:
            stale.reset()
        return session

    def get(self, uid: str, role: str | None = None) -> FeedSession:
        with self._lock:
            now = self._clock()
            session = self._sessions.get(uid)
            if session is None:
                if self._inventory is None:
                    self._inventory = load_ad_inventory()
                session = FeedSession(uid, role, inventory=self._inventory)
                self._sessions[uid] = session
            self._sessions.move_to_end(uid)
            self._touched[uid] = now
            evicted = self._evict_locked(now)
        for stale in evicted:
            logger.debug("[FEED] evicted idle session for %s", stale.uid)
            stale.reset()
        if role is not None and session.role != role:
            session.set_role(role)
        return session

    def end(self, uid: str) -> bool:
        with self._lock:
            session = self._sessions.pop(uid, None)
            self._touched.pop(uid, None)
        if session is None:
            return False
        session.reset()
        return True


def candidate_card(nearby: NearbyProfile, viewer_tags: list[str] | None = None) -> dict[str, Any]:
    p = nearby.profile
    card: dict[str, Any] = {
        "id": p.uid,
        "uid": p.uid,
        "role": p.role,
        "name": p.name,
        "age": p.age,
        "bio": p.bio,
        "occupation": p.occupation,
        "img": p.img,
        "images": list(p.images or []),
        "tags": list(p.tags or []),
        "distance_km": round_distance(nearby.distance_km),
        "compatibility": compatibility_score(viewer_tags or [], list(p.tags or [])),
    }
    if p.role == "host":
        card["rent"] = p.rent
        card["locality"] = p.locality
    else:
        card["budget"] = p.budget
        card["move_in"] = p.move_in
    return card


def build_feed_page(
    db: Session,
    session: FeedSession,
    viewer: UserProfile,
    radius_km: float,
    *,
    window_days: int = INTERACTION_WINDOW_DAYS,
    per_bucket_limit: int = GEO_BUCKET_LIMIT,
    max_results: int = GEO_MAX_RESULTS,
    stride: int = AD_STRIDE,
    min_viable: int = FEED_MIN_VIABLE,
) -> dict[str, Any]:
    if not valid_coordinate(viewer.lat, viewer.lng):
        return {"items": session.items(), "added": 0, "retry": False, "reason": "missing_location"}

    center = (float(viewer.lat), float(viewer.lng))

    def _fetch(skip_ids: set[str]) -> list[dict[str, Any]]:
        nearby = fetch_nearby_profiles(db, center, radius_km, per_bucket_limit=per_bucket_limit, max_results=max_results)
        excluded = {viewer.uid} | fetch_blocked_ids(db, viewer.uid)
        recent = fetch_recent_interaction_ids(db, viewer.uid, window_days=window_days)
        cards = [candidate_card(n, list(viewer.tags or [])) for n in nearby]
        return filter_candidates(
            cards,
            viewer_uid=viewer.uid,
            viewer_role=viewer.role,
            excluded_ids=excluded,
            recent_ids=recent,
            seen_ids=skip_ids,
        )

    try:
        added = session.refill(_fetch, stride=stride, min_viable=min_viable, house=house_entry())
    except SQLAlchemyError as exc:
        logger.warning("[FEED] refill failed for %s: %s", viewer.uid, exc)
        return {"items": session.items(), "added": 0, "retry": True}

    if added is None:
        return {"items": session.items(), "added": 0, "retry": False, "refilling": True}
    logger.info("[FEED] uid=%s radius_km=%s added=%s", viewer.uid, radius_km, len(added))
    return {"items": session.items(), "added": len(added), "retry": False}
