from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from ..auth.deps import get_current_user
from ..config import MATCH_LIST_LIMIT, STREAM_HEARTBEAT_SECONDS
from ..deps import get_db, get_feed_registry, get_hub, get_read_factory, get_tx_factory
from ..http_helpers import sse_events
from ..services.conversations import list_matches
from ..services.feed import FeedSessionRegistry
from ..services.interactions import unmatch
from ..services.subscriptions import SnapshotHub, matches_topic, messages_topic

router = APIRouter()


@router.get("/matches")
def get_matches(
    current_user: dict[str, Any] = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: FeedSessionRegistry = Depends(get_feed_registry),
) -> dict[str, Any]:
    # Reuse a live feed session's cache without opening one just to list matches.
    session = registry.peek(current_user["uid"])
    cache = session.profile_cache if session is not None else None
    return {"matches": list_matches(db, current_user["uid"], limit=MATCH_LIST_LIMIT, profile_cache=cache)}


@router.get("/matches/stream")
def stream_matches(
    current_user: dict[str, Any] = Depends(get_current_user),
    read_session: sessionmaker = Depends(get_read_factory),
    registry: FeedSessionRegistry = Depends(get_feed_registry),
    hub: SnapshotHub = Depends(get_hub),
) -> StreamingResponse:
    uid = current_user["uid"]
    session = registry.peek(uid)
    cache = session.profile_cache if session is not None else {}

    def _load() -> list[dict[str, Any]]:
        with read_session() as db:
            return list_matches(db, uid, limit=MATCH_LIST_LIMIT, profile_cache=cache)

    subscription = hub.subscribe(matches_topic(uid), _load)
    return StreamingResponse(
        sse_events(subscription, "matches", STREAM_HEARTBEAT_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.delete("/matches/{other_uid}")
def delete_match(
    other_uid: str,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    hub: SnapshotHub = Depends(get_hub),
) -> dict[str, Any]:
    uid = current_user["uid"]
    result = unmatch(tx_session, uid, other_uid)
    hub.publish(matches_topic(uid), matches_topic(other_uid), messages_topic(result["match_id"]))
    return result
