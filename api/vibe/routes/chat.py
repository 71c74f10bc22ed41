from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from ..auth.deps import get_current_user
from ..config import MESSAGE_PAGE_LIMIT, RL_MESSAGE_LIMIT, RL_WINDOW_SECONDS, STREAM_HEARTBEAT_SECONDS
from ..deps import get_db, get_hub, get_read_factory, get_tx_factory
from ..http_helpers import sse_events
from ..schemas import SendMessageRequest
from ..services.conversations import list_messages, mark_as_read, send_message
from ..services.rate_limit import rate_limit_dependency
from ..services.subscriptions import SnapshotHub, matches_topic, messages_topic
from ..services.triggers import record_message_delivery

router = APIRouter()

RL_MESSAGE = rate_limit_dependency("message", RL_MESSAGE_LIMIT, RL_WINDOW_SECONDS)


def _deliver(tx_session: sessionmaker, hub: SnapshotHub, match_id: str, sender_uid: str) -> None:
    if record_message_delivery(tx_session, match_id, sender_uid):
        hub.publish(*(matches_topic(uid) for uid in match_id.split("_")))


@router.get("/matches/{match_id}/messages")
def get_messages(
    match_id: str,
    limit: int = Query(default=MESSAGE_PAGE_LIMIT, ge=1, le=200),
    current_user: dict[str, Any] = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"messages": list_messages(db, match_id, current_user["uid"], limit=limit)}


@router.get("/matches/{match_id}/messages/stream")
def stream_messages(
    match_id: str,
    limit: int = Query(default=MESSAGE_PAGE_LIMIT, ge=1, le=200),
    current_user: dict[str, Any] = Depends(get_current_user),
    read_session: sessionmaker = Depends(get_read_factory),
    hub: SnapshotHub = Depends(get_hub),
) -> StreamingResponse:
    uid = current_user["uid"]

    def _load() -> list[dict[str, Any]]:
        with read_session() as db:
            return list_messages(db, match_id, uid, limit=limit)

    # Membership is checked before the stream opens so errors surface as HTTP status codes.
    _load()
    subscription = hub.subscribe(messages_topic(match_id), _load)
    return StreamingResponse(
        sse_events(subscription, "messages", STREAM_HEARTBEAT_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.post("/matches/{match_id}/messages", dependencies=[RL_MESSAGE])
def post_message(
    match_id: str,
    payload: SendMessageRequest,
    background: BackgroundTasks,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    hub: SnapshotHub = Depends(get_hub),
) -> dict[str, Any]:
    message = send_message(tx_session, match_id, current_user["uid"], payload.text)
    hub.publish(messages_topic(match_id))
    background.add_task(_deliver, tx_session, hub, match_id, current_user["uid"])
    return {"message": message}


@router.post("/matches/{match_id}/read")
def read_match(
    match_id: str,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    hub: SnapshotHub = Depends(get_hub),
) -> dict[str, Any]:
    counts = mark_as_read(tx_session, match_id, current_user["uid"])
    hub.publish(matches_topic(current_user["uid"]))
    return {"match_id": match_id, "unread": counts.get(current_user["uid"], 0)}
