from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, sessionmaker

from ..auth.deps import get_current_user
from ..deps import get_db, get_hub, get_tx_factory
from ..services.interactions import list_incoming_likes, reveal_like
from ..services.subscriptions import SnapshotHub, likes_topic

router = APIRouter()


@router.get("/likes")
def list_likes(
    current_user: dict[str, Any] = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    likes = list_incoming_likes(db, current_user["uid"])
    return {"likes": likes, "count": len(likes)}


@router.post("/likes/{from_uid}/reveal")
def reveal(
    from_uid: str,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    hub: SnapshotHub = Depends(get_hub),
) -> dict[str, Any]:
    sender = reveal_like(tx_session, current_user["uid"], from_uid)
    hub.publish(likes_topic(current_user["uid"]))
    return {"from_uid": from_uid, "sender": sender}
