import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from ..auth.deps import get_current_user
from ..config import REQUEUE_FAILED_SWIPES, RL_SWIPE_LIMIT, RL_WINDOW_SECONDS
from ..deps import get_feed_registry, get_hub, get_tx_factory
from ..errors import TransactionConflictError
from ..schemas import SwipeRequest, SwipeResponse
from ..services.feed import FeedSessionRegistry, is_sponsored_id
from ..services.interactions import like, pass_
from ..services.rate_limit import rate_limit_dependency
from ..services.subscriptions import SnapshotHub, likes_topic, matches_topic

logger = logging.getLogger(__name__)

router = APIRouter()

RL_SWIPE = rate_limit_dependency("swipe", RL_SWIPE_LIMIT, RL_WINDOW_SECONDS)


@router.post("/swipes", response_model=SwipeResponse, dependencies=[RL_SWIPE])
def swipe(
    payload: SwipeRequest,
    background: BackgroundTasks,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    registry: FeedSessionRegistry = Depends(get_feed_registry),
    hub: SnapshotHub = Depends(get_hub),
) -> SwipeResponse:
    uid = current_user["uid"]
    target = payload.target_id.strip()
    session = registry.get(uid)
    session.begin_swipe(target)

    if is_sponsored_id(target):
        session.confirm_swipe(target)
        return SwipeResponse(recorded=True, is_ad=True)

    try:
        if payload.direction == "like":
            outcome = like(tx_session, uid, target)
        else:
            pass_(tx_session, uid, target)
            outcome = None
    except (TransactionConflictError, OperationalError) as exc:
        requeued = session.fail_swipe(target, requeue=REQUEUE_FAILED_SWIPES)
        logger.warning("[SWIPE] %s on %s by %s not recorded: %s", payload.direction, target, uid, exc)
        return SwipeResponse(recorded=False, requeued=requeued)
    except Exception:
        session.fail_swipe(target, requeue=False)
        raise

    session.confirm_swipe(target)
    if outcome is None:
        return SwipeResponse(recorded=True)
    if outcome.is_match:
        background.add_task(
            hub.publish, matches_topic(uid), matches_topic(target), likes_topic(uid), likes_topic(target)
        )
    else:
        background.add_task(hub.publish, likes_topic(target))
    return SwipeResponse(
        recorded=True,
        is_match=outcome.is_match,
        match_id=outcome.match_id,
        counterpart=outcome.counterpart,
    )
