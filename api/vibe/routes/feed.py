from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.deps import get_current_user
from ..config import FEED_MAX_RADIUS_KM, FEED_RADIUS_KM
from ..deps import get_db, get_feed_registry
from ..services.feed import FeedSessionRegistry, build_feed_page
from ..services.profiles import get_profile

router = APIRouter()


@router.get("/feed")
def get_feed(
    radius_km: float = Query(default=FEED_RADIUS_KM),
    current_user: dict[str, Any] = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: FeedSessionRegistry = Depends(get_feed_registry),
) -> dict[str, Any]:
    if not 0 < radius_km <= FEED_MAX_RADIUS_KM:
        raise HTTPException(status_code=400, detail=f"radius_km must be in (0, {FEED_MAX_RADIUS_KM:g}]")
    viewer = get_profile(db, current_user["uid"])
    if viewer is None:
        raise HTTPException(status_code=404, detail="Create your profile first")
    session = registry.get(viewer.uid, viewer.role)
    return build_feed_page(db, session, viewer, radius_km)


@router.delete("/feed/session")
def end_feed_session(
    current_user: dict[str, Any] = Depends(get_current_user),
    registry: FeedSessionRegistry = Depends(get_feed_registry),
) -> dict[str, Any]:
    return {"ended": registry.end(current_user["uid"])}
