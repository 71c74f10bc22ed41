import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session, sessionmaker

from ..auth.deps import get_current_user
from ..deps import get_db, get_feed_registry, get_hub, get_storage, get_tx_factory
from ..http_helpers import read_uploaded_image
from ..schemas import PhoneInput
from ..services.feed import FeedSessionRegistry
from ..services.media import MediaStorage
from ..services.profiles import delete_account, get_profile, profile_to_dict, save_profile, set_phone_number
from ..services.subscriptions import SnapshotHub, matches_topic
from ..services.triggers import purge_user_media, sync_profile_snapshots

logger = logging.getLogger(__name__)

router = APIRouter()


def _sync_and_publish(tx_session: sessionmaker, hub: SnapshotHub, uid: str) -> None:
    counterparts = sync_profile_snapshots(tx_session, uid)
    hub.publish(matches_topic(uid), *(matches_topic(other) for other in counterparts))


@router.get("/me/profile")
def read_my_profile(
    current_user: dict[str, Any] = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    profile = get_profile(db, current_user["uid"])
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": profile_to_dict(profile)}


@router.put("/me/profile")
def update_my_profile(
    payload: dict[str, Any],
    background: BackgroundTasks,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    hub: SnapshotHub = Depends(get_hub),
) -> dict[str, Any]:
    profile = save_profile(tx_session, current_user["uid"], payload)
    background.add_task(_sync_and_publish, tx_session, hub, current_user["uid"])
    return {"profile": profile}


@router.delete("/me/profile")
def delete_my_account(
    background: BackgroundTasks,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    registry: FeedSessionRegistry = Depends(get_feed_registry),
    hub: SnapshotHub = Depends(get_hub),
    storage: MediaStorage = Depends(get_storage),
) -> dict[str, Any]:
    uid = current_user["uid"]
    summary = delete_account(tx_session, uid)
    registry.end(uid)
    background.add_task(purge_user_media, storage, uid)
    hub.publish(*(matches_topic(other) for other in summary["counterparts"]))
    return {"status": "deleted", **summary}


@router.post("/me/photos")
async def upload_photo(
    file: UploadFile = File(...),
    current_user: dict[str, Any] = Depends(get_current_user),
    storage: MediaStorage = Depends(get_storage),
) -> dict[str, Any]:
    data, content_type = await read_uploaded_image(file)
    path = storage.save(current_user["uid"], data, content_type)
    logger.info("[PROFILE] photo stored for %s at %s", current_user["uid"], path)
    return {"path": path, "url": storage.public_url(path)}


@router.post("/me/phone")
def update_phone(
    payload: PhoneInput,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
) -> dict[str, Any]:
    phone = set_phone_number(tx_session, current_user["uid"], payload.phone_number)
    return {"phone_number": phone}
