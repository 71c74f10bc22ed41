from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, sessionmaker

from ..auth.deps import get_current_user
from ..config import RL_REPORT_LIMIT, RL_WINDOW_SECONDS
from ..deps import get_db, get_hub, get_tx_factory
from ..schemas import BlockRequest, ReportRequest
from ..services.rate_limit import rate_limit_dependency
from ..services.safety import block_user, list_blocks, report_user, unblock_user
from ..services.subscriptions import SnapshotHub, matches_topic

router = APIRouter()

RL_REPORT = rate_limit_dependency("report", RL_REPORT_LIMIT, RL_WINDOW_SECONDS)


@router.post("/safety/blocks")
def safety_block(
    payload: BlockRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    hub: SnapshotHub = Depends(get_hub),
) -> dict[str, Any]:
    result = block_user(tx_session, current_user["uid"], payload.blocked_uid)
    if result["match_deleted"]:
        hub.publish(matches_topic(current_user["uid"]), matches_topic(result["blocked_uid"]))
    return {"status": "blocked", **result}


@router.delete("/safety/blocks/{blocked_uid}")
def safety_unblock(
    blocked_uid: str,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
) -> dict[str, Any]:
    removed = unblock_user(tx_session, current_user["uid"], blocked_uid)
    return {"status": "unblocked", "blocked_uid": blocked_uid, "removed": removed}


@router.get("/safety/blocks")
def safety_blocks(
    current_user: dict[str, Any] = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"blocks": list_blocks(db, current_user["uid"])}


@router.post("/safety/report", dependencies=[RL_REPORT])
def safety_report(
    payload: ReportRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
    tx_session: sessionmaker = Depends(get_tx_factory),
    hub: SnapshotHub = Depends(get_hub),
) -> dict[str, Any]:
    result = report_user(tx_session, current_user["uid"], payload.offender_uid, payload.reason, payload.details)
    if result["match_deleted"]:
        hub.publish(matches_topic(current_user["uid"]), matches_topic(payload.offender_uid.strip()))
    return {"status": "reported", **result}
