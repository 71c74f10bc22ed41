import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from ..errors import InvalidInputError
from ..http_helpers import validate_uid
from ..models import UserBlock, UserProfile, UserReport
from .conversations import as_utc
from .interactions import destroy_pair
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

REPORT_REASONS = {"fake_profile", "harassment", "spam", "scam", "inappropriate", "other"}


def _other(uid: str, other_uid: str, field: str) -> tuple[str, str]:
    uid = validate_uid(uid)
    other_uid = validate_uid(other_uid, field)
    if uid == other_uid:
        raise InvalidInputError("Cannot target yourself")
    return uid, other_uid


def _ensure_block(db: Session, uid: str, blocked_uid: str) -> bool:
    existing = db.execute(
        select(UserBlock.id).where(UserBlock.user_id == uid, UserBlock.blocked_user_id == blocked_uid)
    ).first()
    if existing:
        return False
    db.add(UserBlock(user_id=uid, blocked_user_id=blocked_uid))
    return True


def block_user(tx_session: sessionmaker, uid: str, blocked_uid: str) -> dict[str, Any]:
    uid, blocked_uid = _other(uid, blocked_uid, "blocked_uid")

    def _work(db: Session) -> dict[str, Any]:
        created = _ensure_block(db, uid, blocked_uid)
        pair = destroy_pair(db, uid, blocked_uid, reason="blocked")
        return {"blocked_uid": blocked_uid, "created": created, "match_deleted": pair["match_deleted"]}

    result = run_in_transaction(tx_session, _work, label="block")
    logger.info("[SAFETY] %s blocked %s", uid, blocked_uid)
    return result


def unblock_user(tx_session: sessionmaker, uid: str, blocked_uid: str) -> int:
    uid, blocked_uid = _other(uid, blocked_uid, "blocked_uid")

    def _work(db: Session) -> int:
        res = db.execute(
            delete(UserBlock).where(UserBlock.user_id == uid, UserBlock.blocked_user_id == blocked_uid)
        )
        return int(res.rowcount or 0)

    return run_in_transaction(tx_session, _work, label="unblock")


def list_blocks(db: Session, uid: str) -> list[dict[str, Any]]:
    rows = db.execute(
        select(UserBlock.blocked_user_id, UserBlock.created_at)
        .where(UserBlock.user_id == uid)
        .order_by(UserBlock.created_at.desc())
    ).all()
    return [{"blocked_uid": blocked, "created_at": as_utc(created)} for blocked, created in rows]


def report_user(
    tx_session: sessionmaker,
    reporter_uid: str,
    offender_uid: str,
    reason: str,
    details: str | None = None,
) -> dict[str, Any]:
    """Store a report and tear down whatever the pair had, in one transaction.

    The reporter also blocks the offender so neither shows up in the other's feed.
    """
    reporter_uid, offender_uid = _other(reporter_uid, offender_uid, "offender_uid")
    reason = (reason or "").strip().lower()
    if reason not in REPORT_REASONS:
        raise InvalidInputError("Unknown report reason")
    details = (details or "").strip() or None

    def _work(db: Session) -> dict[str, Any]:
        offender = db.get(UserProfile, offender_uid)
        report = UserReport(
            reporter_uid=reporter_uid,
            offender_uid=offender_uid,
            offender_name=offender.name if offender is not None else None,
            reason=reason,
            details=details,
        )
        db.add(report)
        _ensure_block(db, reporter_uid, offender_uid)
        pair = destroy_pair(db, reporter_uid, offender_uid, reason="reported")
        db.flush()
        return {"report_id": report.id, "match_deleted": pair["match_deleted"]}

    result = run_in_transaction(tx_session, _work, label="report")
    logger.warning("[SAFETY] report %s: %s reported %s (%s)", result["report_id"], reporter_uid, offender_uid, reason)
    return result
