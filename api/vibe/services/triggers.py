"""
Work that runs after a committed write, the way the managed backend fired its
document triggers. Routes schedule these as FastAPI background tasks.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from ..models import Match, UserProfile
from .conversations import as_utc
from .media import MediaStorage
from .profiles import profile_snapshot
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)


def sync_profile_snapshots(tx_session: sessionmaker, uid: str) -> list[str]:
    """Rewrite ``profiles[uid]`` in every match ``uid`` belongs to. Returns the counterparts."""

    def _work(db: Session) -> list[str]:
        profile = db.get(UserProfile, uid)
        if profile is None:
            return []
        snapshot = profile_snapshot(profile)
        matches = db.execute(
            select(Match).where(or_(Match.user_a == uid, Match.user_b == uid))
        ).scalars().all()
        for match in matches:
            match.profiles = {**(match.profiles or {}), uid: snapshot}
        return sorted(match.user_b if match.user_a == uid else match.user_a for match in matches)

    counterparts = run_in_transaction(tx_session, _work, label="sync_snapshots")
    logger.info("[TRIGGER] refreshed %s match snapshots for %s", len(counterparts), uid)
    return counterparts


def record_message_delivery(
    tx_session: sessionmaker,
    match_id: str,
    sender_uid: str,
    now: datetime | None = None,
) -> bool:
    """Bump the recipient's unread counter and raise their notification flag."""

    def _work(db: Session) -> bool:
        match = db.get(Match, match_id)
        if match is None or sender_uid not in match.users:
            return False
        recipient = match.user_b if match.user_a == sender_uid else match.user_a
        counts = dict(match.unread_counts or {})
        counts[recipient] = int(counts.get(recipient, 0)) + 1
        match.unread_counts = counts
        match.notifications = {**(match.notifications or {}), recipient: True}
        stamp = now or datetime.now(timezone.utc)
        previous = as_utc(match.last_activity)
        if previous is None or stamp > previous:
            match.last_activity = stamp
        return True

    delivered = run_in_transaction(tx_session, _work, label="message_delivery")
    if not delivered:
        logger.warning("[TRIGGER] delivery skipped for match %s sender %s", match_id, sender_uid)
    return delivered


def purge_user_media(storage: MediaStorage, uid: str) -> int:
    return storage.delete_prefix(storage.user_prefix(uid))
