import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from ..config import MATCH_LIST_LIMIT, MESSAGE_MAX_LENGTH, MESSAGE_PAGE_LIMIT
from ..errors import ForbiddenError, InvalidInputError, NotFoundError
from ..models import Match, Message, UserProfile
from .profiles import profile_snapshot
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

TICK = timedelta(microseconds=1)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def check_message_text(text: str | None) -> str:
    """Reject blank or oversized text. The text itself is stored as sent."""
    if not (text or "").strip():
        raise InvalidInputError("Message cannot be empty")
    if len(text) > MESSAGE_MAX_LENGTH:
        raise InvalidInputError(f"Message exceeds {MESSAGE_MAX_LENGTH} characters")
    return text


def _member_match(db: Session, match_id: str, uid: str) -> Match:
    match = db.get(Match, match_id)
    if match is None:
        raise NotFoundError("Match not found")
    if uid not in match.users:
        raise ForbiddenError("Not a member of this match")
    return match


def message_to_dict(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "match_id": message.match_id,
        "sender_uid": message.sender_uid,
        "text": message.text,
        "created_at": as_utc(message.created_at),
    }


def send_message(
    tx_session: sessionmaker,
    match_id: str,
    sender_uid: str,
    text: str | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Append a message and move the match's last-message fields in one commit."""
    text = check_message_text(text)

    def _work(db: Session) -> dict[str, Any]:
        match = _member_match(db, match_id, sender_uid)
        stamp = now or datetime.now(timezone.utc)
        previous = as_utc(match.last_activity)
        if previous is not None and stamp <= previous:
            stamp = previous + TICK
        message = Message(match_id=match.id, sender_uid=sender_uid, text=text, created_at=stamp)
        db.add(message)
        match.last_msg = text
        match.last_sender_id = sender_uid
        match.last_activity = stamp
        db.flush()
        return message_to_dict(message)

    return run_in_transaction(tx_session, _work, label="send_message")


def mark_as_read(tx_session: sessionmaker, match_id: str, uid: str) -> dict[str, int]:
    def _work(db: Session) -> dict[str, int]:
        match = _member_match(db, match_id, uid)
        # JSON columns are reassigned, never mutated in place, so the change is flushed.
        match.unread_counts = {**(match.unread_counts or {}), uid: 0}
        match.notifications = {**(match.notifications or {}), uid: False}
        return dict(match.unread_counts)

    return run_in_transaction(tx_session, _work, label="mark_as_read")


def list_messages(db: Session, match_id: str, uid: str, limit: int = MESSAGE_PAGE_LIMIT) -> list[dict[str, Any]]:
    _member_match(db, match_id, uid)
    rows = db.execute(
        select(Message)
        .where(Message.match_id == match_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(max(1, limit))
    ).scalars().all()
    return [message_to_dict(row) for row in reversed(rows)]


def _counterpart_snapshot(
    db: Session,
    match: Match,
    other_uid: str,
    profile_cache: dict[str, dict[str, Any]],
) -> dict[str, Any]:
    snapshot = (match.profiles or {}).get(other_uid)
    if snapshot and snapshot.get("name"):
        return snapshot
    if other_uid not in profile_cache:
        profile_cache[other_uid] = profile_snapshot(db.get(UserProfile, other_uid), other_uid)
    return profile_cache[other_uid]


def list_matches(
    db: Session,
    uid: str,
    limit: int = MATCH_LIST_LIMIT,
    profile_cache: dict[str, dict[str, Any]] | None = None,
) -> list[dict[str, Any]]:
    """Matches of ``uid``, most recent activity first.

    ``profile_cache`` belongs to the caller and lives as long as it wants; it
    only fills gaps left by missing snapshots.
    """
    cache = profile_cache if profile_cache is not None else {}
    rows = db.execute(
        select(Match)
        .where(or_(Match.user_a == uid, Match.user_b == uid))
        .order_by(Match.last_activity.desc(), Match.id)
        .limit(max(1, limit))
    ).scalars().all()

    out = []
    for match in rows:
        other = match.user_b if match.user_a == uid else match.user_a
        out.append(
            {
                "match_id": match.id,
                "other_uid": other,
                "profile": _counterpart_snapshot(db, match, other, cache),
                "last_msg": match.last_msg,
                "last_sender_id": match.last_sender_id,
                "last_activity": as_utc(match.last_activity),
                "unread": int((match.unread_counts or {}).get(uid, 0)),
                "has_notification": bool((match.notifications or {}).get(uid, False)),
            }
        )
    return out
