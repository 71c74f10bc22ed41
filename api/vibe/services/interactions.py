import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from ..errors import InvalidInputError, MatchInvariantError, NotFoundError
from ..http_helpers import validate_uid
from ..models import Interaction, Match, Message, UserProfile
from .events import log_match_event
from .exclusion import fetch_blocked_ids
from .profiles import profile_snapshot
from .state_machine import MATCHED, pair_state, transition_pair
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

LOCKED_NAME = "Secret Admirer"


@dataclass
class LikeOutcome:
    is_match: bool
    match_id: str | None
    counterpart: dict[str, Any] | None


def interaction_key(from_uid: str, to_uid: str) -> str:
    return f"{from_uid}_{to_uid}"


def match_key(uid_a: str, uid_b: str) -> str:
    return "_".join(sorted((uid_a, uid_b)))


def _pair(from_uid: str, to_uid: str) -> tuple[str, str]:
    from_uid = validate_uid(from_uid, "from_uid")
    to_uid = validate_uid(to_uid, "to_uid")
    if from_uid == to_uid:
        raise InvalidInputError("Cannot swipe on yourself")
    return from_uid, to_uid


def _write_forward(
    db: Session,
    forward: Interaction | None,
    from_uid: str,
    to_uid: str,
    kind: str,
    snapshot: dict[str, Any],
    is_match: bool,
    now: datetime,
) -> Interaction:
    # is_revealed belongs to the recipient and survives an overwrite.
    if forward is None:
        forward = Interaction(
            id=interaction_key(from_uid, to_uid),
            from_uid=from_uid,
            to_uid=to_uid,
            is_revealed=False,
        )
        db.add(forward)
    forward.type = kind
    forward.sender_snapshot = snapshot
    forward.is_match = is_match
    forward.created_at = now
    return forward


def _ensure_match(
    db: Session,
    from_uid: str,
    to_uid: str,
    sender: dict[str, Any],
    recipient: dict[str, Any],
    now: datetime,
) -> tuple[Match, bool]:
    match_id = match_key(from_uid, to_uid)
    user_a, user_b = sorted((from_uid, to_uid))
    existing = db.get(Match, match_id)
    if existing is not None:
        if (existing.user_a, existing.user_b) != (user_a, user_b):
            logger.critical("[MATCH] invariant violated: match %s has members %s", match_id, existing.users)
            raise MatchInvariantError(f"Match {match_id} has unexpected members", match_id=match_id)
        return existing, False

    match = Match(
        id=match_id,
        user_a=user_a,
        user_b=user_b,
        profiles={from_uid: sender, to_uid: recipient},
        last_msg=None,
        last_sender_id=None,
        last_activity=now,
        unread_counts={user_a: 0, user_b: 0},
        notifications={user_a: False, user_b: False},
        created_at=now,
    )
    db.add(match)
    # Surfaces a concurrent insert of the same key as IntegrityError inside the retry loop.
    db.flush()
    return match, True


def _load_pair(db: Session, from_uid: str, to_uid: str) -> tuple[UserProfile, UserProfile]:
    recipient = db.get(UserProfile, to_uid)
    # A blocked pair looks the same as a missing profile to either side.
    if recipient is None or to_uid in fetch_blocked_ids(db, from_uid):
        raise NotFoundError("Profile not found")
    sender = db.get(UserProfile, from_uid)
    if sender is None:
        raise NotFoundError("Create your profile before swiping")
    return sender, recipient


def like(tx_session: sessionmaker, from_uid: str, to_uid: str, now: datetime | None = None) -> LikeOutcome:
    """Record ``from_uid`` liking ``to_uid`` and create the match on a mutual like.

    The reverse interaction is read inside the same transaction as every write,
    so two opposite-direction likes racing each other still produce one match.
    """
    from_uid, to_uid = _pair(from_uid, to_uid)
    created: list[str] = []

    def _work(db: Session) -> LikeOutcome:
        created.clear()
        stamp = now or datetime.now(timezone.utc)
        sender, recipient = _load_pair(db, from_uid, to_uid)
        forward = db.get(Interaction, interaction_key(from_uid, to_uid))
        reverse = db.get(Interaction, interaction_key(to_uid, from_uid))
        current = pair_state(forward, reverse)
        reverse_liked = reverse is not None and reverse.type == "like"
        state = transition_pair(current, "like", reverse_liked=reverse_liked)

        sender_snap = profile_snapshot(sender)
        recipient_snap = profile_snapshot(recipient)
        if current == MATCHED and forward is not None and forward.is_match:
            match, _ = _ensure_match(db, from_uid, to_uid, sender_snap, recipient_snap, stamp)
            return LikeOutcome(is_match=True, match_id=match.id, counterpart=recipient_snap)

        _write_forward(db, forward, from_uid, to_uid, "like", sender_snap, state == MATCHED, stamp)
        if state != MATCHED:
            db.flush()
            return LikeOutcome(is_match=False, match_id=None, counterpart=recipient_snap)

        reverse.is_match = True
        match, is_new = _ensure_match(db, from_uid, to_uid, sender_snap, recipient_snap, stamp)
        if is_new:
            log_match_event(db, match.id, from_uid, "match_created", {"initiator": to_uid, "closer": from_uid})
            created.append(match.id)
        return LikeOutcome(is_match=True, match_id=match.id, counterpart=recipient_snap)

    outcome = run_in_transaction(tx_session, _work, label="like")
    if created:
        logger.info("[MATCH] created %s", created[0])
    return outcome


def pass_(tx_session: sessionmaker, from_uid: str, to_uid: str, now: datetime | None = None) -> str:
    """Overwrite the forward record with a pass. A matched pair is left alone."""
    from_uid, to_uid = _pair(from_uid, to_uid)

    def _work(db: Session) -> str:
        stamp = now or datetime.now(timezone.utc)
        sender, _ = _load_pair(db, from_uid, to_uid)
        forward = db.get(Interaction, interaction_key(from_uid, to_uid))
        reverse = db.get(Interaction, interaction_key(to_uid, from_uid))
        current = pair_state(forward, reverse)
        state = transition_pair(current, "pass")
        if state == MATCHED:
            return state
        _write_forward(db, forward, from_uid, to_uid, "pass", profile_snapshot(sender), False, stamp)
        return state

    return run_in_transaction(tx_session, _work, label="pass")


def destroy_pair(db: Session, uid: str, other_uid: str, reason: str = "unmatched") -> dict[str, Any]:
    """Delete the match between two users, its messages and both interaction records."""
    match_id = match_key(uid, other_uid)
    db.execute(delete(Message).where(Message.match_id == match_id))
    matches = db.execute(delete(Match).where(Match.id == match_id)).rowcount
    interactions = db.execute(
        delete(Interaction).where(
            Interaction.id.in_([interaction_key(uid, other_uid), interaction_key(other_uid, uid)])
        )
    ).rowcount
    if matches:
        log_match_event(db, match_id, uid, reason, {"other_uid": other_uid})
    return {"match_id": match_id, "match_deleted": bool(matches), "interactions_deleted": int(interactions or 0)}


def unmatch(tx_session: sessionmaker, uid: str, other_uid: str) -> dict[str, Any]:
    uid, other_uid = _pair(uid, other_uid)
    match_id = match_key(uid, other_uid)

    def _work(db: Session) -> dict[str, Any]:
        return destroy_pair(db, uid, other_uid)

    result = run_in_transaction(tx_session, _work, label="unmatch")
    logger.info("[MATCH] unmatch %s by %s deleted=%s", match_id, uid, result["match_deleted"])
    return result


def _redact(snapshot: dict[str, Any]) -> dict[str, Any]:
    return {
        "uid": None,
        "name": LOCKED_NAME,
        "img": None,
        "occupation": None,
        "role": snapshot.get("role"),
        "age": snapshot.get("age"),
    }


def list_incoming_likes(db: Session, uid: str) -> list[dict[str, Any]]:
    """Pending likes addressed to ``uid``; senders stay anonymous until revealed."""
    uid = validate_uid(uid)
    blocked = fetch_blocked_ids(db, uid)
    rows = db.execute(
        select(Interaction)
        .where(Interaction.to_uid == uid, Interaction.type == "like", Interaction.is_match.is_(False))
        .order_by(Interaction.created_at.desc())
    ).scalars()
    out = []
    for row in rows:
        if row.from_uid in blocked:
            continue
        snapshot = dict(row.sender_snapshot or {})
        out.append(
            {
                "from_uid": row.from_uid,
                "is_revealed": bool(row.is_revealed),
                "created_at": row.created_at,
                "sender": snapshot if row.is_revealed else _redact(snapshot),
            }
        )
    return out


def reveal_like(tx_session: sessionmaker, uid: str, from_uid: str) -> dict[str, Any]:
    """Permanently reveal the sender of a like. Only the recipient may do this."""
    uid = validate_uid(uid)
    from_uid = validate_uid(from_uid, "from_uid")

    def _work(db: Session) -> dict[str, Any]:
        row = db.get(Interaction, interaction_key(from_uid, uid))
        if row is None or row.type != "like":
            raise NotFoundError("Like not found")
        row.is_revealed = True
        return dict(row.sender_snapshot or {})

    return run_in_transaction(tx_session, _work, label="reveal_like")
