import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session, sessionmaker

from ..config import MAX_PROFILE_IMAGES
from ..errors import InvalidInputError, NotFoundError
from ..http_helpers import validate_phone, validate_uid
from ..models import Interaction, Match, Message, UserBlock, UserProfile
from ..schemas import profile_adapter
from .geo import encode_geohash
from .transactions import run_in_transaction

logger = logging.getLogger(__name__)

DELETED_SNAPSHOT = {"name": "Deleted User", "img": None, "occupation": None}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def profile_snapshot(profile: UserProfile | None, uid: str | None = None) -> dict[str, Any]:
    """The denormalized subset copied into interactions and matches."""
    if profile is None:
        return {"uid": uid, **DELETED_SNAPSHOT}
    return {
        "uid": profile.uid,
        "name": profile.name,
        "img": profile.img or (profile.images[0] if profile.images else None),
        "occupation": profile.occupation,
        "role": profile.role,
        "age": profile.age,
    }


def profile_to_dict(profile: UserProfile) -> dict[str, Any]:
    out = {
        "uid": profile.uid,
        "role": profile.role,
        "name": profile.name,
        "age": profile.age,
        "bio": profile.bio,
        "occupation": profile.occupation,
        "images": list(profile.images or []),
        "img": profile.img,
        "tags": list(profile.tags or []),
        "lat": profile.lat,
        "lng": profile.lng,
        "geohash": profile.geohash,
        "phone_number": profile.phone_number,
        "updated_at": profile.updated_at,
    }
    if profile.role == "host":
        out.update({"rent": profile.rent, "locality": profile.locality})
    else:
        out.update({"budget": profile.budget, "move_in": profile.move_in})
    return out


def compatibility_score(my_tags: list[str], their_tags: list[str]) -> int:
    if not my_tags:
        return 60
    theirs = set(their_tags or [])
    common = [tag for tag in my_tags if tag in theirs]
    base = round(len(common) / max(len(my_tags), len(their_tags or [])) * 100)
    return min(max(base + 50, 60), 99)


def get_profile(db: Session, uid: str) -> UserProfile | None:
    return db.get(UserProfile, uid)


def save_profile(tx_session: sessionmaker, uid: str, payload: dict[str, Any]) -> dict[str, Any]:
    uid = validate_uid(uid)
    try:
        parsed = profile_adapter.validate_python(payload)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid profile: {exc.errors()[0].get('msg', 'invalid')}") from exc

    images = parsed.images[:MAX_PROFILE_IMAGES]
    geohash = encode_geohash(parsed.lat, parsed.lng)

    def _work(db: Session) -> dict[str, Any]:
        profile = db.get(UserProfile, uid)
        if profile is None:
            profile = UserProfile(uid=uid, created_at=_now_utc())
            db.add(profile)
        profile.role = parsed.role
        profile.name = parsed.name
        profile.age = parsed.age
        profile.bio = parsed.bio
        profile.occupation = parsed.occupation
        profile.images = images
        profile.img = images[0] if images else ""
        profile.tags = parsed.tags
        profile.lat = parsed.lat
        profile.lng = parsed.lng
        profile.geohash = geohash
        if parsed.role == "host":
            profile.rent, profile.locality = parsed.rent, parsed.locality
            profile.budget = profile.move_in = None
        else:
            profile.budget, profile.move_in = parsed.budget, parsed.move_in
            profile.rent = profile.locality = None
        profile.updated_at = _now_utc()
        db.flush()
        return profile_to_dict(profile)

    return run_in_transaction(tx_session, _work, label="save_profile")


def set_phone_number(tx_session: sessionmaker, uid: str, raw: str) -> str:
    phone = validate_phone(raw)

    def _work(db: Session) -> str:
        profile = db.get(UserProfile, uid)
        if profile is None:
            raise NotFoundError("Profile not found")
        profile.phone_number = phone
        profile.updated_at = _now_utc()
        return phone

    return run_in_transaction(tx_session, _work, label="set_phone")


def delete_account(tx_session: sessionmaker, uid: str) -> dict[str, Any]:
    """Delete the profile and everything that points at it in one batch."""
    uid = validate_uid(uid)

    def _work(db: Session) -> dict[str, Any]:
        rows = db.execute(
            select(Match.id, Match.user_a, Match.user_b).where(or_(Match.user_a == uid, Match.user_b == uid))
        ).all()
        match_ids = [row[0] for row in rows]
        if match_ids:
            db.execute(delete(Message).where(Message.match_id.in_(match_ids)))
            db.execute(delete(Match).where(Match.id.in_(match_ids)))
        interactions = db.execute(
            delete(Interaction).where(or_(Interaction.from_uid == uid, Interaction.to_uid == uid))
        ).rowcount
        db.execute(delete(UserBlock).where(or_(UserBlock.user_id == uid, UserBlock.blocked_user_id == uid)))
        profiles = db.execute(delete(UserProfile).where(UserProfile.uid == uid)).rowcount
        others = sorted({a if b == uid else b for _, a, b in rows})
        return {
            "profile_deleted": bool(profiles),
            "matches_deleted": len(match_ids),
            "interactions_deleted": int(interactions or 0),
            "counterparts": others,
        }

    summary = run_in_transaction(tx_session, _work, label="delete_account")
    logger.info(
        "[PROFILE] deleted account uid=%s matches=%s interactions=%s",
        uid,
        summary["matches_deleted"],
        summary["interactions_deleted"],
    )
    return summary
