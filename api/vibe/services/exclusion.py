from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..config import INTERACTION_WINDOW_DAYS
from ..models import Interaction, UserBlock

ROLES = ("hunter", "host")


def opposite_role(role: str | None) -> str | None:
    # Two-sided market: hunters browse hosts and hosts browse hunters.
    if role == "hunter":
        return "host"
    if role == "host":
        return "hunter"
    return None


def fetch_recent_interaction_ids(
    db: Session,
    uid: str,
    *,
    window_days: int = INTERACTION_WINDOW_DAYS,
    now: datetime | None = None,
) -> set[str]:
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=window_days)
    out: set[str] = set()
    for kind in ("like", "pass"):
        rows = db.execute(
            select(Interaction.to_uid).where(
                Interaction.from_uid == uid,
                Interaction.type == kind,
                Interaction.created_at > cutoff,
            )
        ).scalars().all()
        out.update(rows)
    return out


def fetch_blocked_ids(db: Session, uid: str) -> set[str]:
    rows = db.execute(
        select(UserBlock.user_id, UserBlock.blocked_user_id).where(
            or_(UserBlock.user_id == uid, UserBlock.blocked_user_id == uid)
        )
    ).all()
    out: set[str] = set()
    for user_id, blocked_user_id in rows:
        out.add(blocked_user_id if user_id == uid else user_id)
    return out


def _candidate_id(candidate: Any) -> str | None:
    if isinstance(candidate, dict):
        value = candidate.get("uid") or candidate.get("id")
    else:
        value = getattr(candidate, "uid", None)
    return str(value) if value else None


def _candidate_role(candidate: Any) -> str | None:
    if isinstance(candidate, dict):
        return candidate.get("role")
    return getattr(candidate, "role", None)


def filter_candidates(
    candidates: Iterable[Any],
    *,
    viewer_uid: str,
    viewer_role: str | None,
    excluded_ids: set[str],
    recent_ids: set[str],
    seen_ids: set[str],
) -> list[Any]:
    wanted_role = opposite_role(viewer_role)
    out = []
    emitted: set[str] = set()
    for candidate in candidates:
        cid = _candidate_id(candidate)
        if not cid or cid == viewer_uid or cid in emitted:
            continue
        if cid in excluded_ids or cid in recent_ids or cid in seen_ids:
            continue
        if _candidate_role(candidate) not in ROLES or _candidate_role(candidate) != wanted_role:
            continue
        emitted.add(cid)
        out.append(candidate)
    return out
