from datetime import datetime, timedelta, timezone

from vibe.models import Interaction, UserBlock
from vibe.services.exclusion import fetch_blocked_ids, fetch_recent_interaction_ids, filter_candidates, opposite_role

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _card(uid, role="host"):
    return {"id": uid, "uid": uid, "role": role}


def test_opposite_role():
    assert opposite_role("hunter") == "host"
    assert opposite_role("host") == "hunter"
    assert opposite_role(None) is None
    assert opposite_role("admin") is None


def test_filter_candidates_removes_every_excluded_kind_and_keeps_order():
    candidates = [
        _card("me"),
        _card("blocked"),
        _card("liked"),
        _card("seen"),
        _card("other-hunter", role="hunter"),
        {"id": "no-role", "uid": "no-role"},
        _card("c"),
        _card("a"),
        _card("b"),
        _card("a"),
    ]

    out = filter_candidates(
        candidates,
        viewer_uid="me",
        viewer_role="hunter",
        excluded_ids={"blocked"},
        recent_ids={"liked"},
        seen_ids={"seen"},
    )

    assert [c["id"] for c in out] == ["c", "a", "b"]


def test_filter_candidates_without_viewer_role_returns_nothing():
    out = filter_candidates(
        [_card("a"), _card("b", role="hunter")],
        viewer_uid="me",
        viewer_role=None,
        excluded_ids=set(),
        recent_ids=set(),
        seen_ids=set(),
    )
    assert out == []


def test_filter_candidates_skips_malformed_entries():
    class Row:
        uid = "row"
        role = "host"

    out = filter_candidates(
        [{"role": "host"}, Row(), {"uid": "", "role": "host"}],
        viewer_uid="me",
        viewer_role="hunter",
        excluded_ids=set(),
        recent_ids=set(),
        seen_ids=set(),
    )
    assert [getattr(c, "uid", None) for c in out] == ["row"]


def test_recent_interactions_respect_window(tx_session, db):
    with tx_session() as s:
        for to_uid, kind, age_days in [("fresh-like", "like", 1), ("fresh-pass", "pass", 29), ("stale", "like", 31)]:
            s.add(
                Interaction(
                    id=f"me_{to_uid}",
                    from_uid="me",
                    to_uid=to_uid,
                    type=kind,
                    sender_snapshot={},
                    created_at=NOW - timedelta(days=age_days),
                )
            )
        s.add(
            Interaction(
                id="someone_me",
                from_uid="someone",
                to_uid="me",
                type="like",
                sender_snapshot={},
                created_at=NOW,
            )
        )
        s.commit()

    assert fetch_recent_interaction_ids(db, "me", now=NOW) == {"fresh-like", "fresh-pass"}


def test_blocked_ids_cover_both_directions(tx_session, db):
    with tx_session() as s:
        s.add(UserBlock(user_id="me", blocked_user_id="troll"))
        s.add(UserBlock(user_id="stalker", blocked_user_id="me"))
        s.add(UserBlock(user_id="x", blocked_user_id="y"))
        s.commit()

    assert fetch_blocked_ids(db, "me") == {"troll", "stalker"}
