import pytest
from sqlalchemy import func, select

from vibe.errors import InvalidInputError
from vibe.models import Interaction, Match, Message, UserBlock, UserReport
from vibe.services.conversations import send_message
from vibe.services.interactions import like
from vibe.services.safety import block_user, list_blocks, report_user, unblock_user


@pytest.fixture
def matched(tx_session, add_profile):
    add_profile("alice", role="hunter", name="Alice")
    add_profile("bob", role="host", name="Bob")
    like(tx_session, "alice", "bob")
    like(tx_session, "bob", "alice")
    send_message(tx_session, "alice_bob", "bob", "hey")
    return "alice_bob"


def _count(read_session, model):
    with read_session() as s:
        return s.execute(select(func.count()).select_from(model)).scalar_one()


def test_block_destroys_the_pair_and_is_idempotent(tx_session, read_session, matched):
    first = block_user(tx_session, "alice", "bob")
    second = block_user(tx_session, "alice", "bob")

    assert first == {"blocked_uid": "bob", "created": True, "match_deleted": True}
    assert second == {"blocked_uid": "bob", "created": False, "match_deleted": False}
    assert _count(read_session, UserBlock) == 1
    assert _count(read_session, Match) == 0
    assert _count(read_session, Message) == 0
    assert _count(read_session, Interaction) == 0


def test_unblock_and_list(tx_session, read_session, add_profile):
    add_profile("alice", role="hunter")
    block_user(tx_session, "alice", "bob")
    block_user(tx_session, "alice", "carol")

    with read_session() as s:
        assert {row["blocked_uid"] for row in list_blocks(s, "alice")} == {"bob", "carol"}
        assert list_blocks(s, "bob") == []

    assert unblock_user(tx_session, "alice", "bob") == 1
    assert unblock_user(tx_session, "alice", "bob") == 0
    with read_session() as s:
        assert [row["blocked_uid"] for row in list_blocks(s, "alice")] == ["carol"]


def test_cannot_block_yourself(tx_session):
    with pytest.raises(InvalidInputError):
        block_user(tx_session, "alice", "alice")
    with pytest.raises(InvalidInputError):
        block_user(tx_session, "alice", "not valid")


def test_report_stores_blocks_and_removes_the_match(tx_session, read_session, matched):
    result = report_user(tx_session, "alice", "bob", " Harassment ", "  rude messages ")

    assert result["match_deleted"] is True
    with read_session() as s:
        report = s.get(UserReport, result["report_id"])
        blocks = s.execute(select(UserBlock.user_id, UserBlock.blocked_user_id)).all()
    assert report.reason == "harassment"
    assert report.details == "rude messages"
    assert report.offender_name == "Bob"
    assert blocks == [("alice", "bob")]
    assert _count(read_session, Match) == 0
    assert _count(read_session, Interaction) == 0


def test_report_without_a_match_still_files(tx_session, read_session):
    result = report_user(tx_session, "alice", "ghost", "spam")

    assert result["match_deleted"] is False
    with read_session() as s:
        report = s.get(UserReport, result["report_id"])
    assert report.offender_name is None
    assert report.details is None


def test_report_rejects_unknown_reason(tx_session):
    with pytest.raises(InvalidInputError):
        report_user(tx_session, "alice", "bob", "bored")
