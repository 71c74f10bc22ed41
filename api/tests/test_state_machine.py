from types import SimpleNamespace

from vibe.services.state_machine import LIKED, MATCHED, NONE, PASSED, pair_state, transition_pair


def _rec(kind, is_match=False):
    return SimpleNamespace(type=kind, is_match=is_match)


def test_pair_state_from_records():
    assert pair_state(None) == NONE
    assert pair_state(_rec("like")) == LIKED
    assert pair_state(_rec("pass")) == PASSED
    assert pair_state(_rec("like", is_match=True)) == MATCHED
    assert pair_state(_rec("like"), _rec("like")) == MATCHED
    assert pair_state(_rec("like"), _rec("pass")) == LIKED
    assert pair_state(_rec("pass"), _rec("like")) == PASSED


def test_like_and_pass_overwrite_each_other():
    assert transition_pair(NONE, "like") == LIKED
    assert transition_pair(LIKED, "pass") == PASSED
    assert transition_pair(PASSED, "like") == LIKED
    assert transition_pair(LIKED, "like") == LIKED
    assert transition_pair(PASSED, "pass") == PASSED


def test_reverse_like_closes_the_match():
    assert transition_pair(NONE, "like", reverse_liked=True) == MATCHED
    assert transition_pair(PASSED, "like", reverse_liked=True) == MATCHED


def test_matched_is_sticky_until_unmatch():
    assert transition_pair(MATCHED, "like") == MATCHED
    assert transition_pair(MATCHED, "pass") == MATCHED
    assert transition_pair(MATCHED, "unmatch") == NONE
    assert transition_pair(LIKED, "unmatch") == NONE
