from typing import Any

NONE = "none"
LIKED = "liked"
PASSED = "passed"
MATCHED = "matched"


def pair_state(forward: Any | None, reverse: Any | None = None) -> str:
    """State of the ordered pair (from -> to) given both interaction records."""
    if forward is None:
        return NONE
    if forward.type == "like" and (forward.is_match or (reverse is not None and reverse.type == "like")):
        return MATCHED
    if forward.type == "like":
        return LIKED
    return PASSED


def transition_pair(current: str, action: str, reverse_liked: bool = False) -> str:
    if action == "unmatch":
        return NONE

    if current == MATCHED:
        return MATCHED

    if action == "like":
        if reverse_liked:
            return MATCHED
        return LIKED

    if action == "pass":
        return PASSED

    return current
