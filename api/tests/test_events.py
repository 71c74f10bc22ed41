from vibe.services.events import log_match_event


class FakeDB:
    def __init__(self):
        self.calls = []

    def execute(self, stmt, params):
        self.calls.append((str(stmt), params))


def test_log_match_event_inserts_expected_payload_shape():
    db = FakeDB()
    log_match_event(
        db=db,
        match_id="alice_bob",
        user_id="bob",
        event_type="match_created",
        payload={"initiator": "alice"},
    )
    assert len(db.calls) == 1
    sql, params = db.calls[0]
    assert "INSERT INTO match_event" in sql
    assert params["event_type"] == "match_created"
    assert params["match_id"] == "alice_bob"
    assert params["user_id"] == "bob"
    assert params["payload"] == '{"initiator": "alice"}'


def test_log_match_event_defaults_to_empty_payload():
    db = FakeDB()
    log_match_event(db, "alice_bob", "alice", "unmatched")
    assert db.calls[0][1]["payload"] == "{}"
