import json
import uuid
from typing import Any

from sqlalchemy import text


def log_match_event(
    db,
    match_id: str,
    user_id: str,
    event_type: str,
    payload: dict[str, Any] | None = None,
) -> None:
    payload = payload or {}
    db.execute(
        text(
            """
            INSERT INTO match_event (id, match_id, user_id, event_type, payload)
            VALUES (:id, :match_id, :user_id, :event_type, :payload)
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "match_id": match_id,
            "user_id": user_id,
            "event_type": event_type,
            "payload": json.dumps(payload),
        },
    )
