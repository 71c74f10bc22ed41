import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from .database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")
# Range scans over geohash prefixes rely on byte ordering ("~" sorts after base32).
GeohashType = String(12).with_variant(String(12, collation="C"), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


class UserProfile(Base):
    __tablename__ = "user_profile"

    uid = Column(String(128), primary_key=True)
    role = Column(String(16), nullable=False)
    name = Column(String(80), nullable=False)
    age = Column(Integer, nullable=True)
    bio = Column(Text, nullable=True)
    occupation = Column(String(120), nullable=True)
    images = Column(JSONType, nullable=False, default=list)
    img = Column(Text, nullable=True)
    tags = Column(JSONType, nullable=False, default=list)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    geohash = Column(GeohashType, nullable=True)
    budget = Column(Integer, nullable=True)
    rent = Column(Integer, nullable=True)
    locality = Column(String(120), nullable=True)
    move_in = Column(String(32), nullable=True)
    phone_number = Column(String(16), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_user_profile_geohash", "geohash"),)


class Interaction(Base):
    __tablename__ = "interaction"

    id = Column(String(260), primary_key=True)
    from_uid = Column(String(128), nullable=False)
    to_uid = Column(String(128), nullable=False)
    type = Column(String(8), nullable=False)
    sender_snapshot = Column(JSONType, nullable=False, default=dict)
    is_match = Column(Boolean, nullable=False, default=False)
    is_revealed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_interaction_from_type_created", "from_uid", "type", "created_at"),
        Index("idx_interaction_to_type", "to_uid", "type"),
    )


class Match(Base):
    __tablename__ = "user_match"

    id = Column(String(260), primary_key=True)
    user_a = Column(String(128), nullable=False)
    user_b = Column(String(128), nullable=False)
    profiles = Column(JSONType, nullable=False, default=dict)
    last_msg = Column(Text, nullable=True)
    last_sender_id = Column(String(128), nullable=True)
    last_activity = Column(DateTime(timezone=True), nullable=False)
    unread_counts = Column(JSONType, nullable=False, default=dict)
    notifications = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_a", "user_b", name="uq_match_pair"),
        Index("idx_match_user_a_activity", "user_a", "last_activity"),
        Index("idx_match_user_b_activity", "user_b", "last_activity"),
    )

    @property
    def users(self) -> list[str]:
        return [self.user_a, self.user_b]


class Message(Base):
    __tablename__ = "message"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(260), ForeignKey("user_match.id", ondelete="CASCADE"), nullable=False)
    sender_uid = Column(String(128), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_message_match_created", "match_id", "created_at"),)


class UserBlock(Base):
    __tablename__ = "user_block"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False)
    blocked_user_id = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "blocked_user_id", name="uq_user_block_pair"),)


class UserReport(Base):
    __tablename__ = "user_report"

    id = Column(String(36), primary_key=True, default=_uuid)
    reporter_uid = Column(String(128), nullable=False)
    offender_uid = Column(String(128), nullable=False)
    offender_name = Column(String(80), nullable=True)
    reason = Column(String(64), nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MatchEvent(Base):
    __tablename__ = "match_event"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(260), nullable=False)
    user_id = Column(String(128), nullable=False)
    event_type = Column(String(40), nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_match_event_match_id", "match_id"),)
