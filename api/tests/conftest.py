import os
import tempfile
from datetime import datetime, timezone

# Settings are read at import time; point them somewhere harmless before anything imports vibe.
_TMP = tempfile.mkdtemp(prefix="vibe-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TMP, 'default.db')}")
os.environ.setdefault("MEDIA_ROOT", os.path.join(_TMP, "uploads"))
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("TX_BACKOFF_SECONDS", "0.01")

import pytest

from vibe.database import Base, build_engine, build_session_factories
from vibe.models import UserProfile
from vibe.services.geo import encode_geohash

PUNE = (18.5362, 73.8940)


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'vibe.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def factories(engine):
    return build_session_factories(engine)


@pytest.fixture
def read_session(factories):
    return factories[0]


@pytest.fixture
def tx_session(factories):
    return factories[1]


@pytest.fixture
def db(read_session):
    with read_session() as session:
        yield session


@pytest.fixture
def add_profile(tx_session):
    """Insert a profile row directly, bypassing payload validation."""

    def _add(uid, role="host", lat=PUNE[0], lng=PUNE[1], **fields):
        with tx_session() as session:
            profile = UserProfile(
                uid=uid,
                role=role,
                name=fields.pop("name", uid.title()),
                images=fields.pop("images", [f"https://img.test/{uid}.jpg"]),
                img=fields.pop("img", f"https://img.test/{uid}.jpg"),
                tags=fields.pop("tags", []),
                lat=lat,
                lng=lng,
                geohash=fields.pop("geohash", encode_geohash(lat, lng) if lat is not None and lng is not None else None),
                created_at=datetime.now(timezone.utc),
                updated_at=datetime.now(timezone.utc),
                **fields,
            )
            session.add(profile)
            session.commit()
        return uid

    return _add
