from typing import Iterator

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from . import database
from .errors import (
    ForbiddenError,
    InvalidInputError,
    MatchInvariantError,
    NotFoundError,
    TransactionConflictError,
    VibeError,
)
from .services.feed import FeedSessionRegistry
from .services.media import MediaStorage
from .services.subscriptions import SnapshotHub

ERROR_STATUS = {
    InvalidInputError: 400,
    ForbiddenError: 403,
    NotFoundError: 404,
    MatchInvariantError: 500,
    TransactionConflictError: 503,
}


def http_error(exc: VibeError) -> HTTPException:
    for kind, status in ERROR_STATUS.items():
        if isinstance(exc, kind):
            return HTTPException(status_code=status, detail=exc.message)
    return HTTPException(status_code=500, detail=exc.message)


def get_read_factory() -> sessionmaker:
    return database.SessionLocal


def get_tx_factory() -> sessionmaker:
    return database.TransactionSessionLocal


def get_db() -> Iterator[Session]:
    with database.SessionLocal() as db:
        yield db


def get_feed_registry(request: Request) -> FeedSessionRegistry:
    return request.app.state.feed_registry


def get_hub(request: Request) -> SnapshotHub:
    return request.app.state.hub


def get_storage(request: Request) -> MediaStorage:
    return request.app.state.storage
