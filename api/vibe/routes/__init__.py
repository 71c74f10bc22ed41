from fastapi import APIRouter, FastAPI

from .chat import router as chat_router
from .feed import router as feed_router
from .likes import router as likes_router
from .matches import router as matches_router
from .profile import router as profile_router
from .safety import router as safety_router
from .swipes import router as swipes_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(profile_router, tags=["profile"])
    app.include_router(feed_router, tags=["feed"])
    app.include_router(swipes_router, tags=["swipes"])
    app.include_router(likes_router, tags=["likes"])
    app.include_router(matches_router, tags=["matches"])
    app.include_router(chat_router, tags=["chat"])
    app.include_router(safety_router, tags=["safety"])


__all__ = ["include_modular_routers", "APIRouter"]
