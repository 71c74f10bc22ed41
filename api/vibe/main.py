import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from . import database
from .config import ALLOWED_ORIGINS, MEDIA_BASE_URL, MEDIA_ROOT
from .deps import http_error
from .errors import MatchInvariantError, VibeError
from .routes import include_modular_routers
from .services.ads import load_ad_inventory
from .services.feed import FeedSessionRegistry
from .services.media import MediaStorage
from .services.subscriptions import SnapshotHub

logger = logging.getLogger(__name__)

app = FastAPI(title="Vibe Match API")
include_modular_routers(app)

MEDIA_ROOT.mkdir(parents=True, exist_ok=True)
app.mount(MEDIA_BASE_URL, StaticFiles(directory=str(MEDIA_ROOT)), name="uploads")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.feed_registry = FeedSessionRegistry(load_ad_inventory())
app.state.hub = SnapshotHub()
app.state.storage = MediaStorage(MEDIA_ROOT, MEDIA_BASE_URL)


@app.exception_handler(VibeError)
def vibe_error_handler(request: Request, exc: VibeError) -> JSONResponse:
    if isinstance(exc, MatchInvariantError):
        logger.critical("[MATCH] invariant violation on %s %s: %s", request.method, request.url.path, exc.message)
    err = http_error(exc)
    return JSONResponse(status_code=err.status_code, content={"detail": err.detail})


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with database.SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


def create_tables() -> None:
    # Import registers every mapped table on Base.metadata.
    from . import models  # noqa: F401

    database.Base.metadata.create_all(bind=database.engine)


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    create_tables()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
