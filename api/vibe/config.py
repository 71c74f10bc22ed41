import os
from pathlib import Path

_default_ads = Path(__file__).resolve().parents[1] / "ads.json"
ADS_CONFIG_PATH = Path(os.getenv("ADS_CONFIG_PATH", str(_default_ads)))
MEDIA_ROOT = Path(os.getenv("MEDIA_ROOT", str(Path(__file__).resolve().parents[1] / "uploads")))
MEDIA_BASE_URL = os.getenv("MEDIA_BASE_URL", "/uploads")

FEED_RADIUS_KM = float(os.getenv("FEED_RADIUS_KM", "10"))
FEED_MAX_RADIUS_KM = float(os.getenv("FEED_MAX_RADIUS_KM", "100"))
INTERACTION_WINDOW_DAYS = int(os.getenv("INTERACTION_WINDOW_DAYS", "30"))
GEO_BUCKET_LIMIT = int(os.getenv("GEO_BUCKET_LIMIT", "50"))
GEO_MAX_RESULTS = int(os.getenv("GEO_MAX_RESULTS", "100"))
AD_STRIDE = int(os.getenv("AD_STRIDE", "4"))
FEED_MIN_VIABLE = int(os.getenv("FEED_MIN_VIABLE", "5"))
REQUEUE_FAILED_SWIPES = os.getenv("REQUEUE_FAILED_SWIPES", "true").lower() == "true"
FEED_SESSION_TTL_SECONDS = float(os.getenv("FEED_SESSION_TTL_SECONDS", "3600"))
FEED_SESSION_MAX = int(os.getenv("FEED_SESSION_MAX", "10000"))

TX_MAX_ATTEMPTS = int(os.getenv("TX_MAX_ATTEMPTS", "5"))
TX_BACKOFF_SECONDS = float(os.getenv("TX_BACKOFF_SECONDS", "0.05"))

MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", "2000"))
MESSAGE_PAGE_LIMIT = int(os.getenv("MESSAGE_PAGE_LIMIT", "20"))
MATCH_LIST_LIMIT = int(os.getenv("MATCH_LIST_LIMIT", "50"))
MAX_PROFILE_IMAGES = int(os.getenv("MAX_PROFILE_IMAGES", "5"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(8 * 1024 * 1024)))
STREAM_HEARTBEAT_SECONDS = float(os.getenv("STREAM_HEARTBEAT_SECONDS", "15"))

JWT_SECRET = os.getenv("JWT_SECRET", "")
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"
ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "60"))
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "vibe_session")
ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if o.strip()
]

RL_SWIPE_LIMIT = int(os.getenv("RL_SWIPE_LIMIT", "120"))
RL_MESSAGE_LIMIT = int(os.getenv("RL_MESSAGE_LIMIT", "60"))
RL_REPORT_LIMIT = int(os.getenv("RL_REPORT_LIMIT", "10"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))