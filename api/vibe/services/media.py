import logging
import secrets
import shutil
import time
from pathlib import Path

from ..config import MEDIA_BASE_URL, MEDIA_ROOT
from ..http_helpers import ALLOWED_IMAGE_TYPES, validate_uid

logger = logging.getLogger(__name__)


class MediaStorage:
    """Blob storage for profile photos, addressed by ``users/<uid>/<file>``."""

    def __init__(self, root: Path = MEDIA_ROOT, base_url: str = MEDIA_BASE_URL):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    @staticmethod
    def user_prefix(uid: str) -> str:
        return f"users/{validate_uid(uid)}/"

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents and target != self.root.resolve():
            raise ValueError(f"path escapes media root: {path}")
        return target

    def save(self, uid: str, data: bytes, content_type: str) -> str:
        ext = ALLOWED_IMAGE_TYPES.get(content_type.lower(), ".jpg")
        name = f"photo_{int(time.time() * 1000)}_{secrets.token_hex(4)}{ext}"
        path = self.user_prefix(uid) + name
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def delete_prefix(self, prefix: str) -> int:
        target = self._resolve(prefix)
        if not target.exists():
            return 0
        count = sum(1 for p in target.rglob("*") if p.is_file())
        shutil.rmtree(target)
        logger.info("[MEDIA] deleted %s objects under %s", count, prefix)
        return count
