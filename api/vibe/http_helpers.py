import json
import logging
import re
from typing import Iterator

from fastapi import HTTPException, UploadFile
from fastapi.encoders import jsonable_encoder

from .config import MAX_UPLOAD_BYTES
from .errors import InvalidInputError, VibeError
from .services.subscriptions import Subscription

logger = logging.getLogger(__name__)

# No "_" so "{from}_{to}" keys split unambiguously; no ":" so sponsored ids never collide.
UID_PATTERN = re.compile(r"[A-Za-z0-9-]{1,128}")
PHONE_PATTERN = re.compile(r"[6-9]\d{9}")

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def validate_uid(uid: str | None, field: str = "uid") -> str:
    value = str(uid or "").strip()
    if not UID_PATTERN.fullmatch(value):
        raise InvalidInputError(f"{field} must be 1-128 letters, digits or dashes")
    return value


def validate_phone(raw: str | None) -> str:
    digits = re.sub(r"[\s-]", "", str(raw or ""))
    if digits.startswith("+91"):
        digits = digits[3:]
    if not PHONE_PATTERN.fullmatch(digits):
        raise InvalidInputError("Invalid phone number")
    return "+91" + digits


async def read_uploaded_image(file: UploadFile) -> tuple[bytes, str]:
    content_type = (file.content_type or "").lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Only JPG, PNG, and WEBP images are allowed")
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded image is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="Image too large")
    return data, content_type


def sse_events(subscription: Subscription, event: str, heartbeat: float) -> Iterator[str]:
    """Server-Sent Events framing over a snapshot subscription; closes it when the client goes away.

    A snapshot that can no longer be loaded (match deleted, membership lost)
    ends the stream with a final ``closed`` event.
    """
    try:
        for snapshot in subscription.stream(heartbeat=heartbeat):
            if snapshot is None:
                yield ": keep-alive\n\n"
                continue
            yield f"event: {event}\ndata: {json.dumps(jsonable_encoder(snapshot))}\n\n"
    except VibeError as exc:
        logger.info("[STREAM] %s stream on %s closed: %s", event, subscription.topic, exc.message)
        yield f"event: closed\ndata: {json.dumps({'detail': exc.message})}\n\n"
    finally:
        subscription.close()
