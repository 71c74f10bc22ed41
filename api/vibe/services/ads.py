from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ..config import ADS_CONFIG_PATH, DEV_MODE

logger = logging.getLogger(__name__)

FALLBACK_ADS: dict[str, list[dict[str, Any]]] = {
    "hunter": [
        {"ad_id": "amz_mattress", "platform": "Amazon", "name": "Wakefit Mattress", "price": "₹5,200", "bio": "The #1 choice for renters. Orthopedic memory foam.", "image": "https://images-na.ssl-images-amazon.com/images/P/B07DYP5T5V.01.jpg", "link": "https://www.amazon.in/dp/B07DYP5T5V"},
        {"ad_id": "amz_kettle", "platform": "Amazon", "name": "Pigeon Kettle", "price": "₹599", "bio": "1.5L electric kettle. Boils water in 60s.", "image": "https://images-na.ssl-images-amazon.com/images/P/B0F54GKQ38.01.jpg", "link": "https://www.amazon.in/dp/B0F54GKQ38"},
        {"ad_id": "amz_ext", "platform": "Amazon", "name": "Extension Board", "price": "₹399", "bio": "4 socket + master switch. Don't fight for plugs.", "image": "https://images-na.ssl-images-amazon.com/images/P/B0FZ4G42NV.01.jpg", "link": "https://www.amazon.in/dp/B0FZ4G42NV"},
    ],
    "host": [
        {"ad_id": "spon_furlenco", "platform": "Furlenco", "name": "Rent Furniture @ ₹999", "price": None, "bio": "Furnish the spare room before your new flatmate moves in.", "image": "https://images.unsplash.com/photo-1555041469-a586c61ea9bc", "link": "https://furlenco.com"},
        {"ad_id": "spon_urban", "platform": "Urban Company", "name": "Deep Clean Your Flat", "price": None, "bio": "Get the place spotless before move-in day.", "image": "https://images.unsplash.com/photo-1581578731117-10d52143b0d8", "link": "https://urbancompany.com"},
    ],
}

HOUSE_ENTRY: dict[str, Any] = {
    "ad_id": "house_premium",
    "platform": "Vibe",
    "name": "Stop Swiping, Start Living",
    "bio": "Unlock Premium to see everyone who vibed with your profile.",
    "cta": "GET PREMIUM",
}

_REQUIRED_KEYS = ("ad_id", "name")


def _clean_entries(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    out: list[dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        if any(not str(item.get(k) or "").strip() for k in _REQUIRED_KEYS):
            continue
        out.append(dict(item))
    return out


def load_ad_inventory(path: Path | None = None) -> dict[str, list[dict[str, Any]]]:
    """Role -> ordered rotation list. Roles missing from the file keep the built-in list."""
    path = path or ADS_CONFIG_PATH
    raw: Any = None
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Failed to parse ads config JSON at %s. Falling back to in-code defaults.", str(path))
    elif DEV_MODE:
        logger.warning("[ADS][DEV] Ads config file not found at %s. Using in-code defaults.", str(path))

    if raw is not None and not isinstance(raw, dict):
        logger.warning("Invalid ads config format at %s; expected object keyed by role.", str(path))
        raw = None

    inventory = {role: [dict(e) for e in entries] for role, entries in FALLBACK_ADS.items()}
    for role, entries in (raw or {}).items():
        cleaned = _clean_entries(entries)
        if cleaned:
            inventory[str(role).strip().lower()] = cleaned
    return inventory


def house_entry() -> dict[str, Any]:
    return dict(HOUSE_ENTRY)
