import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import GEO_BUCKET_LIMIT, GEO_MAX_RESULTS
from ..models import UserProfile
from .geo import Coordinate, distance_between, geohash_query_bounds, valid_coordinate

logger = logging.getLogger(__name__)


@dataclass
class NearbyProfile:
    profile: UserProfile
    distance_km: float


def fetch_nearby_profiles(
    db: Session,
    center: Coordinate,
    radius_km: float,
    *,
    per_bucket_limit: int = GEO_BUCKET_LIMIT,
    max_results: int = GEO_MAX_RESULTS,
) -> list[NearbyProfile]:
    bounds = geohash_query_bounds(center, radius_km * 1000)
    found: list[NearbyProfile] = []
    visited: set[str] = set()
    buckets_queried = 0

    for start, end in bounds:
        # Stop issuing bucket scans once the cap is reached; later buckets may hold
        # nearer profiles, which is the price of bounding cost.
        if len(found) >= max_results:
            break
        buckets_queried += 1
        rows = db.execute(
            select(UserProfile)
            .where(UserProfile.geohash >= start, UserProfile.geohash <= end)
            .order_by(UserProfile.geohash)
            .limit(per_bucket_limit)
        ).scalars().all()
        for profile in rows:
            if profile.uid in visited:
                continue
            visited.add(profile.uid)
            if not valid_coordinate(profile.lat, profile.lng):
                continue
            distance = distance_between((float(profile.lat), float(profile.lng)), center)
            if distance > radius_km:
                continue
            found.append(NearbyProfile(profile=profile, distance_km=distance))
            if len(found) >= max_results:
                break

    logger.debug(
        "[GEO] center=%s radius_km=%s buckets=%s/%s found=%s",
        center,
        radius_km,
        buckets_queried,
        len(bounds),
        len(found),
    )
    found.sort(key=lambda item: item.distance_km)
    return found
