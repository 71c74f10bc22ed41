import random
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..models import UserProfile
from .profiles import delete_account, save_profile

SEED_PREFIX = "seed-"

CITIES = {
    "pune": (18.5362, 73.8940),
    "bangalore": (12.9716, 77.5946),
    "mumbai": (19.0760, 72.8777),
}

FIRST_NAMES = [
    "Aarav", "Vihaan", "Aditya", "Sai", "Arjun", "Kabir", "Rohan", "Ishaan", "Rahul", "Pranav",
    "Saanvi", "Anya", "Diya", "Ananya", "Myra", "Riya", "Kiara", "Isha", "Priya", "Sneha",
]

BIOS = [
    "Software engineer working in Hinjewadi. Need a chill flatmate.",
    "Student looking for a shared room nearby.",
    "I travel a lot. Need a clean and quiet place.",
    "New to the city! Love exploring cafes. Let's hunt for a flat together.",
    "Early bird, non-smoker.",
    "Freelance designer. I work from home, so good WiFi is a must!",
    "Foodie. I cook on weekends. You clean, I cook?",
    "Simple person. 9-5 job. Clean habits. No drama.",
]

OCCUPATIONS = ["Engineer", "Student", "Designer", "Doctor", "Marketing", "Founder"]
TAGS = ["Non-smoker", "Early bird", "Night owl", "Vegetarian", "Pet friendly", "Gym", "WFH", "Foodie"]
LOCALITIES = ["Viman Nagar", "Kalyani Nagar", "Koregaon Park", "Baner", "Aundh", "Magarpatta"]


def _seed_payload(rng: random.Random, center: tuple[float, float], spread_deg: float) -> dict[str, Any]:
    role = rng.choice(["hunter", "host"])
    name = f"{rng.choice(FIRST_NAMES)} {chr(65 + rng.randrange(26))}"
    photo = f"https://randomuser.me/api/portraits/{rng.choice(['men', 'women'])}/{rng.randint(1, 90)}.jpg"
    payload: dict[str, Any] = {
        "role": role,
        "name": name,
        "age": rng.randint(21, 32),
        "bio": rng.choice(BIOS),
        "occupation": rng.choice(OCCUPATIONS),
        "images": [photo],
        "tags": rng.sample(TAGS, k=rng.randint(1, 4)),
        "lat": center[0] + (rng.random() - 0.5) * spread_deg,
        "lng": center[1] + (rng.random() - 0.5) * spread_deg,
    }
    amount = rng.randint(8, 25) * 1000
    if role == "host":
        payload.update({"rent": amount, "locality": rng.choice(LOCALITIES)})
    else:
        payload.update({"budget": amount, "move_in": rng.choice(["ASAP", "Next month", "Flexible"])})
    return payload


def seed_profiles(
    tx_session: sessionmaker,
    n_users: int = 50,
    *,
    city: str = "pune",
    spread_deg: float = 0.08,
    seed: int = 42,
    reset: bool = False,
) -> dict[str, Any]:
    """Create ``n_users`` demo profiles scattered around a city center."""
    if city not in CITIES:
        raise ValueError(f"unknown city: {city}")
    rng = random.Random(seed)
    removed = 0
    if reset:
        with tx_session() as db:
            existing = db.execute(
                select(UserProfile.uid).where(UserProfile.uid.like(f"{SEED_PREFIX}%"))
            ).scalars().all()
        for uid in existing:
            delete_account(tx_session, uid)
            removed += 1

    roles = {"hunter": 0, "host": 0}
    for idx in range(max(0, n_users)):
        payload = _seed_payload(rng, CITIES[city], spread_deg)
        save_profile(tx_session, f"{SEED_PREFIX}{city}-{idx}", payload)
        roles[payload["role"]] += 1

    return {"city": city, "created": n_users, "removed": removed, **roles}
