import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from vibe.database import TransactionSessionLocal
from vibe.main import create_tables
from vibe.services.seeding import CITIES, seed_profiles


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo Vibe Match profiles around a city")
    parser.add_argument("--n-users", type=int, default=50)
    parser.add_argument("--city", type=str, default="pune", choices=sorted(CITIES))
    parser.add_argument("--spread-deg", type=float, default=0.08)
    parser.add_argument("--reset", action="store_true")
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    create_tables()
    summary = seed_profiles(
        TransactionSessionLocal,
        n_users=args.n_users,
        city=args.city,
        spread_deg=args.spread_deg,
        seed=args.seed,
        reset=args.reset,
    )

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
