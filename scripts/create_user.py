"""Create a user in the configured database.

Usage:
  python scripts/create_user.py --name 'Alice Example' --email alice@example.com \
      --password 'Secret123!' --address '1 Main St' --role admin

NOTE: This is intended for local/dev and first-admin setup.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from store_ratings.auth.security import password_problems
from store_ratings.config import load_config
from store_ratings.db import Database, init_db
from store_ratings.auth.crud import create_user
from store_ratings.errors import DomainError
from store_ratings.schema import ROLES


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--address", required=True)
    ap.add_argument("--role", choices=list(ROLES), default="user")
    args = ap.parse_args()

    problems = password_problems(args.password)
    if problems:
        ap.error("; ".join(problems))

    cfg = load_config()
    db = Database.from_config(cfg)
    try:
        init_db(db)
        with db.connection() as conn:
            u = create_user(
                conn,
                name=args.name,
                email=args.email,
                password=args.password,
                address=args.address,
                role=args.role,
            )
    except DomainError as e:
        ap.exit(1, f"error: {e}\n")
    finally:
        db.close()

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
