"""Create the schema, and optionally seed demo accounts and stores.

Usage:
  python scripts/init_db.py [--seed-demo]
"""

import argparse
import logging
import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from store_ratings.config import load_config
from store_ratings.db import Database, init_db
from store_ratings.logging_config import setup_logging
from store_ratings.seed import seed_demo_data


logger = logging.getLogger("scripts.init_db")


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--seed-demo", action="store_true", help="create demo owner/user/stores")
    args = ap.parse_args()

    cfg = load_config()
    setup_logging(cfg.LOG_LEVEL, json_output=cfg.LOG_JSON)

    db = Database.from_config(cfg)
    try:
        if not db.check_connection():
            sys.exit(1)
        init_db(db)
        if args.seed_demo:
            seed_demo_data(db)
    finally:
        db.close(timeout=cfg.DB_SHUTDOWN_TIMEOUT_SECONDS)

    logger.info("DB initialized", extra={"dialect": db.dialect})


if __name__ == "__main__":
    main()
