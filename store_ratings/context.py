from __future__ import annotations

import logging
from dataclasses import dataclass, field

from store_ratings.config import DEV_JWT_SECRET, Config
from store_ratings.db import Database


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything request handlers share: configuration, signing key, database."""

    cfg: Config
    db: Database
    jwt_secret: str = field(default="")

    @classmethod
    def create(cls, cfg: Config) -> "AppContext":
        secret = cfg.resolved_jwt_secret()
        if secret == DEV_JWT_SECRET:
            logger.warning("JWT_SECRET is not set; using the development fallback secret")
        return cls(cfg=cfg, db=Database.from_config(cfg), jwt_secret=secret)

    def close(self) -> None:
        self.db.close(timeout=self.cfg.DB_SHUTDOWN_TIMEOUT_SECONDS)
