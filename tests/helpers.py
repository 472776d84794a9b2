"""Shared fixtures for the API test suites: a temporary SQLite database behind a live app."""

import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi.testclient import TestClient

from store_ratings.api.server import create_app
from store_ratings.auth.crud import create_user
from store_ratings.auth.security import TokenPayload, issue_token
from store_ratings.catalog.stores import create_store
from store_ratings.config import Config, load_config
from store_ratings.util.time import utcnow_iso

TEST_SECRET = "api-test-secret-0123456789abcdefghij"
PASSWORD = "Secret123!"


def make_config(tmpdir: str, **overrides: Any) -> Config:
    values: Dict[str, Any] = {
        "DB_DSN": str(Path(tmpdir) / "test.sqlite"),
        "JWT_SECRET": TEST_SECRET,
        "CORS_ALLOW_ORIGINS": "",
        "BOOTSTRAP_ADMIN_PASSWORD": None,
        "SEED_DEMO_DATA": False,
    }
    values.update(overrides)
    return load_config(**values)


class ApiTestCase(unittest.TestCase):
    config_overrides: Dict[str, Any] = {}

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.cfg = make_config(self._tmp.name, **self.config_overrides)
        self.app = create_app(self.cfg)
        self.client = TestClient(self.app)
        self.client.__enter__()
        self.ctx = self.app.state.ctx
        self.db = self.ctx.db

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self._tmp.cleanup()

    # -----------------
    # Data builders
    # -----------------

    def make_user(
        self,
        role: str = "user",
        *,
        email: Optional[str] = None,
        name: Optional[str] = None,
        password: str = PASSWORD,
        address: str = "1 Test Street",
    ) -> Dict[str, Any]:
        email = email or f"{role}-{self._next_id()}@example.com"
        with self.db.connection() as conn:
            return create_user(
                conn,
                name=name or f"Test {role} account",
                email=email,
                password=password,
                address=address,
                role=role,
            )

    def make_store(
        self,
        name: str = "Corner Shop",
        *,
        email: Optional[str] = None,
        owner_email: Optional[str] = None,
        address: str = "2 Market Road",
    ) -> Dict[str, Any]:
        email = email or f"store-{self._next_id()}@example.com"
        with self.db.connection() as conn:
            return create_store(conn, name=name, email=email, address=address, owner_email=owner_email)

    def add_rating(self, user_id: int, store_id: int, rating: int, created_at: Optional[str] = None) -> None:
        ts = created_at or utcnow_iso()
        self.db.query(
            """
            INSERT INTO ratings (user_id, store_id, rating, created_at, updated_at)
            VALUES (?,?,?,?,?)
            """,
            (user_id, store_id, rating, ts, ts),
        )

    def token_for(self, user: Dict[str, Any], *, secret: str = TEST_SECRET, **kwargs: Any) -> str:
        payload = TokenPayload(id=int(user["id"]), email=user["email"], role=user["role"])
        return issue_token(payload, secret=secret, **kwargs)

    def auth(self, user_or_token: Any) -> Dict[str, str]:
        token = user_or_token if isinstance(user_or_token, str) else self.token_for(user_or_token)
        return {"Authorization": f"Bearer {token}"}

    _counter = 0

    def _next_id(self) -> int:
        ApiTestCase._counter += 1
        return ApiTestCase._counter
