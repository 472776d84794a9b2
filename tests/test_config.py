import io
import json
import logging
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

from store_ratings.config import DEV_JWT_SECRET, ConfigError, load_config
from store_ratings.context import AppContext
from store_ratings.logging_config import setup_logging


class TestConfig(unittest.TestCase):
    def test_configured_secret_wins(self):
        cfg = load_config(JWT_SECRET="configured-secret-0123456789abcdef", APP_ENV="production")
        self.assertEqual(cfg.resolved_jwt_secret(), "configured-secret-0123456789abcdef")

    def test_development_falls_back(self):
        cfg = load_config(JWT_SECRET=None, APP_ENV="development")
        self.assertFalse(cfg.is_production)
        self.assertEqual(cfg.resolved_jwt_secret(), DEV_JWT_SECRET)

    def test_production_requires_secret(self):
        cfg = load_config(JWT_SECRET=None, APP_ENV="production")
        self.assertTrue(cfg.is_production)
        with self.assertRaises(ConfigError):
            cfg.resolved_jwt_secret()

    def test_context_warns_on_fallback_secret(self):
        with tempfile.TemporaryDirectory() as tmp:
            cfg = load_config(JWT_SECRET=None, APP_ENV="development", DB_DSN=str(Path(tmp) / "x.sqlite"))
            with self.assertLogs("store_ratings.context", "WARNING"):
                ctx = AppContext.create(cfg)
            self.assertEqual(ctx.jwt_secret, DEV_JWT_SECRET)
            self.assertIsNone(ctx.db._pool)
            ctx.close()

    def test_context_refuses_production_without_secret(self):
        cfg = load_config(JWT_SECRET=None, APP_ENV="production")
        with self.assertRaises(ConfigError):
            AppContext.create(cfg)


class TestLogging(unittest.TestCase):
    def setUp(self):
        self._root = logging.getLogger()
        self._handlers = self._root.handlers[:]
        self._level = self._root.level

    def tearDown(self):
        for h in self._root.handlers[:]:
            self._root.removeHandler(h)
        for h in self._handlers:
            self._root.addHandler(h)
        self._root.setLevel(self._level)
        logging.getLogger("uvicorn.access").disabled = False

    def test_json_lines(self):
        buf = io.StringIO()
        with redirect_stdout(buf):
            setup_logging("info", json_output=True)
            logging.getLogger("store_ratings.test").info("hello", extra={"user_id": 7})

        record = json.loads(buf.getvalue().strip().splitlines()[-1])
        self.assertEqual(record["message"], "hello")
        self.assertEqual(record["level"], "INFO")
        self.assertEqual(record["name"], "store_ratings.test")
        self.assertEqual(record["user_id"], 7)
        self.assertIn("timestamp", record)
        self.assertTrue(logging.getLogger("uvicorn.access").disabled)


if __name__ == "__main__":
    unittest.main()
