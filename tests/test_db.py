import tempfile
import threading
import unittest
from pathlib import Path

from store_ratings.db import Database, DatabaseClosed, _detect_dialect, _qmark_to_pct, init_db
from store_ratings.schema import SCHEMA_POSTGRES, get_schema_sql


class TestDialect(unittest.TestCase):
    def test_detect_dialect(self):
        self.assertEqual(_detect_dialect("postgres://u:p@h/db"), "postgres")
        self.assertEqual(_detect_dialect("postgresql://u:p@h/db"), "postgres")
        self.assertEqual(_detect_dialect("sqlite:///tmp/x.sqlite"), "sqlite")
        self.assertEqual(_detect_dialect("./local.sqlite"), "sqlite")
        self.assertEqual(_detect_dialect(""), "sqlite")

    def test_qmark_to_pct(self):
        self.assertEqual(
            _qmark_to_pct("SELECT * FROM users WHERE email=? AND role=?"),
            "SELECT * FROM users WHERE email=%s AND role=%s",
        )
        # Literal question marks and percents survive.
        self.assertEqual(_qmark_to_pct("SELECT '?', 'it''s' WHERE a=?"), "SELECT '?', 'it''s' WHERE a=%s")
        self.assertEqual(_qmark_to_pct("SELECT '50%' WHERE a LIKE ?"), "SELECT '50%%' WHERE a LIKE %s")

    def test_postgres_schema(self):
        self.assertNotIn("PRAGMA", SCHEMA_POSTGRES)
        self.assertNotIn("AUTOINCREMENT", SCHEMA_POSTGRES)
        self.assertIn("SERIAL PRIMARY KEY", SCHEMA_POSTGRES)
        self.assertIs(get_schema_sql("postgres"), SCHEMA_POSTGRES)
        # Statements are split on ';' for Postgres; comments must not contain one.
        for stmt in [s.strip() for s in SCHEMA_POSTGRES.split(";") if s.strip()]:
            self.assertRegex(stmt, r"CREATE (TABLE|INDEX)")


class TestDatabase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db = Database(str(Path(self._tmp.name) / "db.sqlite"), maxconn=2)
        init_db(self.db)

    def tearDown(self):
        self.db.close(timeout=1)
        self._tmp.cleanup()

    def test_pool_is_lazy(self):
        db = Database("postgresql://nobody@127.0.0.1:1/none")
        self.assertIsNone(db._pool)
        self.assertEqual(db.dialect, "postgres")
        db.close()

    def test_query_returns_dicts(self):
        self.db.query(
            "INSERT INTO users (name, email, password, address, role, created_at, updated_at) VALUES (?,?,?,?,?,?,?)",
            ("Ann", "ann@example.com", "x", "addr", "user", "2024-01-01T00:00:00Z", "2024-01-01T00:00:00Z"),
        )
        rows = self.db.query("SELECT name, email FROM users WHERE role=?", ("user",))
        self.assertEqual(rows, [{"name": "Ann", "email": "ann@example.com"}])

    def test_connection_rolls_back_on_error(self):
        with self.assertRaises(RuntimeError):
            with self.db.connection() as conn:
                conn.execute(
                    "INSERT INTO users (name, email, password, address, role, created_at, updated_at) "
                    "VALUES (?,?,?,?,?,?,?)",
                    ("Bob", "bob@example.com", "x", "addr", "user", "t", "t"),
                )
                raise RuntimeError("boom")
        self.assertEqual(self.db.query("SELECT COUNT(*) AS n FROM users"), [{"n": 0}])
        self.assertEqual(self.db.in_use, 0)

    def test_store_errors_propagate(self):
        with self.assertRaises(Exception):
            self.db.query("SELECT * FROM no_such_table")
        self.assertEqual(self.db.in_use, 0)

    def test_role_constraint(self):
        with self.assertRaises(Exception):
            self.db.query(
                "INSERT INTO users (name, email, password, address, role, created_at, updated_at) "
                "VALUES (?,?,?,?,?,?,?)",
                ("Eve", "eve@example.com", "x", "addr", "root", "t", "t"),
            )

    def test_check_connection(self):
        with self.assertLogs("store_ratings.db", "INFO"):
            self.assertTrue(self.db.check_connection())
        self.assertEqual(self.db.in_use, 0)

    def test_check_connection_failure_releases(self):
        blocker = Path(self._tmp.name) / "a-file"
        blocker.write_text("not a directory")
        bad = Database(str(blocker / "db.sqlite"))
        with self.assertLogs("store_ratings.db", "ERROR"):
            self.assertFalse(bad.check_connection())
        self.assertEqual(bad.in_use, 0)
        bad.close()

    def test_closed_database_refuses_checkout(self):
        self.db.close()
        with self.assertRaises(DatabaseClosed):
            self.db.query("SELECT 1")

    def test_close_waits_for_in_flight_connection(self):
        checked_out = threading.Event()
        release = threading.Event()

        def worker():
            with self.db.connection() as conn:
                conn.execute("SELECT 1")
                checked_out.set()
                release.wait(5)

        t = threading.Thread(target=worker)
        t.start()
        checked_out.wait(5)
        self.assertEqual(self.db.in_use, 1)

        threading.Timer(0.1, release.set).start()
        self.db.close(timeout=5)
        self.assertEqual(self.db.in_use, 0)
        t.join(5)

    def test_close_gives_up_after_timeout(self):
        checked_out = threading.Event()
        release = threading.Event()

        def worker():
            with self.db.connection():
                checked_out.set()
                release.wait(5)

        t = threading.Thread(target=worker)
        t.start()
        checked_out.wait(5)
        with self.assertLogs("store_ratings.db", "WARNING"):
            self.db.close(timeout=0.05)
        release.set()
        t.join(5)
        self.assertEqual(self.db.in_use, 0)


if __name__ == "__main__":
    unittest.main()
