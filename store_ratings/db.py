from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence
from urllib.parse import urlparse

from store_ratings.schema import get_schema_sql


logger = logging.getLogger(__name__)


class DatabaseClosed(RuntimeError):
    pass


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except ValueError:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


def _sqlite_path(dsn: str) -> str:
    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        return dsn[len("sqlite:///") :]
    return dsn


def _qmark_to_pct(sql: str) -> str:
    """Convert SQLite qmark placeholders (?) to psycopg2 placeholders (%s).

    Skips '?' inside single/double-quoted literals and escapes literal '%' so
    psycopg2 does not read it as a placeholder. Not a full SQL parser, but
    sufficient for the statements in this codebase.
    """
    out: List[str] = []
    in_single = False
    in_double = False
    i = 0
    while i < len(sql):
        ch = sql[i]

        if ch == "'" and not in_double:
            out.append(ch)
            if in_single:
                # Escaped single quote: ''
                if i + 1 < len(sql) and sql[i + 1] == "'":
                    out.append("'")
                    i += 2
                    continue
                in_single = False
            else:
                in_single = True
            i += 1
            continue

        if ch == '"' and not in_single:
            out.append(ch)
            if in_double:
                if i + 1 < len(sql) and sql[i + 1] == '"':
                    out.append('"')
                    i += 2
                    continue
                in_double = False
            else:
                in_double = True
            i += 1
            continue

        if ch == "%":
            out.append("%%")
            i += 1
            continue

        if ch == "?" and not in_single and not in_double:
            out.append("%s")
            i += 1
            continue

        out.append(ch)
        i += 1

    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()

    @property
    def description(self) -> Any:
        return self._cur.description


class PGConnection:
    """A tiny adapter that makes psycopg2 connections look like sqlite3 connections."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        wrapper = PGCursor(self._conn.cursor())
        wrapper.execute(sql, params)
        return wrapper

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()


class SQLiteConnection(sqlite3.Connection):
    dialect = "sqlite"


class Database:
    """Process-wide handle to the relational store.

    The underlying pool is created on first use. Postgres connections come from a
    psycopg2 ThreadedConnectionPool (RealDictCursor rows); SQLite opens a fresh
    connection per checkout. At most `maxconn` connections are checked out at
    once; further callers wait for one to be returned.
    """

    def __init__(
        self,
        dsn: str,
        *,
        sslmode: Optional[str] = None,
        minconn: int = 1,
        maxconn: int = 10,
    ):
        self.dsn = (dsn or "").strip()
        self.dialect = _detect_dialect(self.dsn)
        self._sslmode = sslmode
        self._minconn = max(0, int(minconn))
        self._maxconn = max(1, int(maxconn), self._minconn)

        self._pool: Any = None
        self._lock = threading.Lock()
        self._slots = threading.Condition(threading.Lock())
        self._in_use = 0
        self._closed = False

    @classmethod
    def from_config(cls, cfg: Any) -> "Database":
        return cls(
            cfg.DB_DSN,
            sslmode=cfg.DB_SSLMODE,
            minconn=cfg.DB_POOL_MIN,
            maxconn=cfg.DB_POOL_MAX,
        )

    @property
    def in_use(self) -> int:
        return self._in_use

    # -----------------
    # Pool lifecycle
    # -----------------

    def _get_pool(self) -> Any:
        if self._pool is None:
            with self._lock:
                if self._pool is None:
                    self._pool = self._open_pool()
        return self._pool

    def _open_pool(self) -> Any:
        try:
            import psycopg2.extras
            import psycopg2.pool
        except ImportError as e:
            raise RuntimeError(
                "Postgres selected but psycopg2 is not installed. "
                "Install psycopg2-binary and try again."
            ) from e

        kwargs: Dict[str, Any] = {"cursor_factory": psycopg2.extras.RealDictCursor}
        if self._sslmode:
            kwargs["sslmode"] = self._sslmode
        logger.info(
            "Opening Postgres pool",
            extra={"minconn": self._minconn, "maxconn": self._maxconn, "sslmode": self._sslmode},
        )
        return psycopg2.pool.ThreadedConnectionPool(self._minconn, self._maxconn, self.dsn, **kwargs)

    def _open_sqlite(self) -> sqlite3.Connection:
        path = _sqlite_path(self.dsn)
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, timeout=30, check_same_thread=False, factory=SQLiteConnection)
        conn.row_factory = sqlite3.Row
        # Concurrency pragmas (safe defaults for a multi-threaded API)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")  # 5s
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _acquire_slot(self) -> None:
        with self._slots:
            while True:
                if self._closed:
                    raise DatabaseClosed("database_closed")
                if self._in_use < self._maxconn:
                    self._in_use += 1
                    return
                self._slots.wait()

    def _release_slot(self) -> None:
        with self._slots:
            self._in_use -= 1
            self._slots.notify_all()

    def _checkout(self) -> Any:
        self._acquire_slot()
        try:
            if self.dialect == "postgres":
                return self._get_pool().getconn()
            return self._open_sqlite()
        except BaseException:
            self._release_slot()
            raise

    def _checkin(self, raw: Any, *, broken: bool) -> None:
        try:
            if self.dialect == "postgres":
                pool = self._pool
                if pool is not None:
                    pool.putconn(raw, close=bool(broken or getattr(raw, "closed", 0)))
            else:
                raw.close()
        finally:
            self._release_slot()

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop handing out connections, wait for in-flight ones, then close the pool."""
        deadline = None if timeout is None else time.monotonic() + float(timeout)
        with self._slots:
            self._closed = True
            self._slots.notify_all()
            while self._in_use > 0:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    logger.warning("Closing database with connections in use", extra={"in_use": self._in_use})
                    break
                self._slots.wait(remaining)

        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.closeall()
        logger.info("Database closed", extra={"dialect": self.dialect})

    # -----------------
    # Queries
    # -----------------

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Check out a connection: commit on success, roll back on error, always return it."""
        raw = self._checkout()
        conn = PGConnection(raw) if self.dialect == "postgres" else raw
        ok = False
        try:
            yield conn
            conn.commit()
            ok = True
        except Exception:
            try:
                conn.rollback()
            except Exception:
                logger.warning("Rollback failed", exc_info=True)
            raise
        finally:
            self._checkin(raw, broken=not ok)

    def query(self, sql: str, params: Sequence[Any] | None = None) -> List[Dict[str, Any]]:
        """Run one statement in its own transaction and return the rows as dicts."""
        with self.connection() as conn:
            cur = conn.execute(sql, tuple(params or ()))
            if cur.description is None:
                return []
            return [dict(r) for r in cur.fetchall()]

    def check_connection(self) -> bool:
        """Liveness check: True when a trivial query succeeds."""
        try:
            with self.connection() as conn:
                row = conn.execute("SELECT CURRENT_TIMESTAMP AS now").fetchone()
        except Exception:
            logger.exception("Database connection error", extra={"dialect": self.dialect})
            return False
        logger.info("Database connected successfully", extra={"dialect": self.dialect, "now": str(row["now"])})
        return True


def init_db(db: Database) -> None:
    """Create all tables and indexes (idempotent)."""
    logger.info("Initializing DB", extra={"dialect": db.dialect})
    with db.connection() as conn:
        schema_sql = get_schema_sql(db.dialect)
        # Ensure only one process runs schema DDL at a time.
        # - Postgres: use an advisory lock.
        # - SQLite: DDL already takes an exclusive database lock.
        if db.dialect == "postgres":
            conn.execute("SELECT pg_advisory_lock(2147483647);")
            try:
                _exec_schema(conn, schema_sql, dialect=db.dialect)
            finally:
                conn.execute("SELECT pg_advisory_unlock(2147483647);")
        else:
            _exec_schema(conn, schema_sql, dialect=db.dialect)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        # Execute multi-statement DDL (naive split is OK for our schema)
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for stmt in statements:
            conn.execute(stmt)
        return

    # SQLite can run it in one go
    conn.executescript(ddl)
