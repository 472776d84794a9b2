"""Database schema for the Store Ratings platform.

Timestamps are ISO-8601 TEXT (UTC, with 'Z') on both engines. ISO strings sort
lexicographically in time order, so `ORDER BY created_at DESC` and comparisons
like `created_at >= cutoff_iso` behave the same on SQLite and Postgres.

The Postgres schema is generated from the SQLite schema with a small set of
transformations (autoincrement + pragmas).
"""

from __future__ import annotations

import re


ROLES = ("admin", "user", "store_owner")


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Users / Auth
-- Passwords are stored as hashes only. Role gates which endpoints a token may use.
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password TEXT NOT NULL,
    address TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('admin','user','store_owner')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_users_email ON users (email);
CREATE INDEX IF NOT EXISTS idx_users_role ON users (role);

CREATE TABLE IF NOT EXISTS stores (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    address TEXT NOT NULL,
    owner_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_stores_owner_id ON stores (owner_id);

-- One rating per (user, store). Re-rating updates the row.
CREATE TABLE IF NOT EXISTS ratings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    store_id INTEGER NOT NULL REFERENCES stores(id) ON DELETE CASCADE,
    rating INTEGER NOT NULL CHECK (rating >= 1 AND rating <= 5),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, store_id)
);
CREATE INDEX IF NOT EXISTS idx_ratings_user_id ON ratings (user_id);
CREATE INDEX IF NOT EXISTS idx_ratings_store_id ON ratings (store_id);
CREATE INDEX IF NOT EXISTS idx_ratings_created_at ON ratings (created_at);
"""


def _to_postgres(sqlite_ddl: str) -> str:
    ddl = re.sub(r"^\s*PRAGMA[^;]*;\s*$", "", sqlite_ddl, flags=re.MULTILINE)
    ddl = ddl.replace("INTEGER PRIMARY KEY AUTOINCREMENT", "SERIAL PRIMARY KEY")
    return ddl


SCHEMA_POSTGRES = _to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
