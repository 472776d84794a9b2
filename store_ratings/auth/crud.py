from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from store_ratings.config import Config
from store_ratings.db import Database
from store_ratings.errors import Conflict, DomainError, NotFound
from store_ratings.schema import ROLES
from store_ratings.util.time import utcnow_iso

from .security import hash_password, verify_password


logger = logging.getLogger(__name__)

USER_FILTER_FIELDS = ("name", "email", "address", "role")
USER_SORT_FIELDS = ("name", "email", "address", "role", "created_at")
_PUBLIC_COLUMNS = "id, name, email, address, role, created_at, updated_at"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def public_user(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d.pop("password", None)
    return d


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute("SELECT * FROM users WHERE email=?", (e,)).fetchone()


def get_user_by_id(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute("SELECT * FROM users WHERE id=?", (int(user_id),)).fetchone()


def verify_user_credentials(conn: Any, email: str, password: str) -> Optional[Any]:
    row = get_user_by_email(conn, email)
    if row is None:
        return None
    if not verify_password(password, str(row["password"])):
        return None
    return row


def create_user(
    conn: Any,
    *,
    name: str,
    email: str,
    password: str,
    address: str,
    role: str = "user",
) -> Dict[str, Any]:
    e = normalize_email(email)
    if not e:
        raise DomainError("Email is required")
    if role not in ROLES:
        raise DomainError("Invalid role")

    if get_user_by_email(conn, e) is not None:
        raise Conflict("User with this email already exists")

    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO users (name, email, password, address, role, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?)
        """,
        (name.strip(), e, hash_password(password), address.strip(), role, now, now),
    )
    row = get_user_by_email(conn, e)
    assert row is not None
    logger.info("Created user", extra={"user_id": row["id"], "role": role})
    return public_user(row)


def update_user(
    conn: Any,
    user_id: int,
    *,
    name: Optional[str] = None,
    email: Optional[str] = None,
    address: Optional[str] = None,
    role: Optional[str] = None,
    password: Optional[str] = None,
) -> Dict[str, Any]:
    """Update only the provided fields."""
    existing = get_user_by_id(conn, user_id)
    if existing is None:
        raise NotFound("User not found")

    fields: list[tuple[str, Any]] = []
    if name is not None:
        fields.append(("name", name.strip()))
    if email is not None:
        e = normalize_email(email)
        if e != existing["email"]:
            taken = conn.execute("SELECT id FROM users WHERE email=? AND id<>?", (e, int(user_id))).fetchone()
            if taken is not None:
                raise Conflict("Email already taken by another user")
        fields.append(("email", e))
    if address is not None:
        fields.append(("address", address.strip()))
    if role is not None:
        if role not in ROLES:
            raise DomainError("Invalid role")
        fields.append(("role", role))
    if password is not None:
        fields.append(("password", hash_password(password)))

    if not fields:
        raise DomainError("No fields to update")

    fields.append(("updated_at", utcnow_iso()))
    sets = ", ".join([f"{k}=?" for k, _ in fields])
    params = [v for _, v in fields] + [int(user_id)]
    conn.execute(f"UPDATE users SET {sets} WHERE id=?", params)

    row = get_user_by_id(conn, user_id)
    assert row is not None
    return public_user(row)


def delete_user(conn: Any, user_id: int, *, acting_user_id: int) -> None:
    if get_user_by_id(conn, user_id) is None:
        raise NotFound("User not found")
    if int(user_id) == int(acting_user_id):
        raise Conflict("Cannot delete your own account")

    owned = conn.execute("SELECT COUNT(*) AS n FROM stores WHERE owner_id=?", (int(user_id),)).fetchone()
    if int(owned["n"]) > 0:
        raise Conflict(
            "Cannot delete user with associated stores. Please reassign or delete stores first."
        )

    # Ratings go with the user (ON DELETE CASCADE).
    conn.execute("DELETE FROM users WHERE id=?", (int(user_id),))
    logger.info("Deleted user", extra={"user_id": int(user_id), "acting_user_id": int(acting_user_id)})


def change_password(conn: Any, user_id: int, *, current_password: str, new_password: str) -> None:
    row = get_user_by_id(conn, user_id)
    if row is None:
        raise NotFound("User not found")
    if not verify_password(current_password, str(row["password"])):
        raise DomainError("Current password is incorrect")
    conn.execute(
        "UPDATE users SET password=?, updated_at=? WHERE id=?",
        (hash_password(new_password), utcnow_iso(), int(user_id)),
    )


def list_users(
    conn: Any,
    *,
    search: str = "",
    field: str = "name",
    role: str = "",
    sort_by: str = "name",
    sort_order: str = "asc",
) -> List[Dict[str, Any]]:
    """Filter/sort users. Column names come from fixed allow-lists only."""
    where: List[str] = []
    params: List[Any] = []

    if search:
        col = field if field in USER_FILTER_FIELDS else "name"
        where.append(f"LOWER({col}) LIKE ?")
        params.append(f"%{search.strip().lower()}%")
    if role:
        where.append("role=?")
        params.append(role)

    sql = f"SELECT {_PUBLIC_COLUMNS} FROM users"
    if where:
        sql += " WHERE " + " AND ".join(where)

    order_col = sort_by if sort_by in USER_SORT_FIELDS else "name"
    direction = "DESC" if (sort_order or "").lower() == "desc" else "ASC"
    sql += f" ORDER BY {order_col} {direction}, id ASC"

    return [dict(r) for r in conn.execute(sql, params).fetchall()]


def bootstrap_admin_if_needed(db: Database, cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first admin user if the users table is empty.

    Controlled via environment variables so a new deployment has a deterministic
    way to log in:

    - BOOTSTRAP_ADMIN_EMAIL (default: admin@storerating.com)
    - BOOTSTRAP_ADMIN_PASSWORD (no default; nothing is created when unset)

    This only runs when there are 0 rows in `users`.
    """

    password = cfg.BOOTSTRAP_ADMIN_PASSWORD
    email = normalize_email(cfg.BOOTSTRAP_ADMIN_EMAIL)
    if not password or not email:
        return None

    with db.connection() as conn:
        n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
        if int(n) > 0:
            return None

        return create_user(
            conn,
            name=cfg.BOOTSTRAP_ADMIN_NAME,
            email=email,
            password=password,
            address=cfg.BOOTSTRAP_ADMIN_ADDRESS,
            role="admin",
        )
