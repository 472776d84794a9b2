from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from store_ratings.auth.crud import get_user_by_email, normalize_email
from store_ratings.errors import Conflict
from store_ratings.util.time import utcnow_iso


logger = logging.getLogger(__name__)

STORE_FILTER_FIELDS = ("name", "email", "address")
STORE_SORT_FIELDS = ("name", "email", "address", "average_rating", "total_ratings", "created_at")


def format_average(value: Any) -> str:
    """Average rating as a one-decimal string ("0.0" when there are no ratings)."""
    return f"{float(value or 0):.1f}"


def _store_summary(row: Any) -> Dict[str, Any]:
    d = dict(row)
    d["average_rating"] = format_average(d.get("average_rating"))
    d["total_ratings"] = int(d.get("total_ratings") or 0)
    return d


def get_store(conn: Any, store_id: int) -> Optional[Any]:
    return conn.execute("SELECT * FROM stores WHERE id=?", (int(store_id),)).fetchone()


def create_store(
    conn: Any,
    *,
    name: str,
    email: str,
    address: str,
    owner_email: Optional[str] = None,
) -> Dict[str, Any]:
    e = normalize_email(email)
    if conn.execute("SELECT id FROM stores WHERE email=?", (e,)).fetchone() is not None:
        raise Conflict("Store with this email already exists")

    owner_id: Optional[int] = None
    if owner_email:
        owner = get_user_by_email(conn, owner_email)
        if owner is None:
            raise Conflict("Store owner not found")
        if owner["role"] != "store_owner":
            raise Conflict("User must have store_owner role")
        owner_id = int(owner["id"])

    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO stores (name, email, address, owner_id, created_at, updated_at)
        VALUES (?,?,?,?,?,?)
        """,
        (name.strip(), e, address.strip(), owner_id, now, now),
    )
    row = conn.execute(
        "SELECT id, name, email, address, owner_id, created_at FROM stores WHERE email=?",
        (e,),
    ).fetchone()
    logger.info("Created store", extra={"store_id": row["id"], "owner_id": owner_id})
    return dict(row)


def list_stores_admin(
    conn: Any,
    *,
    search: str = "",
    field: str = "name",
    sort_by: str = "name",
    sort_order: str = "asc",
) -> List[Dict[str, Any]]:
    """All stores with rating aggregates and owner name."""
    params: List[Any] = []
    sql = """
        SELECT
            s.id, s.name, s.email, s.address, s.created_at,
            COALESCE(AVG(r.rating), 0) AS average_rating,
            COUNT(r.id) AS total_ratings,
            u.name AS owner_name
        FROM stores s
        LEFT JOIN ratings r ON s.id = r.store_id
        LEFT JOIN users u ON s.owner_id = u.id
    """
    if search:
        col = field if field in STORE_FILTER_FIELDS else "name"
        sql += f" WHERE LOWER(s.{col}) LIKE ?"
        params.append(f"%{search.strip().lower()}%")

    sql += " GROUP BY s.id, s.name, s.email, s.address, s.created_at, u.name"

    order_col = sort_by if sort_by in STORE_SORT_FIELDS else "name"
    if order_col not in ("average_rating", "total_ratings"):
        order_col = f"s.{order_col}"
    direction = "DESC" if (sort_order or "").lower() == "desc" else "ASC"
    sql += f" ORDER BY {order_col} {direction}, s.id ASC"

    return [_store_summary(r) for r in conn.execute(sql, params).fetchall()]


def browse_stores(
    conn: Any,
    *,
    user_id: int,
    query: str = "",
    field: str = "name",
) -> List[Dict[str, Any]]:
    """Stores with aggregates plus the caller's own rating (None if not rated)."""
    params: List[Any] = [int(user_id)]
    sql = """
        SELECT
            s.id, s.name, s.email, s.address, s.created_at,
            COALESCE(AVG(r.rating), 0) AS average_rating,
            COUNT(r.id) AS total_ratings,
            ur.rating AS user_rating
        FROM stores s
        LEFT JOIN ratings r ON s.id = r.store_id
        LEFT JOIN ratings ur ON s.id = ur.store_id AND ur.user_id = ?
    """
    if query:
        col = field if field in STORE_FILTER_FIELDS else "name"
        sql += f" WHERE LOWER(s.{col}) LIKE ?"
        params.append(f"%{query.strip().lower()}%")

    sql += " GROUP BY s.id, s.name, s.email, s.address, s.created_at, ur.rating ORDER BY s.name ASC, s.id ASC"
    return [_store_summary(r) for r in conn.execute(sql, params).fetchall()]


def owner_stores(conn: Any, *, owner_id: int) -> Dict[str, Any]:
    """Stores owned by `owner_id`, the ratings they received, and overall statistics."""
    stores = [
        _store_summary(r)
        for r in conn.execute(
            """
            SELECT
                s.id, s.name, s.email, s.address, s.created_at,
                COALESCE(AVG(r.rating), 0) AS average_rating,
                COUNT(r.id) AS total_ratings
            FROM stores s
            LEFT JOIN ratings r ON s.id = r.store_id
            WHERE s.owner_id = ?
            GROUP BY s.id, s.name, s.email, s.address, s.created_at
            ORDER BY s.name ASC, s.id ASC
            """,
            (int(owner_id),),
        ).fetchall()
    ]

    ratings = [
        dict(r)
        for r in conn.execute(
            """
            SELECT
                r.id, r.rating, r.created_at,
                u.name AS user_name, u.email AS user_email,
                s.name AS store_name, s.id AS store_id
            FROM ratings r
            JOIN users u ON r.user_id = u.id
            JOIN stores s ON r.store_id = s.id
            WHERE s.owner_id = ?
            ORDER BY r.created_at DESC, r.id DESC
            """,
            (int(owner_id),),
        ).fetchall()
    ]

    # Mean of per-store averages, over stores that have ratings.
    rated = [float(s["average_rating"]) for s in stores if s["total_ratings"] > 0]
    overall = sum(rated) / len(rated) if rated else 0.0

    return {
        "stores": stores,
        "ratings": ratings,
        "statistics": {
            "totalStores": len(stores),
            "totalRatings": len(ratings),
            "overallAverageRating": format_average(overall),
        },
    }
