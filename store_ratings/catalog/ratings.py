from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from store_ratings.errors import NotFound
from store_ratings.util.time import utcnow_iso

from .stores import get_store


logger = logging.getLogger(__name__)

# Every rating joined to the user who wrote it and the store it is for, newest first.
ALL_RATINGS_SQL = """
    SELECT
        r.id,
        r.rating,
        r.created_at,
        u.name AS user_name,
        u.email AS user_email,
        s.name AS store_name
    FROM ratings r
    JOIN users u ON r.user_id = u.id
    JOIN stores s ON r.store_id = s.id
    ORDER BY r.created_at DESC, r.id DESC
"""


def list_all_ratings(db: Any) -> List[Dict[str, Any]]:
    return db.query(ALL_RATINGS_SQL)


def submit_rating(conn: Any, *, user_id: int, store_id: int, rating: int) -> Tuple[Dict[str, Any], bool]:
    """Insert the user's rating for a store, or update it if one exists.

    Returns (rating_row, updated).
    """
    if get_store(conn, store_id) is None:
        raise NotFound("Store not found")

    now = utcnow_iso()
    existing = conn.execute(
        "SELECT id FROM ratings WHERE user_id=? AND store_id=?",
        (int(user_id), int(store_id)),
    ).fetchone()

    if existing is not None:
        conn.execute(
            "UPDATE ratings SET rating=?, updated_at=? WHERE user_id=? AND store_id=?",
            (int(rating), now, int(user_id), int(store_id)),
        )
    else:
        conn.execute(
            """
            INSERT INTO ratings (user_id, store_id, rating, created_at, updated_at)
            VALUES (?,?,?,?,?)
            """,
            (int(user_id), int(store_id), int(rating), now, now),
        )

    row = conn.execute(
        "SELECT * FROM ratings WHERE user_id=? AND store_id=?",
        (int(user_id), int(store_id)),
    ).fetchone()
    return dict(row), existing is not None


def list_user_ratings(conn: Any, *, user_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT
            r.id, r.rating, r.created_at, r.updated_at,
            s.id AS store_id, s.name AS store_name, s.address AS store_address
        FROM ratings r
        JOIN stores s ON r.store_id = s.id
        WHERE r.user_id = ?
        ORDER BY r.updated_at DESC, r.id DESC
        """,
        (int(user_id),),
    ).fetchall()
    return [dict(r) for r in rows]
