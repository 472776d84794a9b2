"""Dashboard aggregates for admins and store owners."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from store_ratings.util.time import days_ago_iso, month_start_iso

from .stores import format_average

RECENT_DAYS = 30
RECENT_RATINGS_LIMIT = 10


def _count(conn: Any, sql: str, params: tuple = ()) -> int:
    row = conn.execute(sql, params).fetchone()
    return int(row["n"] or 0)


def admin_dashboard(conn: Any, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    cutoff = days_ago_iso(RECENT_DAYS, now=now)

    role_rows = conn.execute(
        "SELECT role, COUNT(*) AS n FROM users GROUP BY role ORDER BY role"
    ).fetchall()
    avg = conn.execute("SELECT COALESCE(AVG(rating), 0) AS average_rating FROM ratings").fetchone()

    return {
        "totalUsers": _count(conn, "SELECT COUNT(*) AS n FROM users"),
        "totalStores": _count(conn, "SELECT COUNT(*) AS n FROM stores"),
        "totalRatings": _count(conn, "SELECT COUNT(*) AS n FROM ratings"),
        "averageRating": format_average(avg["average_rating"]),
        "recentUsers": _count(conn, "SELECT COUNT(*) AS n FROM users WHERE created_at >= ?", (cutoff,)),
        "recentRatings": _count(conn, "SELECT COUNT(*) AS n FROM ratings WHERE created_at >= ?", (cutoff,)),
        "usersByRole": {str(r["role"]): int(r["n"]) for r in role_rows},
    }


def owner_analytics(conn: Any, *, owner_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    oid = int(owner_id)

    totals = conn.execute(
        """
        SELECT COUNT(*) AS n, AVG(r.rating) AS average_rating
        FROM ratings r
        JOIN stores s ON r.store_id = s.id
        WHERE s.owner_id = ?
        """,
        (oid,),
    ).fetchone()

    this_month = _count(
        conn,
        """
        SELECT COUNT(*) AS n
        FROM ratings r
        JOIN stores s ON r.store_id = s.id
        WHERE s.owner_id = ? AND r.created_at >= ?
        """,
        (oid, month_start_iso(now=now)),
    )

    recent = conn.execute(
        """
        SELECT
            r.id, r.rating, r.created_at,
            u.name AS user_name,
            s.name AS store_name
        FROM ratings r
        JOIN users u ON r.user_id = u.id
        JOIN stores s ON r.store_id = s.id
        WHERE s.owner_id = ?
        ORDER BY r.created_at DESC, r.id DESC
        LIMIT ?
        """,
        (oid, RECENT_RATINGS_LIMIT),
    ).fetchall()

    return {
        "total_stores": _count(conn, "SELECT COUNT(*) AS n FROM stores WHERE owner_id = ?", (oid,)),
        "total_ratings": int(totals["n"] or 0),
        "average_rating": round(float(totals["average_rating"] or 0), 2),
        "ratings_this_month": this_month,
        "recent_ratings": [dict(r) for r in recent],
    }
