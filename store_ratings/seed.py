"""Demo accounts and stores for local development.

Idempotent: rows are matched by email and never overwritten.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from store_ratings.auth.crud import create_user, get_user_by_email
from store_ratings.catalog.stores import create_store
from store_ratings.db import Database


logger = logging.getLogger(__name__)

DEMO_USERS: List[Dict[str, str]] = [
    {
        "name": "Store Owner Demo User Account",
        "email": "storeowner@demo.com",
        "password": "StoreOwner123!",
        "address": "456 Store Owner Street, Business District, BD 67890",
        "role": "store_owner",
    },
    {
        "name": "Demo Normal User Account For Testing",
        "email": "user@demo.com",
        "password": "NormalUser123!",
        "address": "789 Normal User Street, Residential Area, RA 13579",
        "role": "user",
    },
]

DEMO_STORES: List[Dict[str, Any]] = [
    {
        "name": "Demo Coffee Shop and Bakery Store",
        "email": "coffee@demo.com",
        "address": "123 Coffee Street, Downtown Area, DA 12345",
        "owner_email": "storeowner@demo.com",
    },
    {
        "name": "Demo Electronics and Gadgets Store",
        "email": "electronics@demo.com",
        "address": "456 Tech Avenue, Innovation District, ID 67890",
        "owner_email": "storeowner@demo.com",
    },
    {
        "name": "Demo Fashion and Clothing Boutique",
        "email": "fashion@demo.com",
        "address": "789 Fashion Boulevard, Style District, SD 24680",
        "owner_email": "storeowner@demo.com",
    },
    {
        "name": "Independent Grocery Store Chain",
        "email": "grocery@independent.com",
        "address": "321 Grocery Lane, Shopping Center, SC 97531",
        "owner_email": None,
    },
    {
        "name": "Local Hardware and Tools Store",
        "email": "hardware@local.com",
        "address": "654 Tools Street, Industrial Area, IA 86420",
        "owner_email": None,
    },
]


def seed_demo_data(db: Database) -> Dict[str, Any]:
    """Create the demo owner, user and stores that don't exist yet."""
    created_users = 0
    created_stores = 0
    with db.connection() as conn:
        for u in DEMO_USERS:
            if get_user_by_email(conn, u["email"]) is None:
                create_user(conn, **u)
                created_users += 1

        for s in DEMO_STORES:
            if conn.execute("SELECT 1 FROM stores WHERE email=?", (s["email"],)).fetchone() is None:
                create_store(conn, **s)
                created_stores += 1

    logger.info("Seeded demo data", extra={"users": created_users, "stores": created_stores})
    return {
        "accounts": {u["role"]: u["email"] for u in DEMO_USERS},
        "created_users": created_users,
        "created_stores": created_stores,
    }
