"""Store Ratings Platform - Backend.

Users rate stores (1-5), store owners see how their stores are rated, and
admins manage users, stores and the full ratings feed.

Core concepts:
- Roles: admin, user, store_owner. A bearer token asserts id, email and role.
- One rating per (user, store); rating again updates it.

See README for setup and usage.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
