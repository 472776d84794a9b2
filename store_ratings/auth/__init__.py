"""Authentication / authorization helpers.

Auth is intentionally lightweight:

- Users table (email/password hash + role)
- Stateless JWT bearer tokens carrying id, email and role, valid for 7 days

Endpoints declare the roles they accept with a `RoleGuard` dependency. A
missing `Authorization` header is a 401; a bad token or a role outside the
allowed set is a 403.
"""

from .deps import RoleGuard, require_admin, require_store_owner, require_token, require_user
from .security import TokenPayload, issue_token, verify_token

__all__ = [
    "RoleGuard",
    "TokenPayload",
    "issue_token",
    "require_admin",
    "require_store_owner",
    "require_token",
    "require_user",
    "verify_token",
]
