from __future__ import annotations

from typing import Optional, Tuple

from fastapi import Header, HTTPException, Request

from store_ratings.context import AppContext

from .security import TokenPayload, verify_token


def get_context(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise RuntimeError("application context not initialized")
    return ctx


def bearer_token(authorization: str) -> str:
    """Strip an optional `Bearer ` scheme; anything else is taken as the raw token."""
    value = authorization.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == "bearer":
        return rest.strip()
    return value


class RoleGuard:
    """Dependency that authorizes a request by bearer token and role.

    - No (or blank) Authorization header -> 401 `missing_detail`
    - Token fails verification, or role not allowed -> 403 `forbidden_detail`

    Invalid tokens and wrong roles are reported identically.
    An empty `roles` tuple accepts any valid token.
    """

    def __init__(
        self,
        *roles: str,
        missing_detail: str = "Access token required",
        forbidden_detail: str = "Unauthorized",
    ):
        self.roles: Tuple[str, ...] = roles
        self.missing_detail = missing_detail
        self.forbidden_detail = forbidden_detail

    def __call__(
        self,
        request: Request,
        authorization: Optional[str] = Header(default=None),
    ) -> TokenPayload:
        if not authorization or not authorization.strip():
            raise HTTPException(
                status_code=401,
                detail=self.missing_detail,
                headers={"WWW-Authenticate": "Bearer"},
            )

        ctx = get_context(request)
        payload = verify_token(bearer_token(authorization), secret=ctx.jwt_secret)
        if payload is None or (self.roles and payload.role not in self.roles):
            raise HTTPException(status_code=403, detail=self.forbidden_detail)

        # Exposed to the request logging middleware.
        request.state.user_sub = str(payload.id)
        return payload


require_admin = RoleGuard("admin", forbidden_detail="Admin access required")
require_user = RoleGuard("user", forbidden_detail="Only users can submit ratings")
require_store_owner = RoleGuard("store_owner", forbidden_detail="Store owner access required")
require_token = RoleGuard(forbidden_detail="Invalid token")
