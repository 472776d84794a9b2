from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints, model_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from store_ratings.api.middleware import RequestLoggingMiddleware
from store_ratings.auth.crud import (
    bootstrap_admin_if_needed,
    change_password,
    create_user,
    delete_user,
    get_user_by_id,
    list_users,
    public_user,
    update_user,
    verify_user_credentials,
)
from store_ratings.auth.deps import (
    RoleGuard,
    get_context,
    require_admin,
    require_store_owner,
    require_token,
    require_user,
)
from store_ratings.auth.security import TokenPayload, issue_token, password_problems
from store_ratings.catalog.ratings import list_all_ratings, list_user_ratings, submit_rating
from store_ratings.catalog.stats import admin_dashboard, owner_analytics
from store_ratings.catalog.stores import browse_stores, create_store, list_stores_admin, owner_stores
from store_ratings.config import Config, load_config
from store_ratings.context import AppContext
from store_ratings.db import init_db
from store_ratings.errors import DomainError
from store_ratings.seed import seed_demo_data


logger = logging.getLogger(__name__)

router = APIRouter()

# The admin ratings listing reports its own 401/403 wording.
require_admin_ratings = RoleGuard(
    "admin",
    missing_detail="Authorization header required",
    forbidden_detail="Unauthorized",
)
require_store_owner_analytics = RoleGuard(
    "store_owner",
    missing_detail="Authorization header required",
    forbidden_detail="Unauthorized",
)
require_password_change = RoleGuard(forbidden_detail="Invalid or expired token")


# -----------------------------
# Request bodies
# -----------------------------


def _valid_password(value: str) -> str:
    problems = password_problems(value)
    if problems:
        raise ValueError(problems[0])
    return value


# Length limits apply to the trimmed value.
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=60)]
Address = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=400)]
Password = Annotated[str, AfterValidator(_valid_password)]
Role = Literal["admin", "user", "store_owner"]


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(_Body):
    """Public self-serve registration. The role is always `user`."""

    name: Name
    email: EmailStr
    password: Password
    address: Address


class LoginRequest(_Body):
    email: EmailStr
    password: str = Field(min_length=1)


class PasswordUpdateRequest(_Body):
    current_password: str = Field(alias="currentPassword", min_length=1)
    new_password: Password = Field(alias="newPassword")


class AdminUserCreateRequest(_Body):
    name: Name
    email: EmailStr
    password: Password
    address: Address
    role: Role


class AdminUserUpdateRequest(_Body):
    name: Optional[Name] = None
    email: Optional[EmailStr] = None
    password: Optional[Password] = None
    address: Optional[Address] = None
    role: Optional[Role] = None

    @model_validator(mode="after")
    def _at_least_one(self) -> "AdminUserUpdateRequest":
        if all(getattr(self, f) is None for f in ("name", "email", "password", "address", "role")):
            raise ValueError("At least one field must be provided for update")
        return self


class StoreCreateRequest(_Body):
    name: Name
    email: EmailStr
    address: Address
    owner_email: Optional[EmailStr] = Field(default=None, alias="ownerEmail")


class RatingRequest(_Body):
    store_id: int = Field(alias="storeId", gt=0, strict=True)
    rating: int = Field(ge=1, le=5, strict=True)


# -----------------------------
# Helpers
# -----------------------------


def _token_for(ctx: AppContext, user: Any) -> str:
    return issue_token(
        TokenPayload(id=int(user["id"]), email=str(user["email"]), role=str(user["role"])),
        secret=ctx.jwt_secret,
        expires_minutes=int(ctx.cfg.JWT_EXPIRE_MINUTES),
    )


def _session_user(user: Any) -> Dict[str, Any]:
    return {k: user[k] for k in ("id", "name", "email", "address", "role")}


def _parse_user_id(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid user ID")


# -----------------------------
# Health / ops
# -----------------------------


@router.get("/health")
def health(ctx: AppContext = Depends(get_context)) -> Dict[str, Any]:
    return {"status": "ok", "database": ctx.db.check_connection()}


@router.post("/api/init-db")
def init_database(
    ctx: AppContext = Depends(get_context),
    _admin: TokenPayload = Depends(require_admin),
) -> Dict[str, Any]:
    """Create missing tables and seed the demo accounts/stores."""
    init_db(ctx.db)
    seeded = seed_demo_data(ctx.db)
    return {
        "message": "Database initialized successfully!",
        "defaultAccounts": seeded["accounts"],
    }


# -----------------------------
# Auth
# -----------------------------


@router.post("/api/auth/register", status_code=201)
def auth_register(payload: RegisterRequest, ctx: AppContext = Depends(get_context)) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        user = create_user(
            conn,
            name=payload.name,
            email=payload.email,
            password=payload.password,
            address=payload.address,
            role="user",
        )
    return {
        "message": "User registered successfully",
        "user": _session_user(user),
        "token": _token_for(ctx, user),
    }


@router.post("/api/auth/login")
def auth_login(payload: LoginRequest, ctx: AppContext = Depends(get_context)) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        user_row = verify_user_credentials(conn, payload.email, payload.password)
    if user_row is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return {
        "message": "Login successful",
        "user": _session_user(user_row),
        "token": _token_for(ctx, user_row),
    }


@router.put("/api/auth/password")
def auth_change_password(
    payload: PasswordUpdateRequest,
    ctx: AppContext = Depends(get_context),
    user: TokenPayload = Depends(require_password_change),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        change_password(
            conn,
            user.id,
            current_password=payload.current_password,
            new_password=payload.new_password,
        )
    return {"message": "Password updated successfully"}


@router.get("/api/auth/me")
def auth_me(
    ctx: AppContext = Depends(get_context),
    user: TokenPayload = Depends(require_token),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        row = get_user_by_id(conn, user.id)
    if row is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": public_user(row)}


# -----------------------------
# Admin
# -----------------------------


@router.get("/api/admin/ratings")
def admin_list_ratings(
    ctx: AppContext = Depends(get_context),
    _admin: TokenPayload = Depends(require_admin_ratings),
) -> Dict[str, Any]:
    try:
        ratings = list_all_ratings(ctx.db)
    except Exception:
        logger.exception("Error fetching ratings")
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"ratings": ratings}


@router.get("/api/admin/dashboard")
def admin_dashboard_stats(
    ctx: AppContext = Depends(get_context),
    _admin: TokenPayload = Depends(require_admin),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        return admin_dashboard(conn)


@router.get("/api/admin/users")
def admin_list_users(
    search: str = "",
    field: str = "name",
    role: str = "",
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    ctx: AppContext = Depends(get_context),
    _admin: TokenPayload = Depends(require_admin),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        users = list_users(
            conn,
            search=search,
            field=field,
            role=role,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    return {"users": users}


@router.post("/api/admin/users")
def admin_create_user(
    payload: AdminUserCreateRequest,
    ctx: AppContext = Depends(get_context),
    _admin: TokenPayload = Depends(require_admin),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        user = create_user(
            conn,
            name=payload.name,
            email=payload.email,
            password=payload.password,
            address=payload.address,
            role=payload.role,
        )
    return {"message": "User created successfully", "user": user}


@router.put("/api/admin/users/{user_id}")
def admin_update_user(
    user_id: str,
    payload: AdminUserUpdateRequest,
    ctx: AppContext = Depends(get_context),
    _admin: TokenPayload = Depends(require_admin),
) -> Dict[str, Any]:
    uid = _parse_user_id(user_id)
    with ctx.db.connection() as conn:
        user = update_user(
            conn,
            uid,
            name=payload.name,
            email=payload.email,
            address=payload.address,
            role=payload.role,
            password=payload.password,
        )
    return {"message": "User updated successfully", "user": user}


@router.delete("/api/admin/users/{user_id}")
def admin_delete_user(
    user_id: str,
    ctx: AppContext = Depends(get_context),
    admin: TokenPayload = Depends(require_admin),
) -> Dict[str, Any]:
    uid = _parse_user_id(user_id)
    with ctx.db.connection() as conn:
        delete_user(conn, uid, acting_user_id=admin.id)
    return {"message": "User deleted successfully"}


@router.get("/api/admin/stores")
def admin_list_stores(
    search: str = "",
    field: str = "name",
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    ctx: AppContext = Depends(get_context),
    _admin: TokenPayload = Depends(require_admin),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        stores = list_stores_admin(conn, search=search, field=field, sort_by=sort_by, sort_order=sort_order)
    return {"stores": stores}


@router.post("/api/admin/stores")
def admin_create_store(
    payload: StoreCreateRequest,
    ctx: AppContext = Depends(get_context),
    _admin: TokenPayload = Depends(require_admin),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        store = create_store(
            conn,
            name=payload.name,
            email=payload.email,
            address=payload.address,
            owner_email=payload.owner_email,
        )
    return {"message": "Store created successfully", "store": store}


# -----------------------------
# Users: browsing and rating
# -----------------------------


@router.get("/api/stores")
def user_browse_stores(
    query: str = "",
    field: str = "name",
    ctx: AppContext = Depends(get_context),
    user: TokenPayload = Depends(require_token),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        stores = browse_stores(conn, user_id=user.id, query=query, field=field)
    return {"stores": stores}


@router.post("/api/ratings")
def user_submit_rating(
    payload: RatingRequest,
    ctx: AppContext = Depends(get_context),
    user: TokenPayload = Depends(require_user),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        rating, updated = submit_rating(conn, user_id=user.id, store_id=payload.store_id, rating=payload.rating)
    return {
        "message": "Rating updated successfully" if updated else "Rating submitted successfully",
        "rating": rating,
    }


@router.get("/api/ratings")
def user_list_ratings(
    ctx: AppContext = Depends(get_context),
    user: TokenPayload = Depends(require_token),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        ratings = list_user_ratings(conn, user_id=user.id)
    return {"ratings": ratings}


# -----------------------------
# Store owners
# -----------------------------


@router.get("/api/store-owner/stores")
def store_owner_stores(
    ctx: AppContext = Depends(get_context),
    owner: TokenPayload = Depends(require_store_owner),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        return owner_stores(conn, owner_id=owner.id)


@router.get("/api/store-owner/analytics")
def store_owner_analytics(
    ctx: AppContext = Depends(get_context),
    owner: TokenPayload = Depends(require_store_owner_analytics),
) -> Dict[str, Any]:
    with ctx.db.connection() as conn:
        return owner_analytics(conn, owner_id=owner.id)


# -----------------------------
# Error rendering
# -----------------------------


def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=exc.headers)


def _domain_error(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse({"message": str(exc)}, status_code=exc.status_code)


def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: List[Dict[str, Any]] = []
    for err in exc.errors():
        loc = list(err.get("loc") or ())
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        msg = str(err.get("msg", ""))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]
        errors.append({"message": msg, "path": loc, "code": err.get("type")})
    return JSONResponse({"message": "Validation error", "errors": errors}, status_code=400)


# -----------------------------
# App factory
# -----------------------------


def create_app(cfg: Optional[Config] = None) -> FastAPI:
    cfg = cfg or load_config()
    app = FastAPI(title="Store Ratings Platform", version="0.1.0")

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(DomainError, _domain_error)
    app.add_exception_handler(RequestValidationError, _validation_error)

    app.add_middleware(RequestLoggingMiddleware)

    # CORS stays outermost so 500s from the logging middleware carry its headers.
    _cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if _cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(router)

    @app.on_event("startup")
    def _on_startup() -> None:
        ctx = AppContext.create(cfg)
        app.state.ctx = ctx

        # Ensure schema exists.
        init_db(ctx.db)

        # Bootstrap first admin if needed (only when users table is empty)
        boot = bootstrap_admin_if_needed(ctx.db, cfg)
        if boot:
            logger.info("Bootstrapped initial admin user", extra={"email": boot.get("email")})

        if cfg.SEED_DEMO_DATA:
            seed_demo_data(ctx.db)

    @app.on_event("shutdown")
    def _on_shutdown() -> None:
        ctx = getattr(app.state, "ctx", None)
        if ctx is not None:
            ctx.close()

    return app
