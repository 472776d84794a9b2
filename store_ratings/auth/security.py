from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
from passlib.context import CryptContext

from store_ratings.schema import ROLES


logger = logging.getLogger(__name__)

_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"

TOKEN_EXPIRE_MINUTES = 7 * 24 * 60

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 16
_PASSWORD_SPECIALS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


@dataclass(frozen=True)
class TokenPayload:
    """Identity asserted by a bearer token."""

    id: int
    email: str
    role: str


# -----------------
# Passwords
# -----------------


def password_problems(password: str) -> List[str]:
    """Return the password policy violations (empty list when acceptable)."""
    problems: List[str] = []
    pw = password or ""
    if len(pw) < PASSWORD_MIN_LENGTH:
        problems.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(pw) > PASSWORD_MAX_LENGTH:
        problems.append(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", pw):
        problems.append("Password must contain at least one uppercase letter")
    if not _PASSWORD_SPECIALS.search(pw):
        problems.append("Password must contain at least one special character")
    return problems


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except ValueError:
        # Unrecognized or malformed hash
        return False


# -----------------
# Tokens
# -----------------


def issue_token(
    payload: TokenPayload,
    *,
    secret: str,
    expires_minutes: int = TOKEN_EXPIRE_MINUTES,
    now: Optional[datetime] = None,
) -> str:
    if not secret:
        raise ValueError("jwt_secret_blank")

    issued = now or datetime.now(timezone.utc)
    exp = issued + timedelta(minutes=max(1, int(expires_minutes)))

    claims: Dict[str, Any] = {
        "id": int(payload.id),
        "email": payload.email,
        "role": payload.role,
        "iat": int(issued.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=_JWT_ALG)


def verify_token(token: str, *, secret: str) -> Optional[TokenPayload]:
    """Decode a bearer token.

    Returns None for blank, malformed, tampered, expired or wrong-key tokens, and
    for tokens whose claims don't describe a user. Never raises for bad input.
    """
    if not token or not secret:
        return None
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug("Token rejected: %s", type(e).__name__)
        return None

    user_id = claims.get("id")
    email = claims.get("email")
    role = claims.get("role")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        return None
    if not isinstance(email, str) or role not in ROLES:
        return None
    return TokenPayload(id=user_id, email=email, role=role)
