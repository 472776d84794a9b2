import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    # python-dotenv is a convenience for local development only.
    pass


DEV_JWT_SECRET = "dev-only-insecure-jwt-secret-change-me"


class ConfigError(RuntimeError):
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _env_str(name: str) -> Optional[str]:
    return (os.environ.get(name) or "").strip() or None


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # "development" or "production". Production refuses insecure fallbacks.
    APP_ENV: str = os.environ.get("APP_ENV", "development").strip().lower()

    # -----------------
    # Database
    # -----------------
    # Postgres URL (postgres://...) or a SQLite path / sqlite:///path.
    DB_DSN: str = os.environ.get("DATABASE_URL", "./store_ratings.sqlite")

    # Passed to libpq only when set (disable|allow|prefer|require|verify-ca|verify-full).
    DB_SSLMODE: Optional[str] = _env_str("DATABASE_SSLMODE")

    DB_POOL_MIN: int = int(os.environ.get("DATABASE_POOL_MIN", "1"))
    DB_POOL_MAX: int = int(os.environ.get("DATABASE_POOL_MAX", "10"))

    # How long shutdown waits for in-flight queries before closing the pool.
    DB_SHUTDOWN_TIMEOUT_SECONDS: float = float(os.environ.get("DATABASE_SHUTDOWN_TIMEOUT_SECONDS", "10"))

    # -----------------
    # Auth (JWT)
    # -----------------
    # None means "not configured"; see resolved_jwt_secret().
    JWT_SECRET: Optional[str] = _env_str("JWT_SECRET")
    JWT_EXPIRE_MINUTES: int = int(os.environ.get("JWT_EXPIRE_MINUTES", "10080"))  # 7 days

    # Bootstrap first admin user if users table is empty
    BOOTSTRAP_ADMIN_NAME: str = os.environ.get("BOOTSTRAP_ADMIN_NAME", "System Administrator User")
    BOOTSTRAP_ADMIN_EMAIL: str = os.environ.get("BOOTSTRAP_ADMIN_EMAIL", "admin@storerating.com")
    BOOTSTRAP_ADMIN_PASSWORD: Optional[str] = _env_str("BOOTSTRAP_ADMIN_PASSWORD")
    BOOTSTRAP_ADMIN_ADDRESS: str = os.environ.get(
        "BOOTSTRAP_ADMIN_ADDRESS", "123 Admin Street, Admin City, AC 12345"
    )

    # Seed demo owner/user/stores at startup (local development).
    SEED_DEMO_DATA: bool = _env_bool("SEED_DEMO_DATA", False) is True

    # -----------------
    # Logging
    # -----------------
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON: bool = _env_bool("LOG_JSON", True) is True

    # -----------------
    # CORS (development)
    # -----------------
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV in ("prod", "production")

    def resolved_jwt_secret(self) -> str:
        """Signing key for tokens.

        Development falls back to a fixed string so a fresh clone can log in.
        Production must set JWT_SECRET.
        """
        if self.JWT_SECRET:
            return self.JWT_SECRET
        if self.is_production:
            raise ConfigError("JWT_SECRET must be set when APP_ENV=production")
        return DEV_JWT_SECRET


def load_config(**overrides) -> Config:
    """Build a Config from the environment, with explicit overrides (tests, scripts)."""
    return Config(**overrides)
