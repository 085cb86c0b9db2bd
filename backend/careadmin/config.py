import os
import threading
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean value")


class Settings(BaseModel):
    app_name: str = Field(default="CareAdmin")
    debug: bool = Field(default=False)
    database_url: str = Field(default="")
    redis_url: str = Field(default="redis://localhost:6379/0")
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_pre_ping: bool = Field(default=True)
    impersonation_ttl_seconds: int = Field(default=3600)
    invitation_ttl_days: int = Field(default=7)
    scope_lookup_max_attempts: int = Field(default=3)
    scope_lookup_backoff_seconds: float = Field(default=0.2)
    audit_retention_days: int = Field(default=365)
    audit_retention_interval_seconds: int = Field(default=86400)
    invitation_expiry_interval_seconds: int = Field(default=3600)

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL environment variable must be set")

        parsed_db = urlparse(database_url)
        if parsed_db.scheme != "postgresql+asyncpg":
            raise ValueError("DATABASE_URL must start with 'postgresql+asyncpg://'")
        if not parsed_db.hostname:
            raise ValueError("DATABASE_URL must include hostname")

        db_pool_size = int(os.getenv("DB_POOL_SIZE", cls.model_fields["db_pool_size"].default))
        if db_pool_size <= 0:
            raise ValueError("DB_POOL_SIZE must be greater than 0")

        db_max_overflow = int(
            os.getenv("DB_MAX_OVERFLOW", cls.model_fields["db_max_overflow"].default)
        )
        if db_max_overflow < 0:
            raise ValueError("DB_MAX_OVERFLOW must be greater than or equal to 0")

        db_pool_pre_ping = _parse_bool(
            "DB_POOL_PRE_PING",
            os.getenv("DB_POOL_PRE_PING", str(cls.model_fields["db_pool_pre_ping"].default)),
        )

        impersonation_ttl_seconds = int(
            os.getenv(
                "IMPERSONATION_TTL_SECONDS",
                cls.model_fields["impersonation_ttl_seconds"].default,
            )
        )
        if impersonation_ttl_seconds <= 0:
            raise ValueError("IMPERSONATION_TTL_SECONDS must be greater than 0")

        invitation_ttl_days = int(
            os.getenv("INVITATION_TTL_DAYS", cls.model_fields["invitation_ttl_days"].default)
        )
        if invitation_ttl_days <= 0:
            raise ValueError("INVITATION_TTL_DAYS must be greater than 0")

        scope_lookup_max_attempts = int(
            os.getenv(
                "SCOPE_LOOKUP_MAX_ATTEMPTS",
                cls.model_fields["scope_lookup_max_attempts"].default,
            )
        )
        if scope_lookup_max_attempts <= 0:
            raise ValueError("SCOPE_LOOKUP_MAX_ATTEMPTS must be greater than 0")

        scope_lookup_backoff_seconds = float(
            os.getenv(
                "SCOPE_LOOKUP_BACKOFF_SECONDS",
                cls.model_fields["scope_lookup_backoff_seconds"].default,
            )
        )
        if scope_lookup_backoff_seconds < 0:
            raise ValueError("SCOPE_LOOKUP_BACKOFF_SECONDS must be greater than or equal to 0")

        audit_retention_days = int(
            os.getenv("AUDIT_RETENTION_DAYS", cls.model_fields["audit_retention_days"].default)
        )
        if audit_retention_days <= 0:
            raise ValueError("AUDIT_RETENTION_DAYS must be greater than 0")

        audit_retention_interval_seconds = int(
            os.getenv(
                "AUDIT_RETENTION_INTERVAL_SECONDS",
                cls.model_fields["audit_retention_interval_seconds"].default,
            )
        )
        if audit_retention_interval_seconds <= 0:
            raise ValueError("AUDIT_RETENTION_INTERVAL_SECONDS must be greater than 0")

        invitation_expiry_interval_seconds = int(
            os.getenv(
                "INVITATION_EXPIRY_INTERVAL_SECONDS",
                cls.model_fields["invitation_expiry_interval_seconds"].default,
            )
        )
        if invitation_expiry_interval_seconds <= 0:
            raise ValueError("INVITATION_EXPIRY_INTERVAL_SECONDS must be greater than 0")

        redis_url = os.getenv("REDIS_URL", cls.model_fields["redis_url"].default).strip()
        parsed_redis = urlparse(redis_url)
        if parsed_redis.scheme not in {"redis", "rediss"}:
            raise ValueError("REDIS_URL must start with 'redis://' or 'rediss://'")

        return cls(
            app_name=os.getenv("APP_NAME", cls.model_fields["app_name"].default),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            database_url=database_url,
            redis_url=redis_url,
            db_pool_size=db_pool_size,
            db_max_overflow=db_max_overflow,
            db_pool_pre_ping=db_pool_pre_ping,
            impersonation_ttl_seconds=impersonation_ttl_seconds,
            invitation_ttl_days=invitation_ttl_days,
            scope_lookup_max_attempts=scope_lookup_max_attempts,
            scope_lookup_backoff_seconds=scope_lookup_backoff_seconds,
            audit_retention_days=audit_retention_days,
            audit_retention_interval_seconds=audit_retention_interval_seconds,
            invitation_expiry_interval_seconds=invitation_expiry_interval_seconds,
        )


# Built on first access, not at import.
_settings_instance: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get settings instance, creating it on first access.

    Uses double-checked locking so concurrent first callers build the
    instance exactly once.

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    global _settings_instance

    if _settings_instance is not None:
        return _settings_instance

    with _settings_lock:
        if _settings_instance is None:
            _settings_instance = Settings.from_env()

    return _settings_instance


class _SettingsProxy:
    """Proxy to defer settings creation until first attribute access."""

    def __getattr__(self, name: str):
        return getattr(get_settings(), name)


settings = _SettingsProxy()  # type: ignore[assignment]
