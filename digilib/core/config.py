"""
Configuration helpers for the digital library backend.

Routers and services read a typed Settings object instead of fetching
os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    public_base_url: str
    cors_origins: tuple[str, ...]
    log_level: str
    database_url: str
    database_pool_size: int
    database_timeout_seconds: int
    jwt_secret: str
    jwt_algorithm: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    cookie_domain: str
    storage_endpoint: str
    storage_access_key: str
    storage_secret_key: str
    storage_bucket: str
    storage_region: str
    storage_secure: bool
    download_url_ttl_seconds: int
    upload_max_bytes: int
    upload_allowed_formats: tuple[str, ...]

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def _split(value: str | None) -> tuple[str, ...]:
    return tuple(item.strip() for item in (value or "").split(",") if item.strip())


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _bool(value: str | None, default: bool = False) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    formats = _split(os.getenv("UPLOAD_ALLOWED_FORMATS", "pdf,doc,docx,epub"))
    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
        cors_origins=_split(os.getenv("CORS_ORIGINS")),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./digilib.db"),
        database_pool_size=_int(os.getenv("DATABASE_POOL_SIZE", "10"), 10),
        database_timeout_seconds=_int(os.getenv("DATABASE_TIMEOUT_SECONDS", "10"), 10),
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret-change-me"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        access_token_ttl_seconds=_int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", "900"), 900),
        refresh_token_ttl_seconds=_int(os.getenv("REFRESH_TOKEN_TTL_SECONDS", "604800"), 604800),
        cookie_domain=os.getenv("COOKIE_DOMAIN", ""),
        storage_endpoint=os.getenv("STORAGE_ENDPOINT", "localhost:9000"),
        storage_access_key=os.getenv("STORAGE_ACCESS_KEY", ""),
        storage_secret_key=os.getenv("STORAGE_SECRET_KEY", ""),
        storage_bucket=os.getenv("STORAGE_BUCKET", "library"),
        storage_region=os.getenv("STORAGE_REGION", "us-east-1"),
        storage_secure=_bool(os.getenv("STORAGE_SECURE"), True),
        download_url_ttl_seconds=_int(os.getenv("DOWNLOAD_URL_TTL_SECONDS", "3600"), 3600),
        upload_max_bytes=_int(os.getenv("UPLOAD_MAX_BYTES", "52428800"), 52428800),
        upload_allowed_formats=tuple(f.lower().lstrip(".") for f in formats),
    )
