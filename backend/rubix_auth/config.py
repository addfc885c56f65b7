import os
import threading
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()

ALLOWED_DATABASE_SCHEMES = {"postgresql+asyncpg", "sqlite+aiosqlite"}


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value <= 0:
        raise ValueError(f"{name} must be greater than 0")
    return value


class Settings(BaseModel):
    app_name: str = Field(default="Rubix Auth Core")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    database_url: str = Field(default="sqlite+aiosqlite:///./rubix_auth.db")
    redis_url: str = Field(default="redis://localhost:6379/0")
    session_cache_secret: str = Field(default="")
    session_cache_key: str = Field(default="rubix_auth:session")
    revalidation_interval_seconds: float = Field(default=300.0)
    identity_api_key: str = Field(default="")
    identity_base_url: str = Field(default="https://identitytoolkit.googleapis.com/v1")
    identity_token_url: str = Field(default="https://securetoken.googleapis.com/v1/token")
    identity_timeout_seconds: float = Field(default=10.0)
    elevated_bootstrap_email: str | None = Field(default=None)
    elevated_bootstrap_password: str | None = Field(default=None)

    @classmethod
    def from_env(cls) -> "Settings":
        session_cache_secret = os.getenv("SESSION_CACHE_SECRET", "").strip()
        if not session_cache_secret:
            raise ValueError("SESSION_CACHE_SECRET environment variable must be set")

        identity_api_key = os.getenv("IDENTITY_API_KEY", "").strip()
        if not identity_api_key:
            raise ValueError("IDENTITY_API_KEY environment variable must be set")

        database_url = os.getenv(
            "DATABASE_URL", cls.model_fields["database_url"].default
        ).strip()
        parsed_db = urlparse(database_url)
        if parsed_db.scheme not in ALLOWED_DATABASE_SCHEMES:
            raise ValueError(
                "DATABASE_URL must start with 'postgresql+asyncpg://' or 'sqlite+aiosqlite://'"
            )
        if parsed_db.scheme == "postgresql+asyncpg" and not parsed_db.hostname:
            raise ValueError("DATABASE_URL must include hostname")

        for name in ("IDENTITY_BASE_URL", "IDENTITY_TOKEN_URL"):
            raw_url = os.getenv(name, "").strip()
            if raw_url:
                parsed = urlparse(raw_url)
                if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                    raise ValueError(f"{name} must be a valid http/https URL")

        raw_debug = os.getenv("DEBUG", "false").strip().lower()
        if raw_debug in {"1", "true", "yes", "on"}:
            debug = True
        elif raw_debug in {"0", "false", "no", "off"}:
            debug = False
        else:
            raise ValueError("DEBUG must be a boolean value")

        return cls(
            debug=debug,
            log_level=os.getenv("LOG_LEVEL", cls.model_fields["log_level"].default)
            .strip()
            .upper(),
            database_url=database_url,
            redis_url=os.getenv("REDIS_URL", cls.model_fields["redis_url"].default).strip(),
            session_cache_secret=session_cache_secret,
            session_cache_key=os.getenv(
                "SESSION_CACHE_KEY", cls.model_fields["session_cache_key"].default
            ).strip(),
            revalidation_interval_seconds=_positive_float(
                "REVALIDATION_INTERVAL_SECONDS",
                cls.model_fields["revalidation_interval_seconds"].default,
            ),
            identity_api_key=identity_api_key,
            identity_base_url=os.getenv(
                "IDENTITY_BASE_URL", cls.model_fields["identity_base_url"].default
            ).strip(),
            identity_token_url=os.getenv(
                "IDENTITY_TOKEN_URL", cls.model_fields["identity_token_url"].default
            ).strip(),
            identity_timeout_seconds=_positive_float(
                "IDENTITY_TIMEOUT_SECONDS",
                cls.model_fields["identity_timeout_seconds"].default,
            ),
            elevated_bootstrap_email=os.getenv("ELEVATED_BOOTSTRAP_EMAIL") or None,
            elevated_bootstrap_password=os.getenv("ELEVATED_BOOTSTRAP_PASSWORD") or None,
        )


# Settings are validated on first access, not at import
_settings_instance: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get settings instance, creating it on first access.

    Uses double-checked locking so concurrent first access builds a single
    instance.

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


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings_instance
    with _settings_lock:
        _settings_instance = None


class _SettingsProxy:
    """Proxy to defer settings creation until first attribute access."""

    def __getattr__(self, name: str):
        return getattr(get_settings(), name)


settings = _SettingsProxy()  # type: ignore[assignment]
