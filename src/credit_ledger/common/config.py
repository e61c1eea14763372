"""Credit-Ledger configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
    "api_key": "insecure-admin-key-change-me",
}


class LedgerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEDGER_")

    environment: str = "development"

    # JWT signing for user bearer tokens
    secret_key: str = "insecure-dev-key-change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/ledger.db"
    storage_max_retries: int = 3
    storage_retry_backoff: float = 0.1  # seconds, doubled per attempt

    # API
    api_title: str = "Credit-Ledger"
    api_version: str = "0.1.0"
    api_key: str = "insecure-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging / messages
    log_level: str = "INFO"
    locale: str = "en"

    # License codes
    default_code_prefix: str = "GIFT"
    code_suffix_length: int = 8
    code_collision_retries: int = 5
    max_codes_per_batch: int = 100

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"LEDGER_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default keys, set LEDGER_SECRET_KEY and "
                "LEDGER_API_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> LedgerSettings:
    settings = LedgerSettings()
    settings.validate_for_production()
    return settings
