"""Licensary configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
    "bootstrap_admin_password": "admin",
}


class LicensarySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LICENSARY_")

    environment: str = "development"
    secret_key: str = "insecure-dev-key-change-me"

    # Bearer tokens
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/licensary.db"

    # API
    api_title: str = "Licensary"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 3001
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]
    log_level: str = "INFO"

    # Licensing defaults
    generated_license_days: int = 30
    upsert_license_days: int = 3650
    usage_history_limit: int = 20
    expiring_window_days: int = 30
    statistics_default_days: int = 30

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    # First-start admin account
    bootstrap_admin_username: str = "admin"
    bootstrap_admin_password: str = "admin"
    bootstrap_admin_email: str = "admin@example.com"

    # Spreadsheet mirror
    sheets_enabled: bool = False
    sheets_credentials_path: str = "credentials.json"
    sheets_spreadsheet_id: str = ""
    sheets_sheet_name: str = "Licenses"
    sheets_timeout: float = 10.0
    sheets_pull_interval: int = 600  # seconds
    sheets_push_queue_size: int = 256
    sheets_allow_empty_pull: bool = False

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"LICENSARY_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}."
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure defaults; set LICENSARY_SECRET_KEY and "
                "LICENSARY_BOOTSTRAP_ADMIN_PASSWORD for production",
                UserWarning,
                stacklevel=2,
            )

        if self.sheets_enabled and not self.sheets_spreadsheet_id:
            raise RuntimeError(
                "LICENSARY_SHEETS_SPREADSHEET_ID must be set when sheet sync is enabled"
            )


@lru_cache
def get_settings() -> LicensarySettings:
    settings = LicensarySettings()
    settings.validate_for_production()
    return settings
