"""Application configuration using pydantic-settings."""

import warnings

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "PromptVault"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"  # development, staging, production

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Supabase (URL and public anon key are safe to ship to browsers)
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"
    supabase_jwt_algorithm: str = "HS256"
    supabase_timeout: float = 30.0

    # Usage limits
    free_tier_prompt_limit: int = 50
    prompt_warning_threshold: int = 5

    # Frontend origin used for checkout / portal return URLs
    site_url: str = "http://localhost:5173"
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:8000",
    ]

    @model_validator(mode="after")
    def _ensure_site_in_cors(self) -> "Settings":
        """Ensure the configured site_url is always in cors_origins."""
        if self.site_url and self.site_url not in self.cors_origins:
            self.cors_origins.append(self.site_url)
        return self

    @model_validator(mode="after")
    def _validate_supabase(self) -> "Settings":
        """Reject a missing Supabase project in production and warn in development."""
        if not self.supabase_url or not self.supabase_anon_key:
            if self.environment == "production":
                raise ValueError(
                    "SUPABASE_URL and SUPABASE_ANON_KEY must be set in production."
                )
            warnings.warn(
                "Supabase URL or anon key is not configured. Remote calls will fail "
                "until SUPABASE_URL and SUPABASE_ANON_KEY are set in your .env file.",
                UserWarning,
                stacklevel=1,
            )
        return self

    @property
    def checkout_success_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/subscription/success"

    @property
    def subscription_page_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/subscription"

    @property
    def checkout_cancel_url(self) -> str:
        return self.subscription_page_url


settings = Settings()
