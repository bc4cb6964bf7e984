"""Configuration management for the STEPhie MCP server."""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STEPHIE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Runtime environment (development, staging, production)",
    )
    server_name: str = Field(default="stephie", description="MCP server name")
    server_host: str = Field(default="localhost", description="Server bind host")
    server_port: int = Field(default=3335, description="Server bind port")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    admin_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token required by the manual resync endpoint in production",
    )
    cron_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token required by the scheduled resync endpoint",
    )

    # monday.com GraphQL API
    monday_api_key: SecretStr = Field(default=SecretStr(""), description="monday.com API token")
    monday_api_url: str = Field(
        default="https://api.monday.com/v2", description="monday.com GraphQL endpoint"
    )
    monday_api_version: str = Field(default="2024-10", description="monday.com API-Version header")
    http_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP request timeout")

    # Google Ad Manager service account
    google_service_account_email: str = Field(
        default="", description="Service account identity used to sign token requests"
    )
    google_private_key: SecretStr = Field(
        default=SecretStr(""), description="Service account PEM private key"
    )
    google_token_uri: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="OAuth token endpoint for the JWT-bearer exchange",
    )
    gam_scopes: list[str] = Field(
        default=[
            "https://www.googleapis.com/auth/dfp",
            "https://www.googleapis.com/auth/admanager",
        ],
        description="OAuth scopes requested for Ad Manager",
    )
    gam_api_url: str = Field(
        default="https://ads.google.com/apis/ads/publisher",
        description="Ad Manager SOAP API base URL",
    )
    gam_api_version: str = Field(default="v202411", description="Ad Manager API version")
    gam_network_code: str = Field(default="", description="Ad Manager network code")
    gam_application_name: str = Field(default="stephie", description="SOAP applicationName header")

    # Credential cache
    token_safety_margin_seconds: float = Field(
        default=300.0, ge=0, description="Treat tokens this close to expiry as expired"
    )
    token_cached_lifetime_seconds: float = Field(
        default=3300.0, gt=0, description="Lifetime recorded for a freshly fetched token"
    )
    token_provider_lifetime_seconds: float = Field(
        default=3600.0, gt=0, description="Lifetime the provider grants a token"
    )

    # Request queue
    queue_min_interval_ms: int = Field(
        default=500, ge=0, description="Minimum delay between queued dispatches"
    )
    queue_max_concurrency: int = Field(
        default=1, ge=1, le=16, description="Maximum queued operations running at once"
    )

    # Metadata cache
    metadata_ttl_seconds: float = Field(
        default=1800.0, gt=0, description="Staleness bound for cached board metadata"
    )
    metadata_source: Literal["schema", "registry"] = Field(
        default="registry",
        description="Read columns from board schemas or from the curated Columns board",
    )
    metadata_board_ids: list[str] = Field(
        default_factory=list,
        description="Boards always refreshed by a full sync (schema source)",
    )
    metadata_batch_size: int = Field(
        default=25, ge=1, le=100, description="Boards requested per GraphQL call during sync"
    )
    columns_board_id: str = Field(default="2135717897", description="Columns registry board")
    meta_board_id: str = Field(default="1698570295", description="Meta board listing boards")
    registry_board_id_column: str = Field(
        default="board_id_mkn3k16t", description="Meta board column holding the board id"
    )
    registry_column_id_column: str = Field(
        default="text_mkvjc46e", description="Columns board column holding the column id"
    )
    registry_relation_column: str = Field(
        default="board_relation_mkvjb1w9",
        description="Columns board relation linking a column to a Meta board item",
    )
    registry_page_limit: int = Field(default=500, ge=1, le=500)
    metadata_cache_dir: Path | None = Field(
        default=None,
        description="Directory for the on-disk metadata snapshot (disabled when unset)",
    )
    metadata_sync_interval_seconds: float = Field(
        default=1800.0,
        ge=0,
        description="Background full-sync interval (0 disables the refresher)",
    )
    metadata_sync_timeout_seconds: float = Field(
        default=55.0,
        gt=0,
        description="How long HTTP-triggered syncs wait before answering (the sync keeps running)",
    )

    @model_validator(mode="after")
    def validate_token_lifetimes(self) -> "Settings":
        """The cached lifetime must leave headroom below the provider's lifetime."""
        if self.token_cached_lifetime_seconds >= self.token_provider_lifetime_seconds:
            raise ValueError(
                "token_cached_lifetime_seconds must be shorter than "
                "token_provider_lifetime_seconds"
            )
        if self.token_safety_margin_seconds >= self.token_cached_lifetime_seconds:
            raise ValueError(
                "token_safety_margin_seconds must be shorter than token_cached_lifetime_seconds"
            )
        return self

    @model_validator(mode="after")
    def check_credential_fallbacks(self) -> "Settings":
        """Fall back to the unprefixed env vars of older deployments."""
        if not self.monday_api_key.get_secret_value():
            fallback = os.environ.get("MONDAY_API_KEY", "")
            if fallback:
                object.__setattr__(self, "monday_api_key", SecretStr(fallback))

        if not self.google_service_account_email:
            fallback = os.environ.get("GOOGLE_SERVICE_ACCOUNT_EMAIL", "")
            if fallback:
                object.__setattr__(self, "google_service_account_email", fallback)

        if not self.google_private_key.get_secret_value():
            fallback = os.environ.get("GOOGLE_PRIVATE_KEY", "")
            if fallback:
                object.__setattr__(self, "google_private_key", SecretStr(fallback))

        if not self.gam_network_code:
            fallback = os.environ.get("GAM_NETWORK_CODE", "")
            if fallback:
                object.__setattr__(self, "gam_network_code", fallback)

        if not self.admin_token.get_secret_value():
            fallback = os.environ.get("ADMIN_TOKEN", "")
            if fallback:
                object.__setattr__(self, "admin_token", SecretStr(fallback))

        if not self.cron_secret.get_secret_value():
            fallback = os.environ.get("CRON_SECRET", "")
            if fallback:
                object.__setattr__(self, "cron_secret", SecretStr(fallback))

        return self

    @property
    def queue_min_interval(self) -> float:
        """Minimum dispatch interval in seconds."""
        return self.queue_min_interval_ms / 1000.0

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Global settings instance
settings = Settings()
