import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/adagent"

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_asyncpg(cls, values: dict) -> dict:
        """Hosted Postgres gives postgresql:// — we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            values["database_url"] = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return values

    secret_key: str = "change-me-in-production"
    encryption_key: str = ""
    cors_origins: str = "http://localhost:5173,http://localhost:3000,https://the-adagent.com"
    frontend_url: str = "http://localhost:5173"

    # Meta (Facebook Graph API) app
    meta_app_id: str = ""
    meta_app_secret: str = ""
    meta_redirect_uri: str = ""  # defaults to {frontend_url}/meta-callback
    meta_graph_version: str = "v19.0"
    meta_oauth_scopes: str = (
        "ads_management,ads_read,business_management,pages_read_engagement,"
        "pages_show_list,instagram_basic,catalog_management"
    )
    meta_exchange_long_lived_token: bool = True
    meta_http_timeout_seconds: float = 30.0

    # Resource discovery
    discovery_max_retries: int = 3
    discovery_retry_countdown_seconds: int = 5
    discovery_hard_timeout_seconds: float = 15.0

    # Automation webhook notified after a selection is saved (optional)
    selection_webhook_url: str = ""

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if self.secret_key == "change-me-in-production":
                raise ValueError(
                    "SECRET_KEY must be set to a secure value in production. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            if not self.encryption_key:
                raise ValueError(
                    "ENCRYPTION_KEY must be set in production. "
                    "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            if not self.meta_app_id or not self.meta_app_secret:
                raise ValueError("META_APP_ID and META_APP_SECRET must be set in production.")
            if not self.database_url or "localhost" in self.database_url:
                logger.warning("DATABASE_URL appears to point at localhost in production.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["http://localhost:5173", "http://localhost:3000"]

    @property
    def oauth_redirect_uri(self) -> str:
        return self.meta_redirect_uri or f"{self.frontend_url.rstrip('/')}/meta-callback"


@lru_cache
def get_settings() -> Settings:
    return Settings()
