"""
Tests for application configuration and settings validation.
"""

import os
import pytest
from unittest.mock import patch


def test_settings_loads_defaults():
    """Settings should load with sensible defaults in development."""
    from adagent.config import get_settings
    get_settings.cache_clear()

    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "DATABASE_URL": "postgresql+asyncpg://localhost/test",
        "SECRET_KEY": "change-me-in-production",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.environment == "development"
        assert settings.is_production is False
        assert settings.meta_graph_version == "v19.0"
        assert settings.discovery_max_retries == 3
        assert settings.discovery_retry_countdown_seconds == 5
        assert settings.discovery_hard_timeout_seconds == 15.0
        get_settings.cache_clear()


def test_database_url_rewritten_for_asyncpg():
    from adagent.config import Settings
    settings = Settings(database_url="postgresql://user:pw@db-host/adagent")
    assert settings.database_url == "postgresql+asyncpg://user:pw@db-host/adagent"


def test_settings_cors_origin_list():
    """CORS origins string should be split into a list."""
    from adagent.config import get_settings
    get_settings.cache_clear()

    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "DATABASE_URL": "postgresql+asyncpg://localhost/test",
        "CORS_ORIGINS": "http://localhost:3000, http://example.com",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        origins = settings.cors_origin_list
        assert len(origins) == 2
        assert "http://localhost:3000" in origins
        assert "http://example.com" in origins
        get_settings.cache_clear()


def test_production_rejects_default_secret():
    """Production mode should reject the default secret key."""
    from adagent.config import Settings

    with pytest.raises(ValueError, match="SECRET_KEY must be set"):
        Settings(
            environment="production",
            secret_key="change-me-in-production",
            database_url="postgresql+asyncpg://prod-host/db",
        )


def test_production_requires_meta_app_credentials():
    from adagent.config import Settings

    with pytest.raises(ValueError, match="META_APP_ID and META_APP_SECRET"):
        Settings(
            environment="production",
            secret_key="a-real-secret-key-that-is-not-the-default",
            encryption_key="k" * 44,
            database_url="postgresql+asyncpg://prod-host/db",
            meta_app_id="",
            meta_app_secret="",
        )


def test_production_accepts_complete_settings():
    """Production mode should accept real secrets."""
    from adagent.config import Settings
    settings = Settings(
        environment="production",
        secret_key="a-real-secret-key-that-is-not-the-default",
        encryption_key="k" * 44,
        database_url="postgresql+asyncpg://prod-host/db",
        meta_app_id="123",
        meta_app_secret="shh",
    )
    assert settings.is_production is True
    assert settings.oauth_redirect_uri == "http://localhost:5173/meta-callback"
