"""Unit tests for process settings."""

from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from cryptowire.config import Settings, resolve_database_url


class TestSettings:
    """Tests for Settings validation."""

    def test_log_level_normalized(self) -> None:
        """Should upper-case the log level."""
        assert Settings(log_level="debug", _env_file=None).log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        """Should reject unknown log levels."""
        with pytest.raises(ValidationError):
            Settings(log_level="loud", _env_file=None)

    def test_invalid_timezone(self) -> None:
        """Should reject unknown timezones."""
        with pytest.raises(ValidationError):
            Settings(timezone="Mars/Olympus", _env_file=None)

    def test_blank_bucket_is_none(self) -> None:
        """Should treat a blank bucket name as unset."""
        assert Settings(gcs_images_bucket="  ", _env_file=None).gcs_images_bucket is None

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should read CRYPTOWIRE_ variables."""
        monkeypatch.setenv("CRYPTOWIRE_FEED_CONCURRENCY", "8")
        assert Settings(_env_file=None).feed_concurrency == 8


class TestDatabaseUrl:
    """Tests for resolve_database_url."""

    def test_plain_url(self) -> None:
        """Should use the configured URL without a secret."""
        settings = Settings(database_url="sqlite+aiosqlite:///x.db", _env_file=None)
        assert resolve_database_url(settings) == "sqlite+aiosqlite:///x.db"

    def test_secret_requires_project(self) -> None:
        """Should refuse a secret name without a project."""
        settings = Settings(database_url_secret="db-url", _env_file=None)
        with pytest.raises(ValueError, match="GCP_PROJECT_ID"):
            resolve_database_url(settings)

    def test_secret(self) -> None:
        """Should read the URL from Secret Manager."""
        settings = Settings(
            database_url_secret="db-url", gcp_project_id="proj", _env_file=None
        )
        manager = MagicMock()
        manager.get_secret.return_value = "postgresql+asyncpg://db"
        with patch("cryptowire.config.get_secret_manager", return_value=manager):
            assert resolve_database_url(settings) == "postgresql+asyncpg://db"
        manager.get_secret.assert_called_once_with("db-url")
