from datetime import timedelta
from pathlib import Path

import pytest
from pytest import MonkeyPatch

from mmdb_fetcher.conf import FetcherSettings, settings_from_env
from mmdb_fetcher.exceptions import ConfigError


class TestFetcherSettings:
    """Tests for FetcherSettings."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Optional settings fall back to the documented defaults."""
        settings = FetcherSettings(edition_id="GeoLite2-City", db_storage_dir=tmp_path, license_key="key")

        assert settings.ignore_network_errors is False
        assert settings.verbose is False
        assert settings.time_check_interval == timedelta(minutes=10)
        assert settings.hash_check_interval == timedelta(hours=1)
        assert settings.download_url == "https://download.maxmind.com/app/geoip_download"

    def test_file_layout(self, tmp_path: Path) -> None:
        """The three files live directly in the storage directory."""
        settings = FetcherSettings(edition_id="GeoLite2-City", db_storage_dir=tmp_path, license_key="key")

        assert settings.last_checked_path == tmp_path / "lastChecked.txt"
        assert settings.db_path == tmp_path / "db.mmdb"
        assert settings.db_temp_path == tmp_path / "tempDb.mmdb"

    def test_empty_license_key_fails_fast(self, tmp_path: Path) -> None:
        """Constructing settings without a license key raises ConfigError."""
        with pytest.raises(ConfigError, match="no license key set"):
            FetcherSettings(edition_id="GeoLite2-City", db_storage_dir=tmp_path, license_key="")

    def test_custom_edition_is_accepted(self, tmp_path: Path) -> None:
        """Editions outside the known list are passed through unchanged."""
        settings = FetcherSettings(edition_id="GeoIP2-Enterprise", db_storage_dir=tmp_path, license_key="key")
        assert settings.edition_id == "GeoIP2-Enterprise"

    def test_license_key_not_in_repr(self, tmp_path: Path) -> None:
        """The license key doesn't leak through repr()."""
        settings = FetcherSettings(edition_id="GeoLite2-City", db_storage_dir=tmp_path, license_key="s3cr3t")
        assert "s3cr3t" not in repr(settings)


class TestSettingsFromEnv:
    """Tests for settings_from_env."""

    def test_reads_environment(self, monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
        """Values come from MAXMIND_* environment variables."""
        monkeypatch.setenv("MAXMIND_LICENSE_KEY", "env-key")
        monkeypatch.setenv("MAXMIND_EDITION_ID", "GeoLite2-ASN")
        monkeypatch.setenv("MAXMIND_DB_STORAGE_DIR", str(tmp_path))
        monkeypatch.setenv("MAXMIND_IGNORE_NETWORK_ERRORS", "true")
        monkeypatch.setenv("MAXMIND_VERBOSE", "1")

        settings = settings_from_env()

        assert settings.license_key == "env-key"
        assert settings.edition_id == "GeoLite2-ASN"
        assert settings.db_storage_dir == tmp_path
        assert settings.ignore_network_errors is True
        assert settings.verbose is True

    def test_overrides_win(self, monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
        """Keyword arguments take precedence over the environment."""
        monkeypatch.setenv("MAXMIND_LICENSE_KEY", "env-key")
        monkeypatch.setenv("MAXMIND_EDITION_ID", "GeoLite2-ASN")

        settings = settings_from_env(edition_id="GeoLite2-City", db_storage_dir=tmp_path)

        assert settings.edition_id == "GeoLite2-City"
        assert settings.license_key == "env-key"

    def test_missing_license_key(self, monkeypatch: MonkeyPatch) -> None:
        """Without MAXMIND_LICENSE_KEY the settings can't be built."""
        monkeypatch.delenv("MAXMIND_LICENSE_KEY", raising=False)
        with pytest.raises(ConfigError):
            settings_from_env()
