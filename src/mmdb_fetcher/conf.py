"""Configuration for the MaxMind fetcher.

Settings can be built directly or read from the environment (and a `.env` file) through
python-decouple, mirroring how the rest of the stack is configured:

    MAXMIND_LICENSE_KEY=...
    MAXMIND_EDITION_ID=GeoLite2-City
    MAXMIND_DB_STORAGE_DIR=/var/lib/maxmind
"""

import typing as t
from datetime import timedelta
from pathlib import Path

from decouple import config
from pydantic import BaseModel, ConfigDict, Field, model_validator

from mmdb_fetcher.exceptions import ConfigError

MaxMindEditionId = t.Literal[
    "GeoLite2-ASN",
    "GeoLite2-ASN-CSV",
    "GeoLite2-City",
    "GeoLite2-City-CSV",
    "GeoLite2-Country",
    "GeoLite2-Country-CSV",
]

DEFAULT_DOWNLOAD_URL = "https://download.maxmind.com/app/geoip_download"
TIME_CHECK_UPDATE_INTERVAL = timedelta(minutes=10)
HASH_CHECK_UPDATE_INTERVAL = timedelta(hours=1)

LAST_CHECKED_FILENAME = "lastChecked.txt"
DB_FILENAME = "db.mmdb"
TEMP_DB_FILENAME = "tempDb.mmdb"
DB_SUFFIX = ".mmdb"


class FetcherSettings(BaseModel):
    """Settings for a fetcher and the live database built on top of it.

    Attributes:
        edition_id: The edition to download. `GeoLite2-Country` is very light but only maps
            addresses to a country, `GeoLite2-City` is more precise at the cost of memory.
        db_storage_dir: Directory where downloaded database files are placed.
        license_key: The MaxMind license key.
        ignore_network_errors: Set to True to silently skip a check when MaxMind can't be reached.
            Useful in local development, where you may not always be connected to the internet.
        verbose: Log download progress at INFO instead of DEBUG.
    """

    model_config = ConfigDict(frozen=True)

    edition_id: MaxMindEditionId | str
    db_storage_dir: Path
    license_key: str = Field(repr=False)
    ignore_network_errors: bool = False
    verbose: bool = False
    download_url: str = DEFAULT_DOWNLOAD_URL
    time_check_interval: timedelta = TIME_CHECK_UPDATE_INTERVAL
    hash_check_interval: timedelta = HASH_CHECK_UPDATE_INTERVAL
    request_timeout: float = 300.0

    @model_validator(mode="after")
    def _require_license_key(self) -> "FetcherSettings":
        if not self.license_key:
            raise ConfigError("Failed to initialize maxmind fetcher, no license key set")
        return self

    @property
    def last_checked_path(self) -> Path:
        """Path of the file holding the timestamp of the last hash check."""
        return self.db_storage_dir / LAST_CHECKED_FILENAME

    @property
    def db_path(self) -> Path:
        """Path of the committed database."""
        return self.db_storage_dir / DB_FILENAME

    @property
    def db_temp_path(self) -> Path:
        """Path a new database is staged at before it replaces the committed one."""
        return self.db_storage_dir / TEMP_DB_FILENAME


def settings_from_env(**overrides: t.Any) -> FetcherSettings:
    """Build settings from environment variables, letting keyword arguments win."""
    values: dict[str, t.Any] = {
        "edition_id": config("MAXMIND_EDITION_ID", default="GeoLite2-Country"),
        "db_storage_dir": config("MAXMIND_DB_STORAGE_DIR", default="maxmind", cast=Path),
        "license_key": config("MAXMIND_LICENSE_KEY", default=""),
        "ignore_network_errors": config("MAXMIND_IGNORE_NETWORK_ERRORS", default=False, cast=bool),
        "verbose": config("MAXMIND_VERBOSE", default=False, cast=bool),
        "download_url": config("MAXMIND_DOWNLOAD_URL", default=DEFAULT_DOWNLOAD_URL),
    }
    values.update(overrides)
    return FetcherSettings(**values)
