"""Keep a MaxMind GeoIP database downloaded, verified and loaded in memory.

Example:
    from mmdb_fetcher import LiveMaxMindDb, FetcherSettings

    db = LiveMaxMindDb(
        FetcherSettings(edition_id="GeoLite2-Country", db_storage_dir="/path/to/maxmind", license_key="<key>")
    )
    await db.lookup_city("<ip>")
"""

from mmdb_fetcher.conf import FetcherSettings, settings_from_env
from mmdb_fetcher.exceptions import (
    ConfigError,
    FilesystemError,
    FormatError,
    IntegrityError,
    MaxMindFetcherError,
    NetworkError,
)
from mmdb_fetcher.fetcher import DbChange, MaxMindFetcher, init_fetcher
from mmdb_fetcher.live import LiveMaxMindDb

__all__ = [
    "ConfigError",
    "DbChange",
    "FetcherSettings",
    "FilesystemError",
    "FormatError",
    "IntegrityError",
    "LiveMaxMindDb",
    "MaxMindFetcher",
    "MaxMindFetcherError",
    "NetworkError",
    "init_fetcher",
    "settings_from_env",
]
