"""Async client for the MaxMind download endpoint."""

import httpx
import structlog

from mmdb_fetcher.conf import FetcherSettings
from mmdb_fetcher.exceptions import NetworkError

logger = structlog.get_logger(__name__)

SHA256_SUFFIX = "tar.gz.sha256"
ARCHIVE_SUFFIX = "tar.gz"


class MaxMindClient:
    """Downloads database archives and their checksums from MaxMind.

    A fresh `httpx.AsyncClient` is opened per request; requests happen at most a few times per hour.
    """

    def __init__(self, settings: FetcherSettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Fetcher settings providing the edition, license key and download url.
            transport: Optional httpx transport, mainly for tests.
        """
        self.settings = settings
        self._transport = transport

    async def _request(self, suffix: str) -> httpx.Response:
        params = {
            "edition_id": self.settings.edition_id,
            "license_key": self.settings.license_key,
            "suffix": suffix,
        }
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(self.settings.request_timeout, connect=10.0),
                follow_redirects=True,
            ) as client:
                response = await client.get(self.settings.download_url, params=params)
        except httpx.HTTPError as e:
            raise NetworkError(f'Maxmind request to "{suffix}" failed: {e}', suffix=suffix) from e

        if not response.is_success:
            logger.warning("maxmind_request_failed", suffix=suffix, status_code=response.status_code)
            raise NetworkError(
                f'Maxmind request to "{suffix}" failed, status code was {response.status_code}',
                status_code=response.status_code,
                suffix=suffix,
            )
        return response

    async def fetch_digest(self) -> str:
        """Fetch the sha256 MaxMind announces for the current archive.

        Returns:
            The first whitespace-delimited token of the checksum file, or an empty string
            if the body is empty.
        """
        response = await self._request(SHA256_SUFFIX)
        tokens = response.text.split()
        return tokens[0] if tokens else ""

    async def fetch_archive(self) -> bytes:
        """Download the full gzipped tar archive."""
        response = await self._request(ARCHIVE_SUFFIX)
        return response.content
