"""A MaxMind database that is kept up to date on disk and in memory."""

import asyncio
import typing as t

import structlog

from mmdb_fetcher.client import MaxMindClient
from mmdb_fetcher.conf import FetcherSettings
from mmdb_fetcher.engine import DatabaseEngine, MaxMindEngine
from mmdb_fetcher.fetcher import DbChange, MaxMindFetcher, init_fetcher
from mmdb_fetcher.hotswap import HotSwapHandle

logger = structlog.get_logger(__name__)


class LiveMaxMindDb:
    """Builds on top of `MaxMindFetcher` and also keeps the database loaded in memory.

    Example:
        db = LiveMaxMindDb(settings_from_env(edition_id="GeoLite2-City"))
        record = await db.lookup_city("81.2.69.142")

    The fetcher is started by `start()` or by the first lookup. Lookups wait until a database
    is available, either from disk or from the first download.
    """

    def __init__(
        self,
        settings: FetcherSettings,
        engine: DatabaseEngine[t.Any] | None = None,
        client: MaxMindClient | None = None,
    ) -> None:
        """Initialize the live database.

        Args:
            settings: Fetcher settings.
            engine: Engine used to load and query the database, maxminddb by default.
            client: Client for the MaxMind servers, built from `settings` if omitted.
        """
        self.settings = settings
        self.handle: HotSwapHandle[t.Any] = HotSwapHandle(engine or MaxMindEngine())
        self.fetcher: MaxMindFetcher | None = None
        self._client = client
        self._init_task: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Start the fetcher and load the database from disk in the background."""
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._init())
            self._init_task.add_done_callback(self._on_init_done)

    async def wait_started(self) -> None:
        """Wait until the fetcher runs and any database already on disk has been loaded."""
        self.start()
        assert self._init_task is not None
        await asyncio.shield(self._init_task)

    async def _init(self) -> None:
        fetcher = await init_fetcher(self.settings, client=self._client)
        self.fetcher = fetcher
        fetcher.on_db_change(self._on_db_change)
        buffer = await fetcher.get_db_buffer()
        if buffer is not None and self.handle.current is None:
            self.handle.load_new_version(buffer)

    def _on_init_done(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("live_db_init_failed", edition_id=self.settings.edition_id, exc_info=error)

    def _on_db_change(self, change: DbChange) -> None:
        self.handle.load_new_version(change.buffer)

    async def lookup_city(self, ip_address: str) -> t.Any:
        """Look up the record for an address."""
        self.start()
        return await self.handle.lookup_city(ip_address)

    async def lookup_prefix(self, ip_address: str) -> tuple[t.Any, int]:
        """Look up the record for an address and the prefix length of its network."""
        self.start()
        return await self.handle.lookup_prefix(ip_address)
