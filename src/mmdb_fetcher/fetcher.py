"""Keeps a MaxMind database on disk in sync with the MaxMind servers."""

import asyncio
import time
import typing as t
from dataclasses import dataclass
from datetime import timedelta

import structlog

from mmdb_fetcher.archive import iter_tar_gz_entries
from mmdb_fetcher.client import MaxMindClient
from mmdb_fetcher.conf import DB_SUFFIX, FetcherSettings
from mmdb_fetcher.exceptions import FilesystemError, FormatError, IntegrityError, NetworkError
from mmdb_fetcher.integrity import sha256_digest
from mmdb_fetcher.store import ArtifactStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DbChange:
    """A newly committed database and the sha256 of the archive it came from."""

    sha256: str
    buffer: bytes


OnDbChangeCallback = t.Callable[[DbChange], None]


def current_millis() -> int:
    """Milliseconds since the epoch, the unit of the last-checked file."""
    return int(time.time() * 1000)


class MaxMindFetcher:
    """Downloads a database when MaxMind publishes a new one and swaps it in on disk.

    A check runs on `start()` and then every `time_check_interval`. Each check only asks
    MaxMind for the current sha256 if the previous successful check is older than
    `hash_check_interval`, and only downloads when that hash differs from the local file.
    """

    def __init__(
        self,
        settings: FetcherSettings,
        client: MaxMindClient | None = None,
        store: ArtifactStore | None = None,
        clock: t.Callable[[], int] = current_millis,
    ) -> None:
        """Initialize the fetcher without starting the periodic check.

        Args:
            settings: Fetcher settings.
            client: Client for the MaxMind servers, built from `settings` if omitted.
            store: Storage for the database files, built from `settings` if omitted.
            clock: Returns the current time in milliseconds.
        """
        self.settings = settings
        self.client = client or MaxMindClient(settings)
        self.store = store or ArtifactStore(settings)
        self._clock = clock
        self._update_is_running = False
        self._on_db_change_cbs: set[OnDbChangeCallback] = set()
        self._scheduler_task: asyncio.Task[None] | None = None
        self._cycle_tasks: set[asyncio.Task[None]] = set()
        self._log = logger.bind(edition_id=settings.edition_id)

    @property
    def update_is_running(self) -> bool:
        """Whether a check cycle is currently in flight."""
        return self._update_is_running

    def start(self) -> None:
        """Run a check right away and then every `time_check_interval`.

        Must be called from a running event loop. Calling it again has no effect.
        """
        if self._scheduler_task is None:
            self._scheduler_task = asyncio.create_task(self._schedule())

    async def _schedule(self) -> None:
        interval = self.settings.time_check_interval.total_seconds()
        while True:
            self._spawn_cycle()
            await asyncio.sleep(interval)

    def _spawn_cycle(self) -> None:
        task = asyncio.create_task(self.run_check_cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._on_cycle_done)

    def _on_cycle_done(self, task: "asyncio.Task[None]") -> None:
        self._cycle_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log.error("periodic_check_failed", exc_info=error)

    async def run_check_cycle(self) -> None:
        """Check for a new database, unless a check is already running."""
        if self._update_is_running:
            self._log.debug("check_cycle_already_running")
            return
        self._update_is_running = True
        try:
            await self._update_db()
        finally:
            self._update_is_running = False

    def _ignore_network_error(self, error: NetworkError) -> bool:
        if not self.settings.ignore_network_errors:
            return False
        self._log.info("network_error_ignored", suffix=error.suffix, status_code=error.status_code)
        return True

    def _hash_check_due(self, last_checked: int | None) -> bool:
        if last_checked is None:
            return True
        return self._clock() - last_checked > self.settings.hash_check_interval / timedelta(milliseconds=1)

    async def _update_db(self) -> None:
        """Compare the local sha256 with MaxMind's and download a new database on mismatch.

        The last-checked timestamp is written at the end of every cycle that reaches MaxMind
        or skips it, so the hash check interval keeps being honored.
        """
        last_checked = await self.store.read_checkpoint()

        local_sha256: str | None = None
        local_db = await self.store.read_artifact()
        if local_db is not None:
            local_sha256 = await asyncio.to_thread(sha256_digest, local_db)

        server_sha256: str | None = None
        if self._hash_check_due(last_checked):
            try:
                server_sha256 = await self.client.fetch_digest()
            except NetworkError as e:
                if self._ignore_network_error(e):
                    return
                raise

        if server_sha256 and server_sha256 != local_sha256:
            self._progress("downloading_new_database", sha256=server_sha256)
            try:
                archive = await self.client.fetch_archive()
            except NetworkError as e:
                if self._ignore_network_error(e):
                    return
                raise

            archive_sha256 = await asyncio.to_thread(sha256_digest, archive)
            if archive_sha256 != server_sha256:
                raise IntegrityError(
                    "Failed to download maxmind db, sha256 verification failed.",
                    expected=server_sha256,
                    actual=archive_sha256,
                )

            db_buffer, entry_names = await asyncio.to_thread(self._extract_to_staging, archive)
            if db_buffer is None:
                listing = "\n".join(f" - {name}" for name in entry_names)
                raise FormatError(
                    f"Failed to get MaxMind database from the tar response, no {DB_SUFFIX} file found. "
                    f"Only found:\n{listing}",
                    entry_names=entry_names,
                )

            handle = await self.store.begin_replace()
            await self.store.commit_replace(handle)
            self._progress("database_updated", sha256=server_sha256, size=len(db_buffer))

            change = DbChange(sha256=server_sha256, buffer=db_buffer)
            for cb in list(self._on_db_change_cbs):
                cb(change)

        await self.store.write_checkpoint(self._clock())

    def _extract_to_staging(self, archive: bytes) -> tuple[bytes | None, list[str]]:
        """Write the database entry of `archive` to the staging file and collect it in memory.

        Every other entry is drained so the archive stream can advance past it.

        Returns:
            The database bytes (None if there was no database entry) and the names of all entries.
        """
        entry_names: list[str] = []
        db_buffer: bytes | None = None
        for entry in iter_tar_gz_entries(archive):
            entry_names.append(entry.name)
            if not entry.name.endswith(DB_SUFFIX):
                entry.drain()
                continue

            chunks: list[bytes] = []
            with self.store.open_staging() as staging:
                for chunk in entry.iter_chunks():
                    try:
                        staging.write(chunk)
                    except OSError as e:
                        raise FilesystemError(f"Failed to write {self.store.db_temp_path}: {e}") from e
                    chunks.append(chunk)
            db_buffer = b"".join(chunks)
        return db_buffer, entry_names

    def _progress(self, event: str, **kwargs: t.Any) -> None:
        if self.settings.verbose:
            self._log.info(event, **kwargs)
        else:
            self._log.debug(event, **kwargs)

    def on_db_change(self, cb: OnDbChangeCallback) -> None:
        """Register a callback invoked with every newly committed database."""
        self._on_db_change_cbs.add(cb)

    async def get_db_buffer(self) -> bytes | None:
        """Read the latest database from disk.

        Returns:
            The database bytes, or None if the database hasn't been downloaded yet.
        """
        return await self.store.read_artifact()


async def init_fetcher(settings: FetcherSettings, client: MaxMindClient | None = None) -> MaxMindFetcher:
    """Create the storage directory and start a fetcher that keeps it up to date."""
    try:
        await asyncio.to_thread(settings.db_storage_dir.mkdir, parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Failed to create {settings.db_storage_dir}: {e}") from e

    fetcher = MaxMindFetcher(settings, client=client)
    fetcher.start()
    return fetcher
