"""On-disk storage of the database, its staging file and the last-checked timestamp."""

import asyncio
import typing as t
from dataclasses import dataclass
from pathlib import Path

import structlog

from mmdb_fetcher.conf import FetcherSettings
from mmdb_fetcher.exceptions import FilesystemError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReplaceHandle:
    """An open replace window, moving `temp_path` over `db_path` once committed."""

    temp_path: Path
    db_path: Path


def _read_text_or_none(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise FilesystemError(f"Failed to read {path}: {e}") from e


def _read_bytes_or_none(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise FilesystemError(f"Failed to read {path}: {e}") from e


def _write_text(path: Path, text: str) -> None:
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise FilesystemError(f"Failed to write {path}: {e}") from e


def _swap_files(temp_path: Path, db_path: Path) -> None:
    try:
        db_path.unlink()
    except FileNotFoundError:
        # first download
        pass
    except OSError as e:
        raise FilesystemError(f"Failed to remove {db_path}: {e}") from e
    try:
        temp_path.replace(db_path)
    except OSError as e:
        raise FilesystemError(f"Failed to move {temp_path} to {db_path}: {e}") from e


class ArtifactStore:
    """Keeps the committed database file from ever being read half written.

    Blocking filesystem calls run in worker threads. While a replace window is open,
    `read_artifact` waits until the new file has been moved into place, and the window only
    starts swapping files once every read that was already in flight has finished.
    """

    def __init__(self, settings: FetcherSettings) -> None:
        """Initialize the store for the storage directory in `settings`."""
        self.last_checked_path = settings.last_checked_path
        self.db_path = settings.db_path
        self.db_temp_path = settings.db_temp_path
        self._replace_done = asyncio.Event()
        self._replace_done.set()
        self._active_reads = 0
        self._reads_drained = asyncio.Event()
        self._reads_drained.set()

    @property
    def replace_in_progress(self) -> bool:
        """Whether a replace window is currently open."""
        return not self._replace_done.is_set()

    async def read_checkpoint(self) -> int | None:
        """Read the millisecond timestamp of the last check.

        Returns:
            The timestamp, or None if the file is missing or doesn't contain only digits.
        """
        text = await asyncio.to_thread(_read_text_or_none, self.last_checked_path)
        if text is None:
            return None
        text = text.strip()
        if not (text.isascii() and text.isdigit()):
            logger.warning("corrupt_checkpoint_ignored", path=str(self.last_checked_path))
            return None
        return int(text)

    async def write_checkpoint(self, now_ms: int) -> None:
        """Persist the millisecond timestamp of the check that just finished."""
        await asyncio.to_thread(_write_text, self.last_checked_path, str(now_ms))

    async def read_artifact(self) -> bytes | None:
        """Read the committed database, waiting for an open replace window to close first.

        Returns:
            The database bytes, or None if nothing has been downloaded yet.
        """
        await self._replace_done.wait()
        self._active_reads += 1
        self._reads_drained.clear()
        try:
            return await asyncio.to_thread(_read_bytes_or_none, self.db_path)
        finally:
            self._active_reads -= 1
            if self._active_reads == 0:
                self._reads_drained.set()

    def open_staging(self) -> t.BinaryIO:
        """Open the staging file for writing, truncating whatever an earlier cycle left behind."""
        try:
            return self.db_temp_path.open("wb")
        except OSError as e:
            raise FilesystemError(f"Failed to open {self.db_temp_path}: {e}") from e

    async def begin_replace(self) -> ReplaceHandle:
        """Open a replace window and wait for reads already in flight to finish.

        Reads issued after this call block until `commit_replace` closes the window.
        """
        self._replace_done.clear()
        try:
            await self._reads_drained.wait()
        except BaseException:
            self._replace_done.set()
            raise
        return ReplaceHandle(temp_path=self.db_temp_path, db_path=self.db_path)

    async def commit_replace(self, handle: ReplaceHandle) -> None:
        """Move the staged file over the committed one and close the replace window.

        The window is closed even if the swap fails, so readers are never blocked forever.

        Raises:
            FilesystemError: If removing the old file or renaming the staged one fails.
        """
        try:
            await asyncio.to_thread(_swap_files, handle.temp_path, handle.db_path)
        finally:
            self._replace_done.set()
