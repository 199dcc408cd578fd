# src/mmdb_fetcher/tests/conftest.py
import asyncio
import io
import tarfile
import typing as t
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from mmdb_fetcher.client import MaxMindClient
from mmdb_fetcher.conf import FetcherSettings

NOW_MS = 1_700_000_000_000


class FakeReader:
    """Stands in for a loaded database."""

    def __init__(self, buffer: bytes) -> None:
        """Keep the buffer the reader was loaded from."""
        self.buffer = buffer
        self.closed = False


class FakeEngine:
    """A database engine that records loads and disposals."""

    def __init__(self) -> None:
        """Start with nothing loaded."""
        self.loaded: list[FakeReader] = []
        self.disposed: list[FakeReader] = []
        self.fail_dispose = False

    def load(self, buffer: bytes) -> FakeReader:
        """Wrap the buffer in a FakeReader."""
        reader = FakeReader(buffer)
        self.loaded.append(reader)
        return reader

    def lookup_city(self, instance: FakeReader, ip_address: str) -> dict[str, t.Any]:
        """Echo the address and the buffer of the version that answered."""
        if instance.closed:
            raise RuntimeError("lookup on a disposed reader")
        if ip_address == "not-an-ip":
            raise ValueError(f"'{ip_address}' does not appear to be an IPv4 or IPv6 address")
        return {"ip": ip_address, "db": instance.buffer}

    def lookup_prefix(self, instance: FakeReader, ip_address: str) -> tuple[dict[str, t.Any], int]:
        """Return the city record with a fixed prefix length."""
        return self.lookup_city(instance, ip_address), 24

    def dispose(self, instance: FakeReader) -> None:
        """Mark the reader closed."""
        if self.fail_dispose:
            raise OSError("close failed")
        instance.closed = True
        self.disposed.append(instance)


def make_tar_gz(entries: dict[str, bytes], directories: t.Sequence[str] = ()) -> bytes:
    """Build a gzipped tar archive in memory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for directory in directories:
            info = tarfile.TarInfo(directory)
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def settings(tmp_path: Path) -> FetcherSettings:
    """Settings pointing at a temporary storage directory."""
    return FetcherSettings(edition_id="GeoLite2-Country", db_storage_dir=tmp_path, license_key="test-key")


@pytest.fixture
def engine() -> FakeEngine:
    """Fixture for the recording database engine."""
    return FakeEngine()


@pytest.fixture
def clock() -> t.Callable[[], int]:
    """A clock frozen at NOW_MS."""
    return lambda: NOW_MS


@pytest.fixture
def db_content() -> bytes:
    """Bytes standing in for a .mmdb file."""
    return b"\xab\xcd\xefMaxMind.com" + b"\x00" * 2048


@pytest.fixture
def archive(db_content: bytes) -> bytes:
    """A MaxMind style archive with the database inside a dated directory."""
    return make_tar_gz(
        {
            "GeoLite2-Country_20240102/COPYRIGHT.txt": b"Database and Contents Copyright (c) MaxMind, Inc.",
            "GeoLite2-Country_20240102/LICENSE.txt": b"Use of this MaxMind product is governed by ...",
            "GeoLite2-Country_20240102/GeoLite2-Country.mmdb": db_content,
        },
        directories=["GeoLite2-Country_20240102"],
    )


@pytest.fixture
def client() -> MagicMock:
    """A MaxMind client whose requests are AsyncMocks."""
    mock = MagicMock(spec=MaxMindClient)
    mock.fetch_digest = AsyncMock()
    mock.fetch_archive = AsyncMock()
    return mock


async def wait_for(predicate: t.Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll `predicate` until it holds, yielding to the loop and worker threads in between."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)
