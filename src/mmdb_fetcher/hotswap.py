"""Hot-swappable in-memory database versions.

Lookups borrow whichever version is current when they start. When a new version is loaded,
the previous one is disposed right away if nothing is borrowing it, or by the last borrower
to finish otherwise. Outstanding borrows are counted in a table keyed by the generation
number every version gets at load time.
"""

import asyncio
import itertools
import typing as t
from dataclasses import dataclass

import structlog

from mmdb_fetcher.engine import DatabaseEngine

logger = structlog.get_logger(__name__)

R = t.TypeVar("R")
T = t.TypeVar("T")


@dataclass(eq=False)
class ResourceVersion(t.Generic[R]):
    """One loaded database.

    Attributes:
        generation: Increases by one with every load, starting at 1.
        instance: The loaded database.
        retiring: Set once a newer version replaced this one while it was still borrowed.
        disposed: Set once the instance has been released.
    """

    generation: int
    instance: R
    retiring: bool = False
    disposed: bool = False


class HotSwapHandle(t.Generic[R]):
    """Serves lookups from the current database version while allowing it to be replaced at any time."""

    def __init__(self, engine: DatabaseEngine[R]) -> None:
        """Initialize an empty handle; lookups wait until the first version is loaded."""
        self.engine = engine
        self._current: ResourceVersion[R] | None = None
        self._first_load = asyncio.Event()
        self._generations = itertools.count(1)
        self._outstanding: dict[int, int] = {}

    @property
    def current(self) -> ResourceVersion[R] | None:
        """The current version, or None before the first load."""
        return self._current

    def outstanding(self, generation: int) -> int:
        """Number of operations currently borrowing the version with `generation`."""
        return self._outstanding.get(generation, 0)

    async def current_version(self) -> ResourceVersion[R]:
        """Return the current version, waiting for the first one to be loaded if necessary."""
        await self._first_load.wait()
        assert self._current is not None
        return self._current

    def load_new_version(self, buffer: bytes) -> ResourceVersion[R]:
        """Load `buffer` and make it the current version, retiring the previous one."""
        version = ResourceVersion(generation=next(self._generations), instance=self.engine.load(buffer))
        self._outstanding[version.generation] = 0

        previous = self._current
        if previous is not None:
            if self._outstanding[previous.generation] == 0:
                self._dispose(previous)
            else:
                previous.retiring = True
                logger.debug(
                    "version_retiring",
                    generation=previous.generation,
                    outstanding=self._outstanding[previous.generation],
                )

        self._current = version
        self._first_load.set()
        logger.info("version_loaded", generation=version.generation, size=len(buffer))
        return version

    async def with_version(self, operation: t.Callable[[ResourceVersion[R]], t.Awaitable[T]]) -> T:
        """Run `operation` against the current version, keeping it alive until the operation finishes."""
        version = await self.current_version()
        generation = version.generation
        self._outstanding[generation] += 1
        try:
            return await operation(version)
        finally:
            self._outstanding[generation] -= 1
            if version.retiring and self._outstanding[generation] == 0:
                self._dispose(version)

    def _dispose(self, version: ResourceVersion[R]) -> None:
        if version.disposed:
            return
        version.disposed = True
        del self._outstanding[version.generation]
        try:
            self.engine.dispose(version.instance)
        except Exception:
            logger.exception("version_dispose_failed", generation=version.generation)
        else:
            logger.debug("version_disposed", generation=version.generation)

    async def lookup_city(self, ip_address: str) -> t.Any:
        """Look up the record for an address in the current version."""

        async def _lookup(version: ResourceVersion[R]) -> t.Any:
            return self.engine.lookup_city(version.instance, ip_address)

        return await self.with_version(_lookup)

    async def lookup_prefix(self, ip_address: str) -> tuple[t.Any, int]:
        """Look up the record and network prefix length for an address in the current version."""

        async def _lookup(version: ResourceVersion[R]) -> tuple[t.Any, int]:
            return self.engine.lookup_prefix(version.instance, ip_address)

        return await self.with_version(_lookup)
