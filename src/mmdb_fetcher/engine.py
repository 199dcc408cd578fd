"""The database engine the live database loads its versions with.

Anything that can load a buffer, answer lookups against it and release it again satisfies
`DatabaseEngine`; `MaxMindEngine` does so with the maxminddb reader.
"""

import typing as t
from io import BytesIO

import maxminddb
from maxminddb.reader import Reader

R = t.TypeVar("R")


class DatabaseEngine(t.Protocol[R]):
    """Protocol for loading, querying and releasing an in-memory database."""

    def load(self, buffer: bytes) -> R:
        """Load a database from its raw bytes."""
        ...

    def lookup_city(self, instance: R, ip_address: str) -> t.Any:
        """Return the record for `ip_address`, or None if it isn't in the database."""
        ...

    def lookup_prefix(self, instance: R, ip_address: str) -> tuple[t.Any, int]:
        """Return the record for `ip_address` and the prefix length of the network it belongs to."""
        ...

    def dispose(self, instance: R) -> None:
        """Release everything held by a loaded database."""
        ...


class MaxMindEngine:
    """Loads `.mmdb` buffers with the pure Python maxminddb reader."""

    def load(self, buffer: bytes) -> Reader:
        """Open a reader over an in-memory copy of the database."""
        fd = BytesIO(buffer)
        fd.name = "<memory>"  # type: ignore[attr-defined]
        return maxminddb.open_database(fd, mode=maxminddb.MODE_FD)  # type: ignore[arg-type]

    def lookup_city(self, instance: Reader, ip_address: str) -> t.Any:
        """Look up the full record for an address."""
        return instance.get(ip_address)

    def lookup_prefix(self, instance: Reader, ip_address: str) -> tuple[t.Any, int]:
        """Look up the record for an address along with its network prefix length."""
        return instance.get_with_prefix_len(ip_address)

    def dispose(self, instance: Reader) -> None:
        """Close the reader."""
        instance.close()
