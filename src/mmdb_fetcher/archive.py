"""Streaming access to the entries of a gzipped tar archive."""

import gzip
import tarfile
import typing as t
import zlib
from dataclasses import dataclass
from io import BytesIO

from mmdb_fetcher.exceptions import FormatError

CHUNK_SIZE = 64 * 1024

ARCHIVE_ERRORS = (tarfile.TarError, gzip.BadGzipFile, zlib.error, EOFError)


@dataclass
class ArchiveEntry:
    """A regular file inside an archive.

    The stream is only readable until the iterator moves on to the next entry.
    """

    name: str
    stream: t.IO[bytes]

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> t.Iterator[bytes]:
        """Yield the remaining content of the entry in chunks.

        Raises:
            FormatError: If the archive ends early or its compressed data is corrupt.
        """
        while True:
            try:
                chunk = self.stream.read(chunk_size)
            except ARCHIVE_ERRORS as e:
                raise FormatError(f"Failed to read {self.name} from archive: {e}", entry_names=[self.name]) from e
            if not chunk:
                return
            yield chunk

    def drain(self) -> None:
        """Consume and discard the rest of the entry."""
        for _ in self.iter_chunks():
            pass


def iter_tar_gz_entries(data: bytes) -> t.Iterator[ArchiveEntry]:
    """Iterate over the regular files of a gzipped tar archive held in memory.

    Directories, links and other special members are skipped.

    Raises:
        FormatError: If the data is not a valid gzipped tar archive.
    """
    seen: list[str] = []
    try:
        with tarfile.open(fileobj=BytesIO(data), mode="r|gz") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                stream = tar.extractfile(member)
                if stream is None:
                    continue
                seen.append(member.name)
                yield ArchiveEntry(name=member.name, stream=stream)
    except ARCHIVE_ERRORS as e:
        raise FormatError(f"Failed to read archive: {e}", entry_names=seen) from e
