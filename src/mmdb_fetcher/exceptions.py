"""Error taxonomy for the MaxMind fetcher."""


class MaxMindFetcherError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(MaxMindFetcherError):
    """Raised when the fetcher is configured incorrectly, e.g. without a license key."""


class NetworkError(MaxMindFetcherError):
    """Raised when a request to the MaxMind servers fails.

    Attributes:
        status_code: HTTP status code of the response, None for transport failures.
        suffix: The download suffix that was requested.
    """

    def __init__(self, message: str, status_code: int | None = None, suffix: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error message describing what went wrong.
            status_code: HTTP status code of the response, if there was one.
            suffix: The download suffix that was requested.
        """
        super().__init__(message)
        self.status_code = status_code
        self.suffix = suffix


class IntegrityError(MaxMindFetcherError):
    """Raised when a downloaded archive does not match the sha256 announced by the server."""

    def __init__(self, message: str, expected: str, actual: str) -> None:
        """Initialize the error with both digests."""
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class FormatError(MaxMindFetcherError):
    """Raised when a downloaded archive does not contain a database file."""

    def __init__(self, message: str, entry_names: list[str]) -> None:
        """Initialize the error with the names of the entries that were found instead."""
        super().__init__(message)
        self.entry_names = entry_names


class FilesystemError(MaxMindFetcherError):
    """Raised when reading or writing the storage directory fails for a reason other than a missing file."""
