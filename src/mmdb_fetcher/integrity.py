"""Content digests used to tell whether the local database matches the one MaxMind publishes."""

import hashlib


def sha256_digest(data: bytes) -> str:
    """Hashes a buffer with sha-256, used to quickly see if a file has changed."""
    return hashlib.sha256(data).hexdigest()
