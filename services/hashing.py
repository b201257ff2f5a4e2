"""Content digests for stored files."""
from __future__ import annotations

import hashlib

DEFAULT_CHUNK_SIZE = 64 * 1024


def hash_file(path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Return the SHA-256 hex digest of the file at ``path``.

    The file is read in ``chunk_size`` pieces. Missing or unreadable files
    raise ``OSError``.
    """
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
