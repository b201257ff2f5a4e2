"""Upload storage on the local filesystem and the path checks guarding it.

Every read and write of a stored file goes through :func:`resolve_stored_path`
so that a stored reference can never point outside the configured storage
root, whether through ``..`` segments, an absolute path or a symlink.
"""
from __future__ import annotations

import logging
import os
import re
import shutil
import time
import uuid
from typing import Optional

from flask import current_app

from models import StoredFile, utcnow

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w.\-]", re.UNICODE)


class PathViolation(Exception):
    """Raised when a stored reference resolves outside the storage root."""

    def __init__(self, stored_path: str, reason: str = "outside storage root"):
        super().__init__(f"{reason}: {stored_path!r}")
        self.stored_path = stored_path
        self.reason = reason


def sanitize_filename(name: Optional[str], fallback: str = "file") -> str:
    cleaned = _UNSAFE_CHARS.sub("_", os.path.basename(name or "").strip())
    cleaned = cleaned.lstrip(".")
    return cleaned or fallback


def storage_root(root: Optional[str] = None) -> str:
    """Canonical absolute form of the storage root (``UPLOAD_DIR`` by default)."""
    if root is None:
        root = current_app.config["UPLOAD_DIR"]
    return os.path.realpath(os.path.abspath(root))


def resolve_stored_path(stored_path: str, root: Optional[str] = None) -> str:
    """Return the absolute location of ``stored_path``, which must stay inside ``root``.

    Relative references are taken relative to the root. Absolute references
    are accepted only when they already point inside it.
    """
    if not stored_path or "\x00" in stored_path:
        raise PathViolation(stored_path or "", "empty or malformed reference")
    canonical_root = storage_root(root)
    candidate = os.path.realpath(os.path.join(canonical_root, stored_path))
    if candidate != canonical_root and not candidate.startswith(canonical_root + os.sep):
        logger.warning("Rejected stored path %r (root %s)", stored_path, canonical_root)
        raise PathViolation(stored_path)
    return candidate


def save_upload(file_storage, *parts, root: Optional[str] = None) -> StoredFile:
    """Write an uploaded werkzeug ``FileStorage`` under ``root/parts...``.

    The display name is sanitised; the on-disk name gets a timestamp and a
    random prefix so repeated uploads of the same name never overwrite each other.
    """
    canonical_root = storage_root(root)
    safe = sanitize_filename(file_storage.filename)
    relative_dir = os.path.join(*(str(part) for part in parts)) if parts else ""
    destination = resolve_stored_path(
        os.path.join(relative_dir, f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe}"),
        canonical_root,
    )
    os.makedirs(os.path.dirname(destination), exist_ok=True)
    with open(destination, "xb") as target:
        try:
            shutil.copyfileobj(file_storage.stream, target)
        except BaseException:
            target.close()
            _remove_quietly(destination)
            raise
        size = target.tell()
    logger.info("Stored upload %s (%d bytes)", destination, size)
    return StoredFile(
        filename=safe,
        path=os.path.relpath(destination, canonical_root),
        size=size,
        uploaded_at=utcnow(),
    )


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error("Could not remove %s: %s", path, exc)


def discard_uploads(stored_files, root: Optional[str] = None) -> None:
    """Delete the bytes of uploads whose record was never committed."""
    for stored in stored_files:
        try:
            path = resolve_stored_path(stored.path, root)
        except PathViolation:
            continue
        _remove_quietly(path)
        logger.info("Discarded uncommitted upload %s", stored.path)
