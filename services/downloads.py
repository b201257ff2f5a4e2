"""Attachment responses for stored files."""
from __future__ import annotations

import os
from typing import Optional
from urllib.parse import quote

from flask import abort, send_file

from models import StoredFile
from services.storage import PathViolation, resolve_stored_path


def _ascii_only(value: str) -> str:
    return "".join(ch if ch.isascii() and (ch.isalnum() or ch in "._-") else "_" for ch in value)


def ascii_filename(name: str, fallback: str = "download") -> str:
    """Header-safe ASCII variant of ``name``, keeping the extension."""
    stem, ext = os.path.splitext(name or "")
    safe_stem = _ascii_only(stem).strip("._")
    if not any(ch.isalnum() for ch in safe_stem):
        safe_stem = fallback
    return f"{safe_stem}{_ascii_only(ext)}"


def content_disposition(filename: str, ascii_name: Optional[str] = None) -> str:
    """``attachment`` header value carrying an ASCII ``filename`` and a UTF-8 ``filename*``."""
    plain = ascii_name or ascii_filename(filename)
    encoded = quote(filename or plain, safe="")
    return f"attachment; filename=\"{plain}\"; filename*=UTF-8''{encoded}"


def apply_download_headers(response, filename: str, ascii_name: Optional[str] = None):
    response.headers["Content-Disposition"] = content_disposition(filename, ascii_name)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Cache-Control"] = "private, no-store"
    return response


def send_stored_file(stored: StoredFile, root=None):
    """Send ``stored`` as an attachment, refusing references outside the storage root."""
    try:
        path = resolve_stored_path(stored.path, root)
    except PathViolation:
        abort(403, description="Illegal file path")
    if not os.path.isfile(path):
        abort(404, description="File not found")
    plain = ascii_filename(stored.filename)
    response = send_file(path, as_attachment=True, download_name=plain, conditional=False)
    return apply_download_headers(response, stored.filename, plain)
