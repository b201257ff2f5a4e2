"""Streamed ZIP export of the latest submission files of an assignment.

The archive is produced by :func:`stream_archive`, a generator that yields
compressed bytes as each source chunk is written, so a Flask ``Response`` can
send it to the client without the archive ever existing on disk or in memory
as a whole.
"""
from __future__ import annotations

import logging
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from models import Assignment
from services.naming import NameAllocator, archive_base_name
from services.storage import PathViolation, resolve_stored_path, sanitize_filename
from services.submissions import resolve_authoritative

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ExportEntry:
    arcname: str
    path: str
    submission_id: int


class StreamSink:
    """Write-only target for ``zipfile`` whose buffered bytes are drained by the caller.

    Without ``seek``/``tell`` ``zipfile`` writes in streaming mode (local
    headers followed by data descriptors).
    """

    def __init__(self):
        self._chunks: list[bytes] = []

    def write(self, data) -> int:
        if data:
            self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


@contextmanager
def open_archive(sink: StreamSink) -> Iterator[zipfile.ZipFile]:
    """Open a deflating ZIP writer on ``sink`` and always finalise it on exit."""
    archive = zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED)
    try:
        yield archive
    finally:
        archive.close()


def plan_export(assignment: Assignment, root: Optional[str] = None) -> list[ExportEntry]:
    """Decide archive names and source paths before any byte is streamed.

    Students are visited in enrollment order, so the same data always gives
    the same names. Students without a latest submission, or whose latest
    submission has no files, contribute nothing.
    """
    allocator = NameAllocator()
    entries: list[ExportEntry] = []
    for row in resolve_authoritative(assignment):
        if row.submission is None or not row.submission.files:
            continue
        for stored in row.submission.files:
            arcname = allocator.allocate(archive_base_name(row.student, stored.extension))
            try:
                path = resolve_stored_path(stored.path, root)
            except PathViolation as exc:
                logger.warning(
                    "Leaving %s out of export for submission %s: %s",
                    arcname,
                    row.submission.id,
                    exc,
                )
                continue
            entries.append(ExportEntry(arcname=arcname, path=path, submission_id=row.submission.id))
    return entries


def stream_archive(
    entries: Iterable[ExportEntry],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[bytes]:
    """Yield a ZIP archive containing ``entries`` piece by piece.

    An entry whose source cannot be opened or stat'ed is skipped before its
    local header is written. A source that fails after its first bytes went
    out cannot be taken back, so the entry is followed by a
    ``<arcname>.INCOMPLETE.txt`` marker naming it. Closing the generator
    early (client went away) releases the open source file and the writer.
    """
    sink = StreamSink()
    written = 0
    skipped = 0
    incomplete = 0
    with open_archive(sink) as archive:
        for entry in entries:
            try:
                source = open(entry.path, "rb")
            except OSError as exc:
                skipped += 1
                logger.warning(
                    "Skipping %s (submission %s) in export: %s",
                    entry.path,
                    entry.submission_id,
                    exc,
                )
                continue
            with source:
                try:
                    info = zipfile.ZipInfo.from_file(
                        entry.path, arcname=entry.arcname, strict_timestamps=False
                    )
                except OSError as exc:
                    skipped += 1
                    logger.warning(
                        "Skipping %s (submission %s) in export: %s",
                        entry.path,
                        entry.submission_id,
                        exc,
                    )
                    continue
                info.compress_type = zipfile.ZIP_DEFLATED
                copied = 0
                try:
                    with archive.open(info, mode="w") as target:
                        for chunk in iter(lambda: source.read(chunk_size), b""):
                            target.write(chunk)
                            copied += len(chunk)
                            data = sink.drain()
                            if data:
                                yield data
                except OSError as exc:
                    incomplete += 1
                    logger.error(
                        "Export entry %s (submission %s) truncated after %d of %d bytes: %s",
                        entry.arcname,
                        entry.submission_id,
                        copied,
                        info.file_size,
                        exc,
                    )
                    archive.writestr(
                        incomplete_marker_name(entry.arcname),
                        f"{entry.arcname} is incomplete: reading the stored file failed "
                        f"after {copied} of {info.file_size} bytes ({exc}).\n",
                    )
                    data = sink.drain()
                    if data:
                        yield data
                    continue
            written += 1
            data = sink.drain()
            if data:
                yield data
    logger.info(
        "Export finished: %d entries written, %d skipped, %d incomplete",
        written,
        skipped,
        incomplete,
    )
    tail = sink.drain()
    if tail:
        yield tail


def incomplete_marker_name(arcname: str) -> str:
    return f"{arcname}.INCOMPLETE.txt"


def export_filenames(assignment: Assignment) -> tuple[str, str]:
    """Display name and ASCII fallback for the archive download."""
    title = sanitize_filename(assignment.title, fallback=f"assignment_{assignment.id}")
    return f"{title}_submissions.zip", f"assignment_{assignment.id}_submissions.zip"
