"""Byte-identical file detection across the latest submissions of one assignment."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from models import Assignment, User
from services.hashing import DEFAULT_CHUNK_SIZE, hash_file
from services.storage import PathViolation, resolve_stored_path
from services.submissions import resolve_authoritative

logger = logging.getLogger(__name__)


@dataclass
class DuplicateMember:
    digest: str
    submission_id: int
    student: User
    filename: str

    def to_dict(self) -> dict:
        return {
            "digest": self.digest,
            "submissionId": self.submission_id,
            "student": {
                "id": self.student.id,
                "studentId": self.student.student_id,
                "name": self.student.name,
            },
            "filename": self.filename,
        }


@dataclass
class DuplicateGroup:
    digest: str
    members: list[DuplicateMember] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"digest": self.digest, "members": [m.to_dict() for m in self.members]}


@dataclass
class DuplicateReport:
    groups: list[DuplicateGroup]
    total_files_scanned: int
    skipped_files: int = 0

    def to_dict(self) -> dict:
        return {
            "matches": [group.to_dict() for group in self.groups],
            "totalFiles": self.total_files_scanned,
            "skippedFiles": self.skipped_files,
        }


def detect_duplicates(
    assignment: Assignment,
    root: Optional[str] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> DuplicateReport:
    """Group the files of every latest submission by content digest.

    Only digests shared by more than one file are reported, in the order the
    digest was first seen. Files that cannot be hashed are logged and left
    out of the groups but still count as scanned.
    """
    by_digest: dict[str, list[DuplicateMember]] = {}
    scanned = 0
    skipped = 0

    for row in resolve_authoritative(assignment):
        if row.submission is None:
            continue
        for stored in row.submission.files or []:
            scanned += 1
            try:
                digest = hash_file(resolve_stored_path(stored.path, root), chunk_size)
            except PathViolation as exc:
                skipped += 1
                logger.warning(
                    "Skipping file outside storage in submission %s: %s",
                    row.submission.id,
                    exc,
                )
                continue
            except OSError as exc:
                skipped += 1
                logger.warning(
                    "Could not hash %s in submission %s: %s",
                    stored.path,
                    row.submission.id,
                    exc,
                )
                continue
            by_digest.setdefault(digest, []).append(
                DuplicateMember(
                    digest=digest,
                    submission_id=row.submission.id,
                    student=row.student,
                    filename=stored.filename,
                )
            )

    groups = [
        DuplicateGroup(digest=digest, members=members)
        for digest, members in by_digest.items()
        if len(members) > 1
    ]
    logger.info(
        "Duplicate scan for assignment %s: %d files, %d groups, %d skipped",
        assignment.id,
        scanned,
        len(groups),
        skipped,
    )
    return DuplicateReport(groups=groups, total_files_scanned=scanned, skipped_files=skipped)
