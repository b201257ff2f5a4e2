"""Submission versions and the latest-version view of an assignment."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from extensions import db
from models import Assignment, Enrollment, Grade, StoredFile, Submission, User

logger = logging.getLogger(__name__)

MAX_VERSION_ATTEMPTS = 3


class VersionConflict(RuntimeError):
    """Raised when a new version number could not be claimed."""


@dataclass
class AuthoritativeSubmission:
    student: User
    submission: Optional[Submission]

    def to_dict(self) -> dict:
        return {
            "student": {
                "id": self.student.id,
                "studentId": self.student.student_id,
                "name": self.student.name,
                "email": self.student.email,
            },
            "submission": self.submission.to_dict() if self.submission else None,
            "grade": self.submission.grade.to_dict() if self.submission and self.submission.grade else None,
        }


def student_enrollments(course_id: int) -> list[Enrollment]:
    return (
        db.session.query(Enrollment)
        .options(joinedload(Enrollment.user))
        .filter(Enrollment.course_id == course_id, Enrollment.role_in_course == "STUDENT")
        .order_by(Enrollment.id.asc())
        .all()
    )


def resolve_authoritative(assignment: Assignment) -> list[AuthoritativeSubmission]:
    """One row per enrolled student, in enrollment order, with their latest submission."""
    latest = (
        db.session.query(
            Submission.student_id.label("student_id"),
            sa.func.max(Submission.version).label("version"),
        )
        .filter(Submission.assignment_id == assignment.id)
        .group_by(Submission.student_id)
        .subquery()
    )
    submissions = (
        db.session.query(Submission)
        .join(
            latest,
            sa.and_(
                Submission.student_id == latest.c.student_id,
                Submission.version == latest.c.version,
            ),
        )
        .filter(Submission.assignment_id == assignment.id)
        .all()
    )
    by_student = {sub.student_id: sub for sub in submissions}
    return [
        AuthoritativeSubmission(student=enrollment.user, submission=by_student.get(enrollment.user_id))
        for enrollment in student_enrollments(assignment.course_id)
    ]


def submission_history(assignment_id: int, student_id: int) -> list[Submission]:
    return (
        db.session.query(Submission)
        .filter_by(assignment_id=assignment_id, student_id=student_id)
        .order_by(Submission.version.desc())
        .all()
    )


def next_version(assignment_id: int, student_id: int) -> int:
    current = (
        db.session.query(sa.func.max(Submission.version))
        .filter_by(assignment_id=assignment_id, student_id=student_id)
        .scalar()
    )
    return (current or 0) + 1


def create_submission(
    assignment: Assignment,
    student: User,
    files: Sequence[StoredFile],
    external_link: Optional[str] = None,
) -> Submission:
    """Append a new version for (assignment, student); earlier versions stay untouched."""
    for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
        submission = Submission(
            assignment_id=assignment.id,
            student_id=student.id,
            version=next_version(assignment.id, student.id),
            files=list(files),
            external_link=external_link,
            status="submitted",
        )
        db.session.add(submission)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning(
                "Version race for assignment %s student %s (attempt %d)",
                assignment.id,
                student.id,
                attempt,
            )
            continue
        return submission
    raise VersionConflict(
        f"Could not allocate a submission version for assignment {assignment.id}"
    )


def record_grade(
    submission: Submission,
    grader: User,
    score: float,
    feedback_text: str = "",
    rubric_scores=None,
) -> Grade:
    """Create or update the single grade of ``submission``.

    The grader recorded on creation is kept when the grade is revised.
    """
    grade = submission.grade
    if grade is None:
        grade = Grade(submission_id=submission.id, grader_id=grader.id)
        db.session.add(grade)
    grade.score = score
    grade.feedback_text = feedback_text
    grade.set_rubric_scores(rubric_scores)
    try:
        db.session.commit()
    except IntegrityError:
        # Another grader created it first; apply this revision on top.
        db.session.rollback()
        grade = db.session.query(Grade).filter_by(submission_id=submission.id).one()
        grade.score = score
        grade.feedback_text = feedback_text
        grade.set_rubric_scores(rubric_scores)
        db.session.commit()
    logger.info(
        "Submission %s graded %s by user %s", submission.id, score, grader.id
    )
    return grade
