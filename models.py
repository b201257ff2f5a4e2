from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from passlib.hash import pbkdf2_sha256
from flask_login import UserMixin
from sqlalchemy.types import TypeDecorator
from extensions import db
import json
import os


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


GLOBAL_ROLES = ("ADMIN", "TEACHER", "TA", "STUDENT")
COURSE_ROLES = ("OWNER", "TEACHER", "TA", "STUDENT")
STAFF_COURSE_ROLES = ("OWNER", "TEACHER", "TA")


@dataclass(frozen=True)
class StoredFile:
    """A file kept in the upload storage, referenced from a JSON column."""

    filename: str
    path: str
    size: int = 0
    uploaded_at: Optional[datetime] = None

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1]

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "path": self.path,
            "size": self.size,
            "uploadedAt": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }

    @classmethod
    def from_dict(cls, raw) -> Optional["StoredFile"]:
        if not isinstance(raw, dict):
            return None
        filename = raw.get("filename")
        path = raw.get("path")
        if not isinstance(filename, str) or not isinstance(path, str) or not path:
            return None
        try:
            size = int(raw.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        uploaded_at = None
        stamp = raw.get("uploadedAt")
        if isinstance(stamp, str):
            try:
                uploaded_at = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
            except ValueError:
                uploaded_at = None
        return cls(filename=filename, path=path, size=size, uploaded_at=uploaded_at)

    @classmethod
    def load_list(cls, blob) -> list["StoredFile"]:
        # Missing or malformed columns read back as "no files".
        if not blob:
            return []
        if isinstance(blob, (str, bytes)):
            try:
                blob = json.loads(blob)
            except (json.JSONDecodeError, UnicodeDecodeError):
                return []
        if not isinstance(blob, list):
            return []
        files = (cls.from_dict(item) for item in blob)
        return [f for f in files if f is not None]


class StoredFileList(TypeDecorator):
    impl = db.Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if not value:
            return None
        return json.dumps([f.to_dict() for f in value], ensure_ascii=False)

    def process_result_value(self, value, dialect):
        return StoredFile.load_list(value)


class User(UserMixin, db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    name       = db.Column(db.String(120), nullable=False)
    email      = db.Column(db.String(255), unique=True, index=True)
    student_id = db.Column(db.String(64), unique=True, index=True)
    role       = db.Column(db.String(20), nullable=False, default="STUDENT")
    password_hash = db.Column(db.String(255), nullable=False)
    is_active  = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    enrollments = db.relationship(
        "Enrollment",
        cascade="all, delete-orphan",
        back_populates="user",
    )
    submissions = db.relationship(
        "Submission",
        cascade="all, delete-orphan",
        back_populates="student",
    )

    def set_password(self, raw):
        if raw is None:
            raise ValueError("Password is missing")
        try:
            raw.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise ValueError("Invalid password") from exc
        self.password_hash = pbkdf2_sha256.hash(raw)

    def check_password(self, raw):
        if raw is None:
            return False
        try:
            raw.encode("utf-8")
        except UnicodeEncodeError:
            return False
        try:
            return pbkdf2_sha256.verify(raw, self.password_hash)
        except ValueError:
            return False

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "studentId": self.student_id,
            "email": self.email,
            "role": self.role,
        }


class Course(db.Model):
    __tablename__ = "courses"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    enrollments = db.relationship(
        "Enrollment",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="Enrollment.id",
    )
    assignments = db.relationship(
        "Assignment",
        back_populates="course",
        cascade="all, delete-orphan",
    )


class Enrollment(db.Model):
    __tablename__ = "enrollments"
    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey("courses.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    role_in_course = db.Column(db.String(20), nullable=False, default="STUDENT")

    course = db.relationship("Course", back_populates="enrollments")
    user = db.relationship("User", back_populates="enrollments")

    __table_args__ = (
        db.UniqueConstraint("course_id", "user_id", name="uq_enrollment_course_user"),
    )


class Assignment(db.Model):
    __tablename__ = "assignments"

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey("courses.id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    due_at = db.Column(db.DateTime(timezone=True))
    materials = db.Column(StoredFileList, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    course = db.relationship("Course", back_populates="assignments")
    submissions = db.relationship(
        "Submission",
        back_populates="assignment",
        cascade="all, delete-orphan",
    )


class Submission(db.Model):
    __tablename__ = "submissions"

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("assignments.id"), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    files = db.Column(StoredFileList, default=list)
    external_link = db.Column(db.String(1024))
    status = db.Column(db.String(20), nullable=False, default="submitted")
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    assignment = db.relationship("Assignment", back_populates="submissions")
    student = db.relationship("User", back_populates="submissions")
    grade = db.relationship(
        "Grade",
        back_populates="submission",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint(
            "assignment_id", "student_id", "version", name="uq_submission_version"
        ),
        db.Index("ix_submission_assignment_student", "assignment_id", "student_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "version": self.version,
            "status": self.status,
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
            "files": [
                {"idx": idx, "filename": f.filename, "size": f.size}
                for idx, f in enumerate(self.files or [])
            ],
            "externalLink": self.external_link,
            "grade": self.grade.to_dict() if self.grade else None,
        }


class Grade(db.Model):
    __tablename__ = "grades"

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.Integer, db.ForeignKey("submissions.id"), nullable=False, unique=True
    )
    grader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    score = db.Column(db.Float, nullable=False, default=0)
    feedback_text = db.Column(db.Text)
    rubric_scores_json = db.Column(db.Text)
    graded_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    submission = db.relationship("Submission", back_populates="grade")
    grader = db.relationship("User")

    def get_rubric_scores(self):
        if not self.rubric_scores_json:
            return None
        try:
            return json.loads(self.rubric_scores_json)
        except json.JSONDecodeError:
            return None

    def set_rubric_scores(self, value):
        self.rubric_scores_json = json.dumps(value, ensure_ascii=False) if value is not None else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submissionId": self.submission_id,
            "graderId": self.grader_id,
            "score": self.score,
            "feedbackText": self.feedback_text or "",
            "rubricScores": self.get_rubric_scores(),
            "gradedAt": self.graded_at.isoformat() if self.graded_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
