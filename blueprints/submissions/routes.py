from __future__ import annotations

import json
import logging

from flask import (
    Blueprint,
    Response,
    abort,
    current_app,
    jsonify,
)
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from flask_wtf.file import MultipleFileField
from wtforms import FloatField, StringField, TextAreaField
from wtforms.validators import InputRequired, Length, NumberRange, Optional, URL, ValidationError

from extensions import db
from models import Assignment, Submission
from permissions import is_course_staff, require_course_member, require_course_staff
from services.archive import export_filenames, plan_export, stream_archive
from services.downloads import apply_download_headers, send_stored_file
from services.duplicates import detect_duplicates
from services.storage import PathViolation, discard_uploads, save_upload, storage_root
from services.submissions import (
    VersionConflict,
    create_submission,
    record_grade,
    resolve_authoritative,
    submission_history,
)

logger = logging.getLogger(__name__)

bp = Blueprint("submissions", __name__)


class SubmissionForm(FlaskForm):
    files = MultipleFileField("Files")
    external_link = StringField(
        "External link",
        validators=[Optional(), URL(message="Enter a valid URL"), Length(max=1024)],
    )


class GradeForm(FlaskForm):
    score = FloatField("Score", validators=[InputRequired(), NumberRange(min=0)])
    feedback_text = TextAreaField("Feedback", validators=[Optional(), Length(max=10000)])
    rubric_scores = StringField("Rubric scores (JSON)", validators=[Optional()])

    def validate_rubric_scores(self, field):
        if not field.data:
            return
        try:
            value = json.loads(field.data)
        except json.JSONDecodeError as exc:
            raise ValidationError("Rubric scores must be valid JSON") from exc
        if not isinstance(value, (dict, list)):
            raise ValidationError("Rubric scores must be a JSON object or list")


def _get_assignment(assignment_id: int) -> Assignment:
    assignment = db.session.get(Assignment, assignment_id)
    if not assignment:
        abort(404, description="Assignment not found")
    return assignment


def _get_visible_submission(submission_id: int) -> Submission:
    submission = db.session.get(Submission, submission_id)
    if not submission:
        abort(404, description="Submission not found")
    is_owner = submission.student_id == current_user.id
    if not is_owner and not is_course_staff(current_user, submission.assignment.course_id):
        abort(403, description="Not allowed to view this submission")
    return submission


@bp.route("/assignments/<int:assignment_id>/submissions", methods=["POST"])
@login_required
def submit(assignment_id: int):
    assignment = _get_assignment(assignment_id)
    require_course_member(assignment.course_id, allow_admin=False)

    form = SubmissionForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid submission", "fields": form.errors}), 400

    uploads = [f for f in (form.files.data or []) if f and f.filename]
    external_link = (form.external_link.data or "").strip() or None
    if not uploads and not external_link:
        return jsonify({"error": "Attach at least one file or an external link"}), 400

    # Files written here are removed again unless the submission row commits.
    stored = []
    try:
        for upload in uploads:
            stored.append(
                save_upload(upload, assignment.course_id, assignment.id, current_user.id)
            )
        submission = create_submission(assignment, current_user, stored, external_link)
    except PathViolation:
        discard_uploads(stored)
        abort(403, description="Illegal upload path")
    except VersionConflict as exc:
        discard_uploads(stored)
        abort(409, description=str(exc))
    except Exception:
        discard_uploads(stored)
        raise
    logger.info(
        "Student %s submitted version %s for assignment %s (%d files)",
        current_user.id,
        submission.version,
        assignment.id,
        len(stored),
    )
    return jsonify({"submission": submission.to_dict()}), 201


@bp.route("/assignments/<int:assignment_id>/my-submissions")
@login_required
def my_submissions(assignment_id: int):
    assignment = _get_assignment(assignment_id)
    history = submission_history(assignment.id, current_user.id)
    return jsonify([submission.to_dict() for submission in history])


@bp.route("/assignments/<int:assignment_id>/submissions")
@login_required
def latest_submissions(assignment_id: int):
    assignment = _get_assignment(assignment_id)
    require_course_staff(assignment.course_id)
    return jsonify([row.to_dict() for row in resolve_authoritative(assignment)])


@bp.route("/submissions/<int:submission_id>/files")
@login_required
def submission_files(submission_id: int):
    submission = _get_visible_submission(submission_id)
    return jsonify(submission.to_dict()["files"])


@bp.route("/submissions/<int:submission_id>/files/<int:idx>/download")
@login_required
def download_submission_file(submission_id: int, idx: int):
    submission = _get_visible_submission(submission_id)
    files = submission.files or []
    if idx < 0 or idx >= len(files):
        abort(404, description="File not found")
    return send_stored_file(files[idx], storage_root())


@bp.route("/submissions/<int:submission_id>/grade", methods=["POST"])
@login_required
def grade_submission(submission_id: int):
    submission = db.session.get(Submission, submission_id)
    if not submission:
        abort(404, description="Submission not found")
    require_course_staff(submission.assignment.course_id)

    form = GradeForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid grade", "fields": form.errors}), 400

    grade = record_grade(
        submission,
        current_user,
        form.score.data,
        (form.feedback_text.data or "").strip(),
        json.loads(form.rubric_scores.data) if form.rubric_scores.data else None,
    )
    return jsonify({"grade": grade.to_dict()})


@bp.route("/assignments/<int:assignment_id>/plagiarism-check", methods=["POST"])
@login_required
def plagiarism_check(assignment_id: int):
    assignment = _get_assignment(assignment_id)
    require_course_staff(assignment.course_id)
    report = detect_duplicates(
        assignment,
        storage_root(),
        chunk_size=current_app.config["HASH_CHUNK_SIZE"],
    )
    return jsonify(report.to_dict())


@bp.route("/assignments/<int:assignment_id>/submissions/export")
@login_required
def export_submissions(assignment_id: int):
    assignment = _get_assignment(assignment_id)
    require_course_staff(assignment.course_id)

    entries = plan_export(assignment, storage_root())
    logger.info(
        "User %s exporting %d files for assignment %s",
        current_user.id,
        len(entries),
        assignment.id,
    )
    filename, ascii_name = export_filenames(assignment)
    response = Response(
        stream_archive(entries, current_app.config["EXPORT_CHUNK_SIZE"]),
        mimetype="application/zip",
    )
    return apply_download_headers(response, filename, ascii_name)
