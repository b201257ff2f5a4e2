from __future__ import annotations

from flask import Blueprint, abort, jsonify
from flask_login import login_required
from flask_wtf import FlaskForm
from flask_wtf.file import MultipleFileField

from extensions import db
from models import Assignment, StoredFile
from permissions import require_course_member, require_course_staff
from services.downloads import send_stored_file
from services.storage import PathViolation, discard_uploads, save_upload, storage_root

bp = Blueprint("assignments", __name__, url_prefix="/assignments")


class MaterialForm(FlaskForm):
    files = MultipleFileField("Materials")


def _get_assignment(assignment_id: int) -> Assignment:
    assignment = db.session.get(Assignment, assignment_id)
    if not assignment:
        abort(404, description="Assignment not found")
    return assignment


def _material_rows(materials: list[StoredFile]) -> list[dict]:
    return [
        {
            "idx": idx,
            "filename": material.filename,
            "size": material.size,
            "uploadedAt": material.uploaded_at.isoformat() if material.uploaded_at else None,
        }
        for idx, material in enumerate(materials)
    ]


@bp.route("/<int:assignment_id>/materials", methods=["POST"])
@login_required
def upload_materials(assignment_id: int):
    assignment = _get_assignment(assignment_id)
    require_course_staff(assignment.course_id)

    form = MaterialForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid upload", "fields": form.errors}), 400
    uploads = [f for f in (form.files.data or []) if f and f.filename]
    if not uploads:
        return jsonify({"error": "No files uploaded"}), 400

    added = []
    try:
        for upload in uploads:
            added.append(save_upload(upload, "materials", assignment.course_id, assignment.id))
        # Reassign rather than mutate so the JSON column is flagged dirty.
        assignment.materials = [*(assignment.materials or []), *added]
        db.session.commit()
    except PathViolation:
        db.session.rollback()
        discard_uploads(added)
        abort(403, description="Illegal upload path")
    except Exception:
        db.session.rollback()
        discard_uploads(added)
        raise
    return jsonify({"materials": _material_rows(assignment.materials)}), 201


@bp.route("/<int:assignment_id>/materials")
@login_required
def list_materials(assignment_id: int):
    assignment = _get_assignment(assignment_id)
    require_course_member(assignment.course_id)
    return jsonify(_material_rows(assignment.materials or []))


@bp.route("/<int:assignment_id>/materials/<int:idx>/download")
@login_required
def download_material(assignment_id: int, idx: int):
    assignment = _get_assignment(assignment_id)
    require_course_member(assignment.course_id)
    materials = assignment.materials or []
    if idx < 0 or idx >= len(materials):
        abort(404, description="File not found")
    return send_stored_file(materials[idx], storage_root())
