from flask import abort
from flask_login import current_user
from extensions import db
from models import Enrollment, STAFF_COURSE_ROLES


def course_enrollment(user, course_id):
    return (
        db.session.query(Enrollment)
        .filter_by(course_id=course_id, user_id=user.id)
        .first()
    )


def is_course_staff(user, course_id):
    """Global admins, or course members enrolled as OWNER, TEACHER or TA."""
    if user.is_admin:
        return True
    enrollment = course_enrollment(user, course_id)
    return enrollment is not None and enrollment.role_in_course in STAFF_COURSE_ROLES


def require_course_staff(course_id):
    if not is_course_staff(current_user, course_id):
        abort(403, description="Course staff role required")


def require_course_member(course_id, allow_admin=True):
    if allow_admin and current_user.is_admin:
        return
    if course_enrollment(current_user, course_id) is None:
        abort(403, description="Not enrolled in this course")
