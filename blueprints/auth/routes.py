from flask import Blueprint, abort, jsonify
from flask_wtf import FlaskForm
from flask_wtf.csrf import generate_csrf
from wtforms import StringField, PasswordField
from wtforms.validators import DataRequired, Length
from flask_login import current_user, login_user, logout_user, login_required
import sqlalchemy as sa
from extensions import db, login_manager
from models import User

bp = Blueprint("auth", __name__, url_prefix="/auth")

class LoginForm(FlaskForm):
    identifier = StringField("Email or student id", validators=[DataRequired(), Length(max=255)])
    password = PasswordField(
        "Password",
        validators=[DataRequired(), Length(max=128, message="Password may be at most 128 characters")],
    )

@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))

@login_manager.unauthorized_handler
def unauthorized():
    abort(401, description="Login required")

@bp.route("/csrf")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})

@bp.route("/login", methods=["POST"])
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid login request", "fields": form.errors}), 400
    identifier = form.identifier.data.strip()
    user = (
        db.session.query(User)
        .filter(sa.or_(User.email == identifier, User.student_id == identifier))
        .first()
    )
    if not user or not user.is_active or not user.check_password(form.password.data):
        abort(401, description="Wrong credentials or inactive account")
    login_user(user)
    return jsonify({"user": user.to_dict()})

@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"status": "ok"})

@bp.route("/me")
@login_required
def me():
    return jsonify({"user": current_user.to_dict()})
