import itertools
import os
import pytest


@pytest.fixture(scope="session", autouse=True)
def _set_env():
    os.environ.setdefault("FLASK_DEBUG", "0")
    os.environ.setdefault("SECRET_KEY", "test-secret")
    os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite:///:memory:")
    os.environ.setdefault("LOG_LEVEL", "DEBUG")
    yield


@pytest.fixture()
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture()
def app(upload_dir):
    from app import create_app
    from extensions import db

    app = create_app()
    app.config.update(WTF_CSRF_ENABLED=False, UPLOAD_DIR=str(upload_dir), TESTING=True)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


PASSWORD = "Password123!"


def _make_user(name, role, email=None, student_id=None):
    from models import User

    user = User(name=name, role=role, email=email, student_id=student_id, is_active=True)
    user.set_password(PASSWORD)
    return user


@pytest.fixture()
def course(app):
    """A course with staff in every course role, three students and one assignment.

    Zhou owns the course and Qian, a student globally, teaches in it.
    Students are enrolled in the order s001, s002, s003.
    """
    from extensions import db
    from models import Assignment, Course, Enrollment

    with app.app_context():
        course = Course(code="CS101", name="Intro to Programming")
        teacher = _make_user("Wang", "TEACHER", email="wang@example.com")
        ta = _make_user("Chen", "TA", email="chen@example.com")
        owner = _make_user("Zhou", "TEACHER", email="zhou@example.com")
        tutor = _make_user("Qian", "STUDENT", email="qian@example.com", student_id="g042")
        admin = _make_user("Root", "ADMIN", email="root@example.com")
        s1 = _make_user("Li", "STUDENT", email="s001@example.com", student_id="s001")
        s2 = _make_user("Zhao", "STUDENT", email="s002@example.com", student_id="s002")
        s3 = _make_user("Sun", "STUDENT", email="s003@example.com", student_id="s003")
        outsider = _make_user("Ma", "STUDENT", email="s999@example.com", student_id="s999")
        db.session.add_all([course, teacher, ta, owner, tutor, admin, s1, s2, s3, outsider])
        db.session.flush()
        db.session.add_all(
            [
                Enrollment(course=course, user=teacher, role_in_course="TEACHER"),
                Enrollment(course=course, user=ta, role_in_course="TA"),
                Enrollment(course=course, user=owner, role_in_course="OWNER"),
                Enrollment(course=course, user=tutor, role_in_course="TEACHER"),
                Enrollment(course=course, user=s1, role_in_course="STUDENT"),
                Enrollment(course=course, user=s2, role_in_course="STUDENT"),
                Enrollment(course=course, user=s3, role_in_course="STUDENT"),
            ]
        )
        assignment = Assignment(course=course, title="Lab 1")
        db.session.add(assignment)
        db.session.commit()
        return {
            "course_id": course.id,
            "assignment_id": assignment.id,
            "teacher": teacher.id,
            "ta": ta.id,
            "owner": owner.id,
            "tutor": tutor.id,
            "admin": admin.id,
            "s001": s1.id,
            "s002": s2.id,
            "s003": s3.id,
            "outsider": outsider.id,
        }


def _login(client, identifier, password=PASSWORD):
    response = client.post("/auth/login", data={"identifier": identifier, "password": password})
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture()
def login_as(client, course):
    def _as(identifier):
        return _login(client, identifier)

    return _as


@pytest.fixture()
def teacher_client(login_as):
    return login_as("wang@example.com")


@pytest.fixture()
def add_submission(app, upload_dir):
    """Store files on disk and append a submission version for a student."""
    from extensions import db
    from models import StoredFile, Submission
    from services.submissions import next_version

    counter = itertools.count(1)

    def _add(assignment_id, student_id, files, version=None):
        stored = []
        for filename, content in files:
            relative = os.path.join("seed", str(student_id), f"{next(counter)}-{filename}")
            target = upload_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            stored.append(StoredFile(filename=filename, path=relative, size=len(content)))
        with app.app_context():
            submission = Submission(
                assignment_id=assignment_id,
                student_id=student_id,
                version=version or next_version(assignment_id, student_id),
                files=stored,
            )
            db.session.add(submission)
            db.session.commit()
            return submission.id

    return _add
