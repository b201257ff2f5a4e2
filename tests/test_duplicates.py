import hashlib

from extensions import db
from models import Assignment, StoredFile, Submission
from services.duplicates import detect_duplicates

PDF = b"%PDF-1.7 identical report body"


def _detect(app, assignment_id, upload_dir):
    with app.app_context():
        report = detect_duplicates(db.session.get(Assignment, assignment_id), str(upload_dir))
        return report.to_dict()


def test_identical_files_under_different_names_are_grouped(app, course, add_submission, upload_dir):
    aid = course["assignment_id"]
    x = add_submission(aid, course["s001"], [("report.pdf", PDF)])
    y = add_submission(aid, course["s002"], [("final.pdf", PDF)])

    result = _detect(app, aid, upload_dir)

    assert result["totalFiles"] == 2
    assert len(result["matches"]) == 1
    group = result["matches"][0]
    assert group["digest"] == hashlib.sha256(PDF).hexdigest()
    assert [m["submissionId"] for m in group["members"]] == [x, y]
    assert [m["student"]["studentId"] for m in group["members"]] == ["s001", "s002"]
    assert [m["filename"] for m in group["members"]] == ["report.pdf", "final.pdf"]
    assert all(m["digest"] == group["digest"] for m in group["members"])


def test_unique_files_produce_no_groups(app, course, add_submission, upload_dir):
    aid = course["assignment_id"]
    add_submission(aid, course["s001"], [("a.txt", b"one")])
    add_submission(aid, course["s002"], [("a.txt", b"two")])

    result = _detect(app, aid, upload_dir)
    assert result == {"matches": [], "totalFiles": 2, "skippedFiles": 0}


def test_superseded_versions_are_ignored(app, course, add_submission, upload_dir):
    aid = course["assignment_id"]
    add_submission(aid, course["s001"], [("copy.pdf", PDF)])
    add_submission(aid, course["s001"], [("own.pdf", b"rewritten on my own")])
    add_submission(aid, course["s002"], [("final.pdf", PDF)])

    result = _detect(app, aid, upload_dir)
    assert result["totalFiles"] == 2
    assert result["matches"] == []


def test_groups_follow_first_seen_order(app, course, add_submission, upload_dir):
    aid = course["assignment_id"]
    add_submission(aid, course["s001"], [("a.txt", b"AAA"), ("b.txt", b"BBB")])
    add_submission(aid, course["s002"], [("b.txt", b"BBB")])
    add_submission(aid, course["s003"], [("a.txt", b"AAA"), ("c.txt", b"BBB")])

    result = _detect(app, aid, upload_dir)
    digests = [g["digest"] for g in result["matches"]]
    assert digests == [hashlib.sha256(b"AAA").hexdigest(), hashlib.sha256(b"BBB").hexdigest()]
    assert [len(g["members"]) for g in result["matches"]] == [2, 3]
    assert result["totalFiles"] == 5


def test_same_student_duplicate_files_are_reported(app, course, add_submission, upload_dir):
    aid = course["assignment_id"]
    add_submission(aid, course["s001"], [("a.txt", b"same"), ("b.txt", b"same")])
    result = _detect(app, aid, upload_dir)
    assert len(result["matches"]) == 1
    assert len(result["matches"][0]["members"]) == 2


def test_detection_is_idempotent(app, course, add_submission, upload_dir):
    aid = course["assignment_id"]
    add_submission(aid, course["s001"], [("a.txt", b"x"), ("b.txt", b"y")])
    add_submission(aid, course["s002"], [("b.txt", b"y")])
    add_submission(aid, course["s003"], [("a.txt", b"x")])

    assert _detect(app, aid, upload_dir) == _detect(app, aid, upload_dir)


def test_missing_and_escaping_files_are_skipped(app, course, add_submission, upload_dir):
    aid = course["assignment_id"]
    add_submission(aid, course["s001"], [("report.pdf", PDF)])
    add_submission(aid, course["s002"], [("final.pdf", PDF)])
    with app.app_context():
        db.session.add(
            Submission(
                assignment_id=aid,
                student_id=course["s003"],
                version=1,
                files=[
                    StoredFile("gone.pdf", "seed/missing.pdf", 10),
                    StoredFile("passwd", "../../etc/passwd", 10),
                ],
            )
        )
        db.session.commit()

    result = _detect(app, aid, upload_dir)
    assert result["totalFiles"] == 4
    assert result["skippedFiles"] == 2
    assert len(result["matches"]) == 1


def test_assignment_without_submissions(app, course, upload_dir):
    result = _detect(app, course["assignment_id"], upload_dir)
    assert result == {"matches": [], "totalFiles": 0, "skippedFiles": 0}


def test_plagiarism_check_endpoint(teacher_client, course, add_submission):
    aid = course["assignment_id"]
    add_submission(aid, course["s001"], [("report.pdf", PDF)])
    add_submission(aid, course["s002"], [("final.pdf", PDF)])

    response = teacher_client.post(f"/assignments/{aid}/plagiarism-check")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["totalFiles"] == 2
    assert len(payload["matches"]) == 1
    assert len(payload["matches"][0]["members"]) == 2


def test_plagiarism_check_allows_ta_and_admin(login_as, course):
    aid = course["assignment_id"]
    for identifier in ("chen@example.com", "root@example.com"):
        client = login_as(identifier)
        response = client.post(f"/assignments/{aid}/plagiarism-check")
        assert response.status_code == 200
        assert response.get_json() == {"matches": [], "totalFiles": 0, "skippedFiles": 0}


def test_plagiarism_check_forbidden_for_students(login_as, course):
    client = login_as("s001@example.com")
    response = client.post(f"/assignments/{course['assignment_id']}/plagiarism-check")
    assert response.status_code == 403
    assert "matches" not in response.get_json()


def test_plagiarism_check_unknown_assignment(teacher_client):
    response = teacher_client.post("/assignments/9999/plagiarism-check")
    assert response.status_code == 404


def test_plagiarism_check_requires_login(client, course):
    response = client.post(f"/assignments/{course['assignment_id']}/plagiarism-check")
    assert response.status_code == 401


def test_plagiarism_check_allows_owner_and_course_teacher_with_student_role(login_as, course):
    aid = course["assignment_id"]
    for identifier in ("zhou@example.com", "qian@example.com"):
        client = login_as(identifier)
        response = client.post(f"/assignments/{aid}/plagiarism-check")
        assert response.status_code == 200
