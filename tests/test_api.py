import json

from conftest import GRADING_REPLY, FakeProvider, auth_headers, make_ai_client
from opvera.models.audit_log import AuditLog
from opvera.models.channel import ChannelType
from opvera.models.quiz import Quiz
from opvera.models.user import UserRole
from opvera.repositories.channel_repository import ChannelRepository, ensure_default_channels
from opvera.services.ai_client import get_ai_client
from opvera.main import app


def _quiz_payload(n=3):
    return {
        "title": "Loops",
        "topic": "python",
        "difficulty": "beginner",
        "questions": [
            {"question": f"Q{i}", "options": ["a", "b", "c"], "correctIndex": 2} for i in range(n)
        ],
    }


def test_register_login_and_me(client):
    r = client.post("/api/auth/register", json={
        "email": "New.Student@Example.com", "password": "secret123", "display_name": "New Student",
    })
    assert r.status_code == 201
    token = r.json()["access_token"]

    r = client.post("/api/auth/login", json={"email": "new.student@example.com", "password": "secret123"})
    assert r.status_code == 200

    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["role"] == "student"


def test_mentor_role_cannot_self_register(client):
    r = client.post("/api/auth/register", json={
        "email": "m@example.com", "password": "secret123", "display_name": "M", "role": "mentor",
    })
    assert r.status_code == 400


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/leaderboard").status_code == 401


def test_banned_user_gets_403(client, make_user):
    banned = make_user(banned=True)
    assert client.get("/api/auth/me", headers=auth_headers(banned)).status_code == 403


def test_student_cannot_verify_a_project(client, make_user):
    owner = make_user()
    other = make_user()
    r = client.post("/api/projects", json={"title": "Todo app"}, headers=auth_headers(owner))
    project_id = r.json()["id"]

    r = client.post(f"/api/projects/{project_id}/verify", json={}, headers=auth_headers(other))
    assert r.status_code == 403
    r = client.post(f"/api/projects/{project_id}/verify", json={}, headers=auth_headers(owner))
    assert r.status_code == 403


def test_owner_update_cannot_set_verified(client, make_user):
    owner = make_user()
    project_id = client.post("/api/projects", json={"title": "Blog"}, headers=auth_headers(owner)).json()["id"]
    r = client.patch(
        f"/api/projects/{project_id}",
        json={"title": "Blog v2", "verified": True},
        headers=auth_headers(owner),
    )
    assert r.status_code == 200
    assert r.json()["title"] == "Blog v2"
    assert r.json()["verified"] is False


def test_verify_and_revoke_move_leaderboard_points(client, db, make_user):
    student = make_user()
    mentor = make_user(UserRole.MENTOR)
    project_id = client.post("/api/projects", json={"title": "Chess"}, headers=auth_headers(student)).json()["id"]

    r = client.post(f"/api/projects/{project_id}/verify", json={"mentor_notes": "nice"}, headers=auth_headers(mentor))
    assert r.status_code == 200
    assert r.json()["points_awarded"] == 100
    me = client.get("/api/leaderboard/me", headers=auth_headers(student)).json()
    assert me["total_points"] == 100
    assert me["breakdown"]["projects"] == 100

    r = client.post(f"/api/projects/{project_id}/revoke", json={}, headers=auth_headers(mentor))
    assert r.status_code == 200
    me = client.get("/api/leaderboard/me", headers=auth_headers(student)).json()
    assert me["total_points"] == 0

    actions = [a.action for a in db.query(AuditLog).order_by(AuditLog.created_at).all()]
    assert actions == ["project.verified", "project.revoked"]


def test_assignment_submission_earns_twenty_once(client, make_user):
    student = make_user()
    headers = auth_headers(student)
    assignment_id = client.post("/api/assignments", json={"title": "Week 1"}, headers=headers).json()["id"]

    client.post(f"/api/assignments/{assignment_id}/submit", json={"submission_url": "https://git/a"}, headers=headers)
    client.post(f"/api/assignments/{assignment_id}/submit", json={"submission_url": "https://git/b"}, headers=headers)

    me = client.get("/api/leaderboard/me", headers=headers).json()
    assert me["breakdown"]["assignments"] == 20


def test_leaderboard_lists_students_by_rank(client, make_user):
    mentor = make_user(UserRole.MENTOR)
    first = make_user(user_id="aa")
    second = make_user(user_id="bb")
    for owner, count in ((second, 2), (first, 1)):
        for i in range(count):
            pid = client.post("/api/projects", json={"title": f"P{i}"}, headers=auth_headers(owner)).json()["id"]
            client.post(f"/api/projects/{pid}/verify", json={}, headers=auth_headers(mentor))

    rows = client.get("/api/leaderboard", headers=auth_headers(first)).json()
    assert [(r["user_id"], r["total_points"], r["rank"]) for r in rows] == [("bb", 200, 1), ("aa", 100, 2)]


def test_refresh_is_admin_only(client, make_user):
    student = make_user()
    admin = make_user(UserRole.ADMIN)
    assert client.post("/api/leaderboard/refresh", headers=auth_headers(student)).status_code == 403
    r = client.post("/api/leaderboard/refresh", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json() == {"refreshed": 1}


def test_quiz_attempt_flow_with_ai_feedback(client, make_user):
    mentor = make_user(UserRole.MENTOR)
    student = make_user()
    quiz = client.post("/api/quizzes", json=_quiz_payload(), headers=auth_headers(mentor)).json()

    public = client.get(f"/api/quizzes/{quiz['id']}", headers=auth_headers(student)).json()
    assert "correctIndex" not in public["questions"][0]

    attempt = client.post(f"/api/quizzes/{quiz['id']}/attempts", headers=auth_headers(student)).json()
    assert attempt["completed_at"] is None

    r = client.post(
        f"/api/quizzes/attempts/{attempt['id']}/submit",
        json={"answers": [2, 0, 2]},
        headers=auth_headers(student),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["basicScore"] == 2
    assert body["totalQuestions"] == 3
    assert body["aiGrading"]["feedback"] == "Good start."
    assert body["attempt"]["completed_at"] is not None

    again = client.post(
        f"/api/quizzes/attempts/{attempt['id']}/submit",
        json={"answers": [2, 2, 2]},
        headers=auth_headers(student),
    )
    assert again.status_code == 400
    me = client.get("/api/leaderboard/me", headers=auth_headers(student)).json()
    assert me["breakdown"]["quizzes"] == 2


def test_quiz_submission_falls_back_when_ai_is_down(client, make_user):
    app.dependency_overrides[get_ai_client] = lambda: make_ai_client(FakeProvider(TimeoutError()))
    mentor = make_user(UserRole.MENTOR)
    student = make_user()
    quiz = client.post("/api/quizzes", json=_quiz_payload(), headers=auth_headers(mentor)).json()
    attempt = client.post(f"/api/quizzes/{quiz['id']}/attempts", headers=auth_headers(student)).json()

    r = client.post(
        f"/api/quizzes/attempts/{attempt['id']}/submit",
        json={"answers": [2, 2, 2]},
        headers=auth_headers(student),
    )
    assert r.status_code == 200
    assert r.json()["aiGrading"] is None
    assert r.json()["basicScore"] == 3


def test_quiz_grading_runs_outside_a_database_transaction(client, db, make_user):
    class WatchingProvider(FakeProvider):
        def generate(self, prompt, options, timeout):
            self.open_transaction = db.in_transaction()
            return super().generate(prompt, options, timeout)

    provider = WatchingProvider(GRADING_REPLY)
    app.dependency_overrides[get_ai_client] = lambda: make_ai_client(provider)
    mentor = make_user(UserRole.MENTOR)
    student = make_user()
    quiz = client.post("/api/quizzes", json=_quiz_payload(), headers=auth_headers(mentor)).json()
    attempt = client.post(f"/api/quizzes/{quiz['id']}/attempts", headers=auth_headers(student)).json()

    r = client.post(
        f"/api/quizzes/attempts/{attempt['id']}/submit",
        json={"answers": [2, 0, 2]},
        headers=auth_headers(student),
    )
    assert r.status_code == 200
    assert r.json()["aiGrading"]["feedback"] == "Good start."
    assert provider.open_transaction is False


def test_generate_quiz_saves_ai_questions(client, db, make_user):
    reply = json.dumps([
        {"question": f"Q{i}", "options": ["a", "b"], "correctIndex": 0, "explanation": "a"} for i in range(5)
    ])
    app.dependency_overrides[get_ai_client] = lambda: make_ai_client(FakeProvider(reply))
    mentor = make_user(UserRole.MENTOR)

    r = client.post(
        "/api/quizzes/generate",
        json={"topic": "HTTP basics", "difficulty": "beginner"},
        headers=auth_headers(mentor),
    )
    assert r.status_code == 201
    body = r.json()
    assert body["ai_generated"] is True
    assert body["question_count"] == 5
    assert body["metadata"]["model"] == "fake-gemini"


def test_generate_quiz_returns_502_and_saves_nothing(client, db, make_user):
    app.dependency_overrides[get_ai_client] = lambda: make_ai_client(FakeProvider("not json"))
    mentor = make_user(UserRole.MENTOR)

    r = client.post(
        "/api/quizzes/generate",
        json={"topic": "HTTP basics", "difficulty": "beginner"},
        headers=auth_headers(mentor),
    )
    assert r.status_code == 502
    assert db.query(Quiz).count() == 0


def test_students_cannot_generate_quizzes(client, make_user):
    r = client.post("/api/quizzes/generate", json={"topic": "HTTP"}, headers=auth_headers(make_user()))
    assert r.status_code == 403


def test_chat_ai_channel_reports_ai_error(client, db, make_user):
    app.dependency_overrides[get_ai_client] = lambda: make_ai_client(FakeProvider(ConnectionError("down")))
    student = make_user()
    channel = ChannelRepository.create_channel(db, "Tutor", ChannelType.AI, [student.id], [])

    r = client.post(f"/api/chat/channels/{channel.id}/messages", json={"content": "help"}, headers=auth_headers(student))
    assert r.status_code == 200
    assert r.json()["reply"] is None
    assert r.json()["ai_error"] == "transport"

    history = client.get(f"/api/chat/channels/{channel.id}/messages", headers=auth_headers(student)).json()
    assert [m["content"] for m in history["messages"]] == ["help"]


def test_chat_membership_is_enforced(client, db, make_user):
    member = make_user()
    outsider = make_user()
    channel = ChannelRepository.create_channel(db, "Study group", ChannelType.GROUP, [member.id], [member.id])

    url = f"/api/chat/channels/{channel.id}/messages"
    assert client.post(url, json={"content": "hi"}, headers=auth_headers(outsider)).status_code == 403
    assert client.get("/api/chat/channels/nope/messages", headers=auth_headers(member)).status_code == 404
    assert client.post(url, json={"content": "hi"}, headers=auth_headers(member)).status_code == 200


def test_only_reviewers_create_channels(client, make_user):
    student = make_user()
    mentor = make_user(UserRole.MENTOR)
    body = {"name": "Cohort 1", "type": "group", "members": [student.id]}
    assert client.post("/api/chat/channels", json=body, headers=auth_headers(student)).status_code == 403
    r = client.post("/api/chat/channels", json=body, headers=auth_headers(mentor))
    assert r.status_code == 201
    assert r.json()["members"] == [mentor.id, student.id]


def test_admin_role_change_is_audited(client, db, make_user):
    admin = make_user(UserRole.ADMIN)
    student = make_user()
    r = client.patch(f"/api/users/{student.id}", json={"role": "mentor"}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["role"] == "mentor"
    log = db.query(AuditLog).filter(AuditLog.action == "user.role_changed").one()
    assert log.details == {"from": "student", "to": "mentor"}
    assert client.get("/api/users", headers=auth_headers(student)).status_code == 403


def test_student_profile_round_trip(client, make_user):
    student = make_user()
    headers = auth_headers(student)
    assert client.get("/api/users/me/student-profile", headers=headers).status_code == 404
    r = client.put("/api/users/me/student-profile", json={"college": "IIT", "cgpa": 8.5}, headers=headers)
    assert r.status_code == 200
    assert client.get("/api/users/me/student-profile", headers=headers).json()["college"] == "IIT"


def test_student_can_use_the_seeded_ai_channel(client, db, make_user):
    app.dependency_overrides[get_ai_client] = lambda: make_ai_client(FakeProvider("Happy to help!"))
    ensure_default_channels(db)
    student = make_user()

    channels = client.get("/api/chat/channels", headers=auth_headers(student)).json()
    assistant = next(c for c in channels if c["name"] == "AI Assistant")
    assert assistant["type"] == "ai"

    r = client.post(
        f"/api/chat/channels/{assistant['id']}/messages",
        json={"content": "Explain recursion"},
        headers=auth_headers(student),
    )
    assert r.status_code == 200
    assert r.json()["reply"]["content"] == "Happy to help!"


def test_ai_channel_with_members_stays_private(client, db, make_user):
    member = make_user()
    outsider = make_user()
    channel = ChannelRepository.create_channel(db, "Tutor", ChannelType.AI, [member.id], [member.id])
    r = client.get(f"/api/chat/channels/{channel.id}/messages", headers=auth_headers(outsider))
    assert r.status_code == 403
