from conftest import GRADING_REPLY, FakeProvider, make_ai_client
from opvera.models.leaderboard import LeaderboardEntry
from opvera.models.quiz import Quiz, QuizAttempt
from opvera.models.user import UserRole
from opvera.services.grading import basic_score, build_grading_prompt, grade_answers, submit_attempt

QUESTIONS = [
    {"question": "Capital of France?", "options": ["Paris", "Rome"], "correctIndex": 0},
    {"question": "2 + 2?", "options": ["3", "4"], "correctIndex": 1},
]


def test_basic_score_counts_matching_indices():
    assert basic_score(QUESTIONS, [0, 1]) == 2
    assert basic_score(QUESTIONS, [1, None]) == 0


def test_grading_prompt_redacts_student_text():
    questions = [{"question": "Email me at kid@example.com", "options": ["a", "b"], "correctIndex": 0}]
    prompt = build_grading_prompt(questions, [0])
    assert "kid@example.com" not in prompt
    assert '"studentIndex": 0' in prompt


def test_ai_grading_is_attached_when_available():
    provider = FakeProvider(GRADING_REPLY)
    result = grade_answers(make_ai_client(provider), QUESTIONS, [0, 0])
    assert result["basicScore"] == 1
    assert result["totalQuestions"] == 2
    assert result["aiGrading"]["feedback"] == "Good start."
    assert result["aiGrading"]["model"] == "fake-gemini"
    assert result["aiGrading"]["attempts"] == 1


def test_grading_falls_back_to_basic_score_when_ai_times_out():
    provider = FakeProvider(TimeoutError("deadline exceeded"))
    result = grade_answers(make_ai_client(provider), QUESTIONS, [0, 1])
    assert "aiGrading" not in result
    assert result["basicScore"] == 2
    assert result["correctAnswers"] == 2
    assert len(provider.calls) == 3
    assert set(result) == {"basicScore", "correctAnswers", "totalQuestions"}


def test_grading_without_client_uses_basic_score():
    assert grade_answers(None, QUESTIONS, [0]) == {"basicScore": 1, "correctAnswers": 1, "totalQuestions": 2}


def test_submit_attempt_completes_and_updates_leaderboard(db, make_user):
    student = make_user()
    mentor = make_user(UserRole.MENTOR)
    quiz = Quiz(created_by=mentor.id, title="Basics", questions=QUESTIONS)
    db.add(quiz)
    db.flush()
    attempt = QuizAttempt(quiz_id=quiz.id, student_id=student.id)
    db.add(attempt)
    db.flush()

    provider = FakeProvider(TimeoutError())
    grading = grade_answers(make_ai_client(provider), quiz.questions, [0, 1])
    submit_attempt(db, attempt, [0, 1], grading)
    db.commit()

    assert grading["basicScore"] == 2
    assert attempt.completed_at is not None
    assert attempt.score == 2
    assert attempt.max_score == 2
    assert attempt.metadata_ == {"gradedBy": "basic"}
    assert db.get(LeaderboardEntry, student.id).breakdown["quizzes"] == 2
