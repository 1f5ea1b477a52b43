"""
Points rules for the leaderboard.
- Quiz: +1 per correct answer, completed attempts only
- Assignment: +20 once submitted (submission_url set)
- Project: +100 when verified by a mentor/admin
- Challenge: +80 when verified (projects tagged "challenge")
Pure functions of the user's source rows; no DB access here.
"""
from typing import Any, Iterable, Sequence

QUIZ_CORRECT_ANSWER_POINTS = 1
ASSIGNMENT_SUBMISSION_POINTS = 20
PROJECT_VERIFIED_POINTS = 100
CHALLENGE_VERIFIED_POINTS = 80

CATEGORIES = ("quizzes", "assignments", "projects", "challenges")


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def count_correct(questions: Sequence[dict], answers: Sequence[Any]) -> int:
    """Answers that equal the stored correctIndex at the same position. Extra items on either side are ignored."""
    correct = 0
    for question, answer in zip(questions or [], answers or []):
        if not isinstance(question, dict):
            continue
        expected = question.get("correctIndex")
        if _is_index(answer) and _is_index(expected) and answer == expected:
            correct += 1
    return correct


def quiz_points(attempts: Iterable[Any]) -> int:
    """attempts: objects with .completed_at, .answers and .quiz.questions."""
    total = 0
    for attempt in attempts:
        if attempt.completed_at is None:
            continue
        total += count_correct(attempt.quiz.questions, attempt.answers) * QUIZ_CORRECT_ANSWER_POINTS
    return total


def assignment_points(assignments: Iterable[Any]) -> int:
    return sum(ASSIGNMENT_SUBMISSION_POINTS for a in assignments if a.submission_url is not None)


def project_points(projects: Iterable[Any]) -> int:
    return sum(PROJECT_VERIFIED_POINTS for p in projects if p.verified and not p.is_challenge)


def challenge_points(projects: Iterable[Any]) -> int:
    return sum(CHALLENGE_VERIFIED_POINTS for p in projects if p.verified and p.is_challenge)


def compute_breakdown(attempts: Iterable[Any], assignments: Iterable[Any], projects: Iterable[Any]) -> dict[str, int]:
    projects = list(projects)
    return {
        "quizzes": quiz_points(attempts),
        "assignments": assignment_points(assignments),
        "projects": project_points(projects),
        "challenges": challenge_points(projects),
    }


def total_points(breakdown: dict[str, int]) -> int:
    return sum(breakdown.get(c, 0) for c in CATEGORIES)
