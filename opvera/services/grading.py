"""
Quiz attempt grading.

The basic score (answers equal to correctIndex) is always computed. AI grading
adds feedback on top; when the AI call fails the result carries the basic score
only and the user never sees the failure.
"""
import json
import logging
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy.orm import Session

from opvera.models.quiz import QuizAttempt
from opvera.services import events
from opvera.services.ai_client import AIClient, AIOptions, AIUnavailableError
from opvera.services.ai_security import redact_structure
from opvera.services.ai_validation import grading_validator
from opvera.services.points import count_correct

logger = logging.getLogger(__name__)

GRADING_SYSTEM_INSTRUCTION = """You are a supportive tutor on Opvera grading a student's quiz.
You receive each question, its options, the correct option and the student's choice.

Reply with JSON only:
{"score": <number of correct answers>, "feedback": "<2-4 sentences overall>",
 "perQuestion": ["<one short note per question>", ...],
 "suggestions": ["<topic to review>", ...]}
Be encouraging and specific. Never invent questions that were not given."""

GRADING_OPTIONS = AIOptions(
    temperature=0.3,
    top_k=40,
    top_p=0.9,
    max_output_tokens=1024,
    system_instruction=GRADING_SYSTEM_INSTRUCTION,
    json_output=True,
)


def basic_score(questions: Sequence[dict], answers: Sequence[Any]) -> int:
    """Deterministic score: answers equal to the stored correctIndex."""
    return count_correct(questions, answers)


def build_grading_prompt(questions: Sequence[dict], answers: Sequence[Any]) -> str:
    items = []
    for i, q in enumerate(questions):
        chosen = answers[i] if i < len(answers) else None
        items.append({
            "number": i + 1,
            "question": q.get("question"),
            "options": q.get("options"),
            "correctIndex": q.get("correctIndex"),
            "studentIndex": chosen,
        })
    return "## Quiz answers\n" + json.dumps(redact_structure(items), indent=2) + "\n\nGrade this attempt."


def grade_answers(client: AIClient | None, questions: Sequence[dict], answers: Sequence[Any]) -> dict:
    """
    Returns {"basicScore", "correctAnswers", "totalQuestions"} plus "aiGrading" when
    the AI path succeeded. Never raises for AI failures.
    """
    correct = basic_score(questions, answers)
    result: dict[str, Any] = {
        "basicScore": correct,
        "correctAnswers": correct,
        "totalQuestions": len(questions),
    }
    if client is None or not questions:
        return result
    try:
        response = client.call(
            build_grading_prompt(questions, answers),
            GRADING_OPTIONS,
            grading_validator(len(questions)),
        )
    except AIUnavailableError as e:
        logger.warning(
            "AI grading unavailable (%s after %d attempts); falling back to basic score",
            e.kind.value, e.attempts,
        )
        return result
    result["aiGrading"] = {**response.data, "model": response.model, "attempts": response.attempts}
    return result


def submit_attempt(
    db: Session,
    attempt: QuizAttempt,
    answers: list[int | None],
    grading: dict,
) -> None:
    """
    Complete an attempt with a result from grade_answers: store answers/score/grading and
    publish the change so the leaderboard recomputes in the same transaction.
    Caller commits (or rolls back). Grade first, outside any transaction.
    """
    attempt.answers = list(answers)
    attempt.score = grading["basicScore"]
    attempt.max_score = grading["totalQuestions"]
    attempt.completed_at = datetime.utcnow()
    metadata = dict(attempt.metadata_ or {})
    metadata["gradedBy"] = "ai" if "aiGrading" in grading else "basic"
    if "aiGrading" in grading:
        metadata["aiGrading"] = grading["aiGrading"]
    attempt.metadata_ = metadata

    events.publish(db, events.SourceRecordChanged(attempt.student_id, "quiz_attempt", attempt.id))
