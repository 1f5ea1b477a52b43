"""
Quizzes and attempts.
- POST /api/quizzes/generate: AI-generated quiz (mentor/admin); 502 when the AI is unavailable.
- POST /api/quizzes/{id}/attempts: start an attempt (in progress, no points yet).
- POST /api/quizzes/attempts/{id}/submit: complete + grade. AI feedback when available,
  basic score otherwise; leaderboard recomputed in the same transaction.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from opvera.auth import get_current_user, get_current_user_reviewer
from opvera.database import get_db
from opvera.models.quiz import Quiz, QuizAttempt, QuizDifficulty
from opvera.models.user import User, UserRole
from opvera.schemas.quiz import (
    AttemptResponse,
    AttemptSubmit,
    GradingResponse,
    PublicQuizQuestion,
    QuizAuthorDetail,
    QuizCreate,
    QuizDetail,
    QuizGenerateRequest,
    QuizSummary,
)
from opvera.services import events
from opvera.services.ai_client import AIClient, AIUnavailableError, get_ai_client
from opvera.services.grading import grade_answers, submit_attempt
from opvera.services.quiz_generation import generate_quiz

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])


def _summary_fields(quiz: Quiz) -> dict:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "difficulty": quiz.difficulty,
        "topic": quiz.topic,
        "ai_generated": quiz.ai_generated,
        "question_count": len(quiz.questions or []),
        "created_at": quiz.created_at,
    }


def _author_detail(quiz: Quiz) -> QuizAuthorDetail:
    return QuizAuthorDetail(**_summary_fields(quiz), questions=quiz.questions or [], metadata=quiz.metadata_ or {})


def _attempt_out(attempt: QuizAttempt) -> AttemptResponse:
    return AttemptResponse(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        student_id=attempt.student_id,
        answers=attempt.answers or [],
        score=attempt.score,
        max_score=attempt.max_score,
        completed_at=attempt.completed_at,
        metadata=attempt.metadata_ or {},
        created_at=attempt.created_at,
    )


def _get_quiz(db: Session, quiz_id: str) -> Quiz:
    quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
    if not quiz:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz not found")
    return quiz


@router.get("", response_model=list[QuizSummary])
def list_quizzes(
    topic: str | None = None,
    difficulty: QuizDifficulty | None = None,
    _user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    q = db.query(Quiz).order_by(Quiz.created_at.desc())
    if topic:
        q = q.filter(Quiz.topic == topic)
    if difficulty is not None:
        q = q.filter(Quiz.difficulty == difficulty.value)
    return [QuizSummary(**_summary_fields(x)) for x in q.all()]


@router.post("", response_model=QuizAuthorDetail, status_code=status.HTTP_201_CREATED)
def create_quiz(
    body: QuizCreate,
    author: User = Depends(get_current_user_reviewer),
    db: Session = Depends(get_db),
):
    """Authored quiz (mentor/admin)."""
    quiz = Quiz(
        created_by=author.id,
        title=body.title,
        description=body.description,
        questions=[q.model_dump() for q in body.questions],
        difficulty=body.difficulty.value if body.difficulty else None,
        topic=body.topic,
        ai_generated=False,
    )
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    return _author_detail(quiz)


@router.post("/generate", response_model=QuizAuthorDetail, status_code=status.HTTP_201_CREATED)
def generate_ai_quiz(
    body: QuizGenerateRequest,
    author: User = Depends(get_current_user_reviewer),
    db: Session = Depends(get_db),
    ai: AIClient = Depends(get_ai_client),
):
    """Generate 5 questions with Gemini and save them as a quiz. Nothing is saved when generation fails."""
    try:
        generated = generate_quiz(ai, body.topic, body.difficulty)
    except AIUnavailableError as e:
        logger.exception("AI quiz generation failed")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="AI service temporarily unavailable. Please try again later.",
        ) from e

    quiz = Quiz(
        created_by=author.id,
        title=body.title or f"{body.topic.strip()} quiz",
        description=f"AI-generated {body.difficulty.value} quiz on {body.topic.strip()}",
        questions=generated["questions"],
        difficulty=body.difficulty.value,
        topic=body.topic.strip(),
        ai_generated=True,
        metadata_=generated["metadata"],
    )
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    return _author_detail(quiz)


@router.get("/attempts/me", response_model=list[AttemptResponse])
def list_my_attempts(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.student_id == user.id)
        .order_by(QuizAttempt.created_at.desc())
        .all()
    )
    return [_attempt_out(a) for a in rows]


@router.post("/attempts/{attempt_id}/submit", response_model=GradingResponse)
def submit_quiz_attempt(
    attempt_id: str,
    body: AttemptSubmit,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ai: AIClient = Depends(get_ai_client),
):
    attempt = db.query(QuizAttempt).filter(QuizAttempt.id == attempt_id).first()
    if not attempt or attempt.student_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found")
    if attempt.completed_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attempt already submitted")
    quiz = _get_quiz(db, attempt.quiz_id)
    if len(body.answers) > len(quiz.questions or []):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="More answers than questions")

    questions = list(quiz.questions or [])
    # End the read transaction: AI grading can take several timeouts plus backoff
    db.commit()
    grading = grade_answers(ai, questions, body.answers)

    attempt = db.query(QuizAttempt).filter(QuizAttempt.id == attempt_id).with_for_update().one()
    if attempt.completed_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attempt already submitted")
    submit_attempt(db, attempt, body.answers, grading)
    db.commit()
    db.refresh(attempt)
    return GradingResponse(
        attempt=_attempt_out(attempt),
        aiGrading=grading.get("aiGrading"),
        basicScore=grading["basicScore"],
        correctAnswers=grading["correctAnswers"],
        totalQuestions=grading["totalQuestions"],
    )


@router.get("/{quiz_id}")
def get_quiz(
    quiz_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Students get questions without the answer key; the author, mentors and admins get everything."""
    quiz = _get_quiz(db, quiz_id)
    if user.is_reviewer or quiz.created_by == user.id:
        return _author_detail(quiz)
    return QuizDetail(
        **_summary_fields(quiz),
        questions=[PublicQuizQuestion(question=q["question"], options=q["options"]) for q in quiz.questions or []],
    )


@router.post("/{quiz_id}/attempts", response_model=AttemptResponse, status_code=status.HTTP_201_CREATED)
def start_attempt(
    quiz_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if user.role != UserRole.STUDENT.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only students can attempt quizzes")
    quiz = _get_quiz(db, quiz_id)
    attempt = QuizAttempt(quiz_id=quiz.id, student_id=user.id, max_score=len(quiz.questions or []))
    db.add(attempt)
    db.flush()
    events.publish(db, events.SourceRecordChanged(user.id, "quiz_attempt", attempt.id))
    db.commit()
    db.refresh(attempt)
    return _attempt_out(attempt)
