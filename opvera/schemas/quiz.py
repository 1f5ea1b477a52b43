from datetime import datetime
from pydantic import BaseModel, Field, model_validator
from opvera.models.quiz import QuizDifficulty


class QuizQuestion(BaseModel):
    question: str = Field(..., min_length=1)
    options: list[str] = Field(..., min_length=2)
    correctIndex: int = Field(..., ge=0)
    explanation: str = ""

    @model_validator(mode="after")
    def _index_in_range(self):
        if self.correctIndex >= len(self.options):
            raise ValueError("correctIndex out of range")
        return self


class PublicQuizQuestion(BaseModel):
    """Question as shown to students while attempting (no answer key)."""
    question: str
    options: list[str]


class QuizCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    questions: list[QuizQuestion] = Field(..., min_length=1)
    difficulty: QuizDifficulty | None = None
    topic: str | None = None


class QuizGenerateRequest(BaseModel):
    topic: str = Field(..., min_length=2, max_length=200)
    difficulty: QuizDifficulty = QuizDifficulty.BEGINNER
    title: str | None = Field(None, max_length=200)


class QuizSummary(BaseModel):
    id: str
    title: str
    description: str | None
    difficulty: str | None
    topic: str | None
    ai_generated: bool
    question_count: int
    created_at: datetime


class QuizDetail(QuizSummary):
    questions: list[PublicQuizQuestion]


class QuizAuthorDetail(QuizSummary):
    """Full quiz including answer key (creator, mentors, admins)."""
    questions: list[QuizQuestion]
    metadata: dict = {}


class AttemptSubmit(BaseModel):
    answers: list[int | None]


class AttemptResponse(BaseModel):
    id: str
    quiz_id: str
    student_id: str
    answers: list[int | None]
    score: int
    max_score: int
    completed_at: datetime | None
    metadata: dict = {}
    created_at: datetime


class AiGrading(BaseModel):
    score: int
    feedback: str
    perQuestion: list[str] = []
    suggestions: list[str] = []
    model: str | None = None
    attempts: int


class GradingResponse(BaseModel):
    attempt: AttemptResponse
    aiGrading: AiGrading | None = None
    basicScore: int
    correctAnswers: int
    totalQuestions: int
