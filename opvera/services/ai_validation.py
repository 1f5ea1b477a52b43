"""
Parse and validate structured AI output. Every failure raises AIResponseInvalid,
which AIClient counts as a failed attempt.
"""
import json
import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from opvera.services.ai_client import AIResponseInvalid, FailureKind

QUIZ_QUESTION_COUNT = 5

_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.S | re.I)


def parse_json_payload(text: str) -> Any:
    """JSON body of a model reply; a surrounding ```json fence is tolerated."""
    if not text or not text.strip():
        raise AIResponseInvalid("Empty response", kind=FailureKind.MALFORMED)
    match = _FENCE.match(text)
    body = match.group(1) if match else text.strip()
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise AIResponseInvalid(f"Response is not valid JSON: {e}", kind=FailureKind.MALFORMED) from e


# ---- Quiz generation ----


class GeneratedQuestion(BaseModel):
    question: str = Field(..., min_length=1)
    options: list[str] = Field(..., min_length=2)
    correctIndex: int
    explanation: str = ""

    @field_validator("correctIndex", mode="before")
    @classmethod
    def _strict_int(cls, v):
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError("correctIndex must be an integer")
        return v

    @model_validator(mode="after")
    def _index_in_range(self):
        if not 0 <= self.correctIndex < len(self.options):
            raise ValueError("correctIndex out of range")
        return self


def validate_quiz_questions(text: str) -> list[dict]:
    payload = parse_json_payload(text)
    # Models sometimes wrap the list: {"questions": [...]}
    if isinstance(payload, dict) and isinstance(payload.get("questions"), list):
        payload = payload["questions"]
    if not isinstance(payload, list):
        raise AIResponseInvalid("Expected a list of questions")
    if len(payload) != QUIZ_QUESTION_COUNT:
        raise AIResponseInvalid(f"Expected exactly {QUIZ_QUESTION_COUNT} questions, got {len(payload)}")
    try:
        return [GeneratedQuestion.model_validate(item).model_dump() for item in payload]
    except ValidationError as e:
        raise AIResponseInvalid(f"Question shape mismatch: {e.errors()[0].get('msg')}") from e


# ---- Grading ----


class GradingResult(BaseModel):
    score: int = Field(..., ge=0)
    feedback: str
    perQuestion: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


def grading_validator(total_questions: int):
    """Validator for grading replies; score must be within 0..total_questions."""

    def _validate(text: str) -> dict:
        payload = parse_json_payload(text)
        if not isinstance(payload, dict):
            raise AIResponseInvalid("Expected a grading object")
        try:
            result = GradingResult.model_validate(payload)
        except ValidationError as e:
            raise AIResponseInvalid(f"Grading shape mismatch: {e.errors()[0].get('msg')}") from e
        if result.score > total_questions:
            raise AIResponseInvalid(f"Score {result.score} exceeds {total_questions} questions")
        return result.model_dump()

    return _validate
