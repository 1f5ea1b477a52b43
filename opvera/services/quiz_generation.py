"""
AI quiz generation: always 5 multiple-choice questions for a topic and difficulty.
Output is validated inside the retry loop (see ai_validation.validate_quiz_questions).
"""
import logging
from datetime import datetime

from opvera.models.quiz import QuizDifficulty
from opvera.services.ai_client import AIClient, AIOptions
from opvera.services.ai_security import redact_text
from opvera.services.ai_validation import QUIZ_QUESTION_COUNT, validate_quiz_questions

logger = logging.getLogger(__name__)

QUIZ_SYSTEM_INSTRUCTION = """You are the quiz author of Opvera, a learning platform for students.
You write clear multiple-choice questions that test understanding, not trivia.

Rules:
- Reply with JSON only, no prose and no Markdown.
- The JSON is an array of question objects with keys: "question" (string),
  "options" (array of 4 strings), "correctIndex" (0-based integer into options),
  "explanation" (one or two sentences on why the answer is correct).
- Exactly one option is correct. Do not repeat questions."""

QUIZ_OPTIONS = AIOptions(
    temperature=0.7,
    top_k=40,
    top_p=0.95,
    max_output_tokens=2048,
    system_instruction=QUIZ_SYSTEM_INSTRUCTION,
    json_output=True,
)


def build_quiz_prompt(topic: str, difficulty: QuizDifficulty) -> str:
    return (
        f"Write exactly {QUIZ_QUESTION_COUNT} multiple-choice questions about: {redact_text(topic)}\n"
        f"Difficulty: {difficulty.value}\n"
        "Return the JSON array only."
    )


def generate_quiz(client: AIClient, topic: str, difficulty: QuizDifficulty) -> dict:
    """
    Returns {"questions": [...5 items...], "metadata": {...}} ready to persist as a Quiz.
    Raises AIUnavailableError when every attempt failed or returned a bad shape.
    """
    response = client.call(build_quiz_prompt(topic, difficulty), QUIZ_OPTIONS, validate_quiz_questions)
    logger.info("Generated quiz on %r (%s) in %d attempt(s)", topic, difficulty.value, response.attempts)
    return {
        "questions": response.data,
        "metadata": {
            "model": response.model,
            "generated_at": datetime.utcnow().isoformat(),
            "attempts": response.attempts,
        },
    }
