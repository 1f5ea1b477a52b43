"""Quizzes (authored or AI-generated) and student attempts."""
import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from opvera.database import Base


class QuizDifficulty(str, enum.Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    # [{question, options, correctIndex, explanation}, ...] in display order
    questions = Column(JSON, nullable=False, default=list)
    difficulty = Column(String(20), nullable=True, index=True)
    topic = Column(String(200), nullable=True, index=True)
    ai_generated = Column(Boolean, nullable=False, default=False)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)  # model, generated_at
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    attempts = relationship("QuizAttempt", back_populates="quiz", passive_deletes=True)


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    answers = Column(JSON, nullable=False, default=list)  # option index per question
    score = Column(Integer, nullable=False, default=0)
    max_score = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime, nullable=True, index=True)  # null = in progress
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)  # AI grading, feedback
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    quiz = relationship("Quiz", back_populates="attempts")
