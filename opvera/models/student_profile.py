"""Extended profile information for students (one row per student)."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, JSON
from opvera.database import Base


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    college = Column(String(200), nullable=True, index=True)
    batch = Column(String(50), nullable=True, index=True)
    cgpa = Column(Numeric(3, 2), nullable=True)
    location = Column(String(200), nullable=True)
    resume_url = Column(String(500), nullable=True)
    linkedin = Column(String(500), nullable=True)
    portfolio_url = Column(String(500), nullable=True)
    extra = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
