"""Student portfolio project. Only mentors/admins flip `verified`."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, ForeignKey, JSON
from opvera.database import Base

CHALLENGE_TAG = "challenge"


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    files = Column(JSON, nullable=False, default=list)  # storage paths
    github_url = Column(String(500), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    points_awarded = Column(Integer, nullable=False, default=0)
    verified = Column(Boolean, nullable=False, default=False, index=True)
    mentor_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_challenge(self) -> bool:
        return CHALLENGE_TAG in (self.tags or [])
