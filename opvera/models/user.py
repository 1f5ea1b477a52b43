import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Text, JSON
from opvera.database import Base


class UserRole(str, enum.Enum):
    STUDENT = "student"
    MENTOR = "mentor"
    COMPANY = "company"
    ADMIN = "admin"
    BANNED = "banned"


# Roles allowed to verify projects and review assignments
REVIEWER_ROLES = (UserRole.MENTOR.value, UserRole.ADMIN.value)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=True)
    display_name = Column(String(100), nullable=False, default="")
    role = Column(String(20), nullable=False, default=UserRole.STUDENT.value, index=True)
    avatar_url = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    skills = Column(JSON, nullable=False, default=list)
    socials = Column(JSON, nullable=False, default=dict)
    banned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_banned(self) -> bool:
        return bool(self.banned) or self.role == UserRole.BANNED.value

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES
