"""
Cached points per user. Derived data: rows are written only by
opvera.services.leaderboard (see the flush guard there).
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON
from opvera.database import Base


class LeaderboardEntry(Base):
    __tablename__ = "leaderboard"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    total_points = Column(Integer, nullable=False, default=0, index=True)
    breakdown = Column(JSON, nullable=False, default=dict)  # {quizzes, assignments, projects, challenges}
    rank = Column(Integer, nullable=True, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
