from datetime import datetime
from pydantic import BaseModel


class PointsBreakdown(BaseModel):
    quizzes: int = 0
    assignments: int = 0
    projects: int = 0
    challenges: int = 0


class LeaderboardEntryResponse(BaseModel):
    rank: int | None
    user_id: str
    display_name: str
    avatar_url: str | None = None
    total_points: int
    breakdown: PointsBreakdown
    updated_at: datetime


class LeaderboardRefreshResponse(BaseModel):
    refreshed: int
