from datetime import datetime
from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    files: list[str] = []
    github_url: str | None = None
    tags: list[str] = []


class ProjectUpdate(BaseModel):
    """Owner update. `verified` is deliberately absent: only mentors/admins verify."""
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    files: list[str] | None = None
    github_url: str | None = None
    tags: list[str] | None = None


class ProjectReview(BaseModel):
    mentor_notes: str | None = None


class ProjectResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    description: str | None
    files: list[str]
    github_url: str | None
    tags: list[str]
    points_awarded: int
    verified: bool
    mentor_notes: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
