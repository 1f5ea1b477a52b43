from datetime import datetime
from pydantic import BaseModel, Field


class AssignmentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class AssignmentSubmit(BaseModel):
    submission_url: str = Field(..., min_length=1, max_length=500)


class AssignmentReview(BaseModel):
    verified: bool = True
    mentor_notes: str | None = None


class AssignmentResponse(BaseModel):
    id: str
    student_id: str
    title: str
    submission_url: str | None
    points: int
    verified: bool
    mentor_notes: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
