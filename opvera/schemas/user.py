from datetime import datetime
from pydantic import BaseModel, Field
from opvera.models.user import UserRole


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str
    role: str
    avatar_url: str | None = None
    bio: str | None = None
    skills: list[str] = []
    socials: dict[str, str] = {}
    banned: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    """Admin update (fields optional)."""
    display_name: str | None = None
    role: UserRole | None = None
    banned: bool | None = None


class ProfileUpdate(BaseModel):
    """Self-service profile update. Role and ban flag are admin-only."""
    display_name: str | None = Field(None, max_length=100)
    avatar_url: str | None = None
    bio: str | None = None
    skills: list[str] | None = None
    socials: dict[str, str] | None = None


class StudentProfileIn(BaseModel):
    college: str | None = None
    batch: str | None = None
    cgpa: float | None = Field(None, ge=0, le=10)
    location: str | None = None
    resume_url: str | None = None
    linkedin: str | None = None
    portfolio_url: str | None = None
    extra: dict | None = None


class StudentProfileResponse(StudentProfileIn):
    id: str
    user_id: str

    class Config:
        from_attributes = True


class TokenPayload(BaseModel):
    sub: str  # user id
    email: str
    exp: int
    type: str = "access"


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    display_name: str = Field(..., min_length=1, max_length=100)
    # Self-registration is limited to these; mentor/admin are granted by an admin
    role: UserRole = UserRole.STUDENT


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
