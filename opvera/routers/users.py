from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from opvera.database import get_db
from opvera.models.student_profile import StudentProfile
from opvera.models.user import User, UserRole
from opvera.auth import get_current_user, get_current_user_admin
from opvera.schemas.user import StudentProfileIn, StudentProfileResponse, UserResponse, UserUpdate
from opvera.services import audit

router = APIRouter(prefix="/api/users", tags=["users"])


# ---------- Student profile (self) ----------


@router.get("/me/student-profile", response_model=StudentProfileResponse)
def get_student_profile(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = db.query(StudentProfile).filter(StudentProfile.user_id == user.id).first()
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return StudentProfileResponse.model_validate(profile)


@router.put("/me/student-profile", response_model=StudentProfileResponse)
def upsert_student_profile(
    body: StudentProfileIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create or replace the caller's student profile (students only)."""
    if user.role != UserRole.STUDENT.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only students have a student profile")
    profile = db.query(StudentProfile).filter(StudentProfile.user_id == user.id).first()
    if not profile:
        profile = StudentProfile(user_id=user.id)
        db.add(profile)
    data = body.model_dump()
    data["extra"] = data.get("extra") or {}
    for field, value in data.items():
        setattr(profile, field, value)
    db.commit()
    db.refresh(profile)
    return StudentProfileResponse.model_validate(profile)


# ---------- Users (admin) ----------


@router.get("", response_model=list[UserResponse])
def get_all_users(
    role: UserRole | None = None,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """List all users (admin only). Optional ?role=mentor."""
    q = db.query(User).order_by(User.created_at.desc())
    if role is not None:
        q = q.filter(User.role == role.value)
    return [UserResponse.model_validate(u) for u in q.all()]


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """Get one user by id (admin only)."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    body: UserUpdate,
    admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """Change display name, role or ban flag (admin only). Role and ban changes are audited."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if body.display_name is not None:
        user.display_name = body.display_name
    if body.role is not None and body.role.value != user.role:
        audit.record(db, admin, "user.role_changed", "user", user.id, {"from": user.role, "to": body.role.value})
        user.role = body.role.value
    if body.banned is not None and body.banned != user.banned:
        audit.record(db, admin, "user.banned" if body.banned else "user.unbanned", "user", user.id)
        user.banned = body.banned
    db.commit()
    db.refresh(user)
    return UserResponse.model_validate(user)
