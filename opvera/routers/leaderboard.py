from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from opvera.auth import get_current_user, get_current_user_admin
from opvera.database import get_db
from opvera.models.leaderboard import LeaderboardEntry
from opvera.models.user import User
from opvera.schemas.leaderboard import LeaderboardEntryResponse, LeaderboardRefreshResponse, PointsBreakdown
from opvera.services import leaderboard as leaderboard_service

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


def _entry_out(entry: LeaderboardEntry, user: User) -> LeaderboardEntryResponse:
    return LeaderboardEntryResponse(
        rank=entry.rank,
        user_id=entry.user_id,
        display_name=user.display_name or user.email,
        avatar_url=user.avatar_url,
        total_points=entry.total_points,
        breakdown=PointsBreakdown(**(entry.breakdown or {})),
        updated_at=entry.updated_at,
    )


@router.get("", response_model=list[LeaderboardEntryResponse])
def get_leaderboard(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Ranked list (rank 1 = most points)."""
    return [_entry_out(e, u) for e, u in leaderboard_service.ranked(db, limit, offset)]


@router.get("/me", response_model=LeaderboardEntryResponse)
def get_my_entry(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entry = db.get(LeaderboardEntry, user.id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No points yet")
    return _entry_out(entry, user)


@router.post("/refresh", response_model=LeaderboardRefreshResponse)
def refresh_leaderboard(
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """Rebuild every student's entry from source records (admin maintenance)."""
    count = leaderboard_service.refresh_all(db)
    db.commit()
    return LeaderboardRefreshResponse(refreshed=count)
