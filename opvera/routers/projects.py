"""
Projects (portfolio entries).
- Owners create/update/delete their own projects but can never set `verified`.
- Mentors/admins verify or revoke; both are audited.
Every write publishes SourceRecordChanged so the owner's leaderboard entry is
recomputed in the same transaction.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from opvera.auth import get_current_user, get_current_user_reviewer
from opvera.database import get_db
from opvera.models.project import Project
from opvera.models.user import User
from opvera.schemas.project import ProjectCreate, ProjectResponse, ProjectReview, ProjectUpdate
from opvera.services import audit, events
from opvera.services.points import CHALLENGE_VERIFIED_POINTS, PROJECT_VERIFIED_POINTS

router = APIRouter(prefix="/api/projects", tags=["projects"])


def _get_project(db: Session, project_id: str) -> Project:
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


def _get_own_project(db: Session, project_id: str, user: User) -> Project:
    project = _get_project(db, project_id)
    if project.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your project")
    return project


def _publish_and_commit(db: Session, project: Project) -> None:
    events.publish(db, events.SourceRecordChanged(project.owner_id, "project", project.id))
    db.commit()


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    body: ProjectCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    project = Project(owner_id=user.id, **body.model_dump())
    db.add(project)
    db.flush()
    _publish_and_commit(db, project)
    db.refresh(project)
    return ProjectResponse.model_validate(project)


@router.get("", response_model=list[ProjectResponse])
def list_my_projects(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    projects = db.query(Project).filter(Project.owner_id == user.id).order_by(Project.created_at.desc()).all()
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get("/verified", response_model=list[ProjectResponse])
def list_verified_projects(
    _user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Showcase: every verified project (visible to all signed-in users, e.g. companies)."""
    projects = db.query(Project).filter(Project.verified == True).order_by(Project.updated_at.desc()).all()  # noqa: E712
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get("/pending", response_model=list[ProjectResponse])
def list_pending_projects(
    _reviewer: User = Depends(get_current_user_reviewer),
    db: Session = Depends(get_db),
):
    """Review queue for mentors/admins: unverified projects, oldest first."""
    projects = db.query(Project).filter(Project.verified == False).order_by(Project.created_at.asc()).all()  # noqa: E712
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    project = _get_project(db, project_id)
    if not (project.verified or project.owner_id == user.id or user.is_reviewer):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return ProjectResponse.model_validate(project)


@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    body: ProjectUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Owner update. Tags may move a verified project between project and challenge points."""
    project = _get_own_project(db, project_id, user)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(project, field, value)
    if project.verified:
        project.points_awarded = CHALLENGE_VERIFIED_POINTS if project.is_challenge else PROJECT_VERIFIED_POINTS
    _publish_and_commit(db, project)
    db.refresh(project)
    return ProjectResponse.model_validate(project)


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    project = _get_own_project(db, project_id, user)
    owner_id = project.owner_id
    db.delete(project)
    events.publish(db, events.SourceRecordChanged(owner_id, "project", project_id))
    db.commit()
    return {"message": "Project deleted"}


@router.post("/{project_id}/verify", response_model=ProjectResponse)
def verify_project(
    project_id: str,
    body: ProjectReview,
    reviewer: User = Depends(get_current_user_reviewer),
    db: Session = Depends(get_db),
):
    """Mark a project verified (mentor/admin). Awards 100 points, or 80 for challenges."""
    project = _get_project(db, project_id)
    if project.owner_id == reviewer.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot verify your own project")
    project.verified = True
    project.points_awarded = CHALLENGE_VERIFIED_POINTS if project.is_challenge else PROJECT_VERIFIED_POINTS
    if body.mentor_notes is not None:
        project.mentor_notes = body.mentor_notes
    audit.record(db, reviewer, "project.verified", "project", project.id, {"owner_id": project.owner_id})
    _publish_and_commit(db, project)
    db.refresh(project)
    return ProjectResponse.model_validate(project)


@router.post("/{project_id}/revoke", response_model=ProjectResponse)
def revoke_project(
    project_id: str,
    body: ProjectReview,
    reviewer: User = Depends(get_current_user_reviewer),
    db: Session = Depends(get_db),
):
    """Withdraw verification (mentor/admin). The points disappear on recomputation."""
    project = _get_project(db, project_id)
    project.verified = False
    project.points_awarded = 0
    if body.mentor_notes is not None:
        project.mentor_notes = body.mentor_notes
    audit.record(db, reviewer, "project.revoked", "project", project.id, {"owner_id": project.owner_id})
    _publish_and_commit(db, project)
    db.refresh(project)
    return ProjectResponse.model_validate(project)
