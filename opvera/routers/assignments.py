from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from opvera.auth import get_current_user, get_current_user_reviewer
from opvera.database import get_db
from opvera.models.assignment import Assignment
from opvera.models.user import User, UserRole
from opvera.schemas.assignment import AssignmentCreate, AssignmentResponse, AssignmentReview, AssignmentSubmit
from opvera.services import audit, events
from opvera.services.points import ASSIGNMENT_SUBMISSION_POINTS

router = APIRouter(prefix="/api/assignments", tags=["assignments"])


def _get_assignment(db: Session, assignment_id: str) -> Assignment:
    assignment = db.query(Assignment).filter(Assignment.id == assignment_id).first()
    if not assignment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    return assignment


def _publish_and_commit(db: Session, assignment: Assignment) -> None:
    events.publish(db, events.SourceRecordChanged(assignment.student_id, "assignment", assignment.id))
    db.commit()


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_assignment(
    body: AssignmentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Students open an assignment record; points come with the submission."""
    if user.role != UserRole.STUDENT.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only students can create assignments")
    assignment = Assignment(student_id=user.id, title=body.title)
    db.add(assignment)
    db.flush()
    _publish_and_commit(db, assignment)
    db.refresh(assignment)
    return AssignmentResponse.model_validate(assignment)


@router.get("", response_model=list[AssignmentResponse])
def list_my_assignments(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = db.query(Assignment).filter(Assignment.student_id == user.id).order_by(Assignment.created_at.desc()).all()
    return [AssignmentResponse.model_validate(a) for a in rows]


@router.get("/all", response_model=list[AssignmentResponse])
def list_all_assignments(
    submitted_only: bool = False,
    _reviewer: User = Depends(get_current_user_reviewer),
    db: Session = Depends(get_db),
):
    """Mentors/admins: every assignment, newest first. ?submitted_only=true for the review queue."""
    q = db.query(Assignment).order_by(Assignment.created_at.desc())
    if submitted_only:
        q = q.filter(Assignment.submission_url.isnot(None))
    return [AssignmentResponse.model_validate(a) for a in q.all()]


@router.post("/{assignment_id}/submit", response_model=AssignmentResponse)
def submit_assignment(
    assignment_id: str,
    body: AssignmentSubmit,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Attach the submission. The first submission earns 20 points; replacing the
    link later keeps the same 20 (counted once per assignment).
    """
    assignment = _get_assignment(db, assignment_id)
    if assignment.student_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your assignment")
    assignment.submission_url = body.submission_url.strip()
    assignment.points = ASSIGNMENT_SUBMISSION_POINTS
    _publish_and_commit(db, assignment)
    db.refresh(assignment)
    return AssignmentResponse.model_validate(assignment)


@router.post("/{assignment_id}/review", response_model=AssignmentResponse)
def review_assignment(
    assignment_id: str,
    body: AssignmentReview,
    reviewer: User = Depends(get_current_user_reviewer),
    db: Session = Depends(get_db),
):
    """Mentor/admin review. Does not change points (submission alone earns them)."""
    assignment = _get_assignment(db, assignment_id)
    if assignment.submission_url is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assignment has not been submitted")
    assignment.verified = body.verified
    if body.mentor_notes is not None:
        assignment.mentor_notes = body.mentor_notes
    audit.record(
        db, reviewer, "assignment.reviewed", "assignment", assignment.id,
        {"student_id": assignment.student_id, "verified": body.verified},
    )
    _publish_and_commit(db, assignment)
    db.refresh(assignment)
    return AssignmentResponse.model_validate(assignment)
