"""
Leaderboard recomputation.

recompute(db, user_id) recalculates one user's breakdown from their quiz
attempts, assignments and projects, upserts the cached entry and re-ranks the
whole table. It is subscribed to SourceRecordChanged, so every write to those
source tables recomputes inside the writer's transaction.

The leaderboard table is derived data: any flush that touches a
LeaderboardEntry outside this module raises LeaderboardWriteForbidden.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from sqlalchemy import event, text
from sqlalchemy.orm import Session, joinedload

from opvera.models.assignment import Assignment
from opvera.models.leaderboard import LeaderboardEntry
from opvera.models.project import Project
from opvera.models.quiz import QuizAttempt
from opvera.models.user import User, UserRole
from opvera.services import events
from opvera.services.points import compute_breakdown, total_points

logger = logging.getLogger(__name__)

_WRITER_KEY = "leaderboard_writer"
# Arbitrary constant shared by every process re-ranking the same database
RERANK_ADVISORY_LOCK_KEY = 7_215_001


class LeaderboardWriteForbidden(Exception):
    """Raised when a leaderboard row is written outside the recomputation path."""


@contextmanager
def _leaderboard_writer(db: Session) -> Iterator[None]:
    depth = db.info.get(_WRITER_KEY, 0)
    db.info[_WRITER_KEY] = depth + 1
    try:
        yield
        db.flush()
    finally:
        db.info[_WRITER_KEY] = depth


@event.listens_for(Session, "before_flush")
def _guard_leaderboard_writes(session: Session, flush_context, instances) -> None:
    if session.info.get(_WRITER_KEY, 0) > 0:
        return
    for obj in list(session.new) + list(session.deleted):
        if isinstance(obj, LeaderboardEntry):
            raise LeaderboardWriteForbidden("Leaderboard entries can only be changed by recomputation")
    for obj in session.dirty:
        if isinstance(obj, LeaderboardEntry) and session.is_modified(obj):
            raise LeaderboardWriteForbidden("Leaderboard entries can only be changed by recomputation")


def _lock_user_sources(db: Session, user_id: str) -> None:
    """Row lock on the user so source writes for them serialize with this recompute (no-op on SQLite)."""
    db.query(User.id).filter(User.id == user_id).with_for_update().first()


def _upsert_entry(db: Session, user_id: str) -> LeaderboardEntry:
    attempts = (
        db.query(QuizAttempt)
        .options(joinedload(QuizAttempt.quiz))
        .filter(QuizAttempt.student_id == user_id, QuizAttempt.completed_at.isnot(None))
        .all()
    )
    assignments = db.query(Assignment).filter(Assignment.student_id == user_id).all()
    projects = db.query(Project).filter(Project.owner_id == user_id).all()

    breakdown = compute_breakdown(attempts, assignments, projects)
    total = total_points(breakdown)

    entry = db.get(LeaderboardEntry, user_id)
    if entry is None:
        entry = LeaderboardEntry(user_id=user_id, total_points=total, breakdown=breakdown, updated_at=datetime.utcnow())
        db.add(entry)
    elif entry.total_points != total or entry.breakdown != breakdown:
        entry.total_points = total
        entry.breakdown = breakdown
        entry.updated_at = datetime.utcnow()
    return entry


def rerank(db: Session) -> None:
    """
    Full re-rank: total_points desc, ties broken by user_id asc, ranks 1..n.
    Serialized across connections with an advisory lock on Postgres.
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": RERANK_ADVISORY_LOCK_KEY})
    entries = (
        db.query(LeaderboardEntry)
        .order_by(LeaderboardEntry.total_points.desc(), LeaderboardEntry.user_id.asc())
        .all()
    )
    for position, entry in enumerate(entries, start=1):
        if entry.rank != position:
            entry.rank = position


def recompute(db: Session, user_id: str) -> LeaderboardEntry:
    """Recalculate one user's points, upsert their entry and re-rank. Caller commits."""
    # Make staged source writes visible to the queries below
    db.flush()
    _lock_user_sources(db, user_id)
    with _leaderboard_writer(db):
        entry = _upsert_entry(db, user_id)
        db.flush()
        rerank(db)
    logger.info(
        "Leaderboard recomputed for user %s: total=%s rank=%s",
        user_id, entry.total_points, entry.rank,
    )
    return entry


def refresh_all(db: Session) -> int:
    """Rebuild the leaderboard for every student; drops entries of non-students. Returns entry count."""
    db.flush()
    student_ids = [
        row[0]
        for row in db.query(User.id).filter(User.role == UserRole.STUDENT.value).order_by(User.id).all()
    ]
    with _leaderboard_writer(db):
        stale = db.query(LeaderboardEntry)
        if student_ids:
            stale = stale.filter(LeaderboardEntry.user_id.notin_(student_ids))
        for entry in stale.all():
            db.delete(entry)
        db.flush()
        for user_id in student_ids:
            _upsert_entry(db, user_id)
        db.flush()
        rerank(db)
    logger.info("Leaderboard refreshed for %d student(s)", len(student_ids))
    return len(student_ids)


def ranked(db: Session, limit: int = 50, offset: int = 0) -> list[tuple[LeaderboardEntry, User]]:
    return (
        db.query(LeaderboardEntry, User)
        .join(User, LeaderboardEntry.user_id == User.id)
        .order_by(LeaderboardEntry.rank.asc(), LeaderboardEntry.user_id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def handle_source_record_changed(db: Session, evt: events.SourceRecordChanged) -> None:
    recompute(db, evt.user_id)


events.subscribe(events.SourceRecordChanged, handle_source_record_changed)
