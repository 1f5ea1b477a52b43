"""Audit trail writes. Staged on the caller's session; committed with the action they describe."""
import logging

from sqlalchemy.orm import Session

from opvera.models.audit_log import AuditLog
from opvera.models.user import User

logger = logging.getLogger(__name__)


def record(
    db: Session,
    actor: User | None,
    action: str,
    target_type: str,
    target_id: str | None = None,
    details: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor_id=actor.id if actor else None,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details or {},
    )
    db.add(entry)
    logger.info("audit: %s %s %s/%s", actor.id if actor else "system", action, target_type, target_id)
    return entry
