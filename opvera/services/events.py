"""
In-process event bus for "source record changed for user X".

Writers of quiz attempts, assignments and projects publish SourceRecordChanged
after staging their change and before commit. Handlers run synchronously in the
writer's session, so a handler error propagates and the caller rolls back the
whole transaction.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceRecordChanged:
    user_id: str
    source: str  # "quiz_attempt" | "assignment" | "project"
    record_id: str | None = None


Handler = Callable[[Session, SourceRecordChanged], None]

_handlers: dict[type, list[Handler]] = defaultdict(list)


def subscribe(event_type: type, handler: Handler) -> None:
    if handler not in _handlers[event_type]:
        _handlers[event_type].append(handler)


def unsubscribe(event_type: type, handler: Handler) -> None:
    if handler in _handlers[event_type]:
        _handlers[event_type].remove(handler)


def publish(db: Session, event: SourceRecordChanged) -> None:
    handlers = list(_handlers[type(event)])
    logger.debug("publish %s to %d handler(s)", event, len(handlers))
    for handler in handlers:
        handler(db, event)
