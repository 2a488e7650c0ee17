"""
Grace-period deletion for internet connections.

A delete request never removes a connection immediately. It stamps
`scheduled_for_deletion = now + grace` and the record stays fully readable
and editable until a sweep observes that the timestamp has passed.
Cancelling clears the stamp.
"""
import enum
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import InternetConnection
from .time_rules import ensure_utc, hours_from, utcnow


logger = structlog.get_logger(__name__)

PENDING_DELETION_LABEL = "Pending deletion"


class ConnectionState(str, enum.Enum):
    active = "active"
    pending_deletion = "pending-deletion"
    expired = "expired"  # scheduled time reached, waiting for the sweep


class InvalidTransition(ValueError):
    pass


def state_of(scheduled_for_deletion: Optional[datetime], now: datetime) -> ConnectionState:
    if scheduled_for_deletion is None:
        return ConnectionState.active
    if ensure_utc(scheduled_for_deletion) > ensure_utc(now):
        return ConnectionState.pending_deletion
    return ConnectionState.expired


def is_pending_deletion(scheduled_for_deletion: Optional[datetime], now: datetime) -> bool:
    return state_of(scheduled_for_deletion, now) is ConnectionState.pending_deletion


def schedule_deletion(
    scheduled_for_deletion: Optional[datetime],
    now: datetime,
    grace_hours: Optional[int] = None,
) -> datetime:
    if is_pending_deletion(scheduled_for_deletion, now):
        raise InvalidTransition("Connection is already scheduled for deletion")
    hours = settings.deletion_grace_hours if grace_hours is None else grace_hours
    return hours_from(now, hours)


def cancel_deletion(scheduled_for_deletion: Optional[datetime], now: datetime) -> None:
    if scheduled_for_deletion is None:
        raise InvalidTransition("Connection is not scheduled for deletion")
    return None


def time_remaining(scheduled_for_deletion: Optional[datetime], now: datetime) -> timedelta:
    if scheduled_for_deletion is None:
        return timedelta(0)
    remaining = ensure_utc(scheduled_for_deletion) - ensure_utc(now)
    return max(remaining, timedelta(0))


def format_time_remaining(scheduled_for_deletion: Optional[datetime], now: datetime) -> Optional[str]:
    if scheduled_for_deletion is None:
        return None
    remaining = time_remaining(scheduled_for_deletion, now)
    if remaining <= timedelta(0):
        return PENDING_DELETION_LABEL
    total_minutes = int(remaining.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m remaining"


def can_delete_now(scheduled_for_deletion: Optional[datetime], now: datetime) -> bool:
    return state_of(scheduled_for_deletion, now) is ConnectionState.expired


def sweep_expired(db: Session, now: Optional[datetime] = None) -> int:
    """Delete every connection whose scheduled deletion time has passed."""
    now = now or utcnow()
    rows = (
        db.query(InternetConnection)
        .filter(InternetConnection.scheduled_for_deletion.isnot(None))
        .all()
    )
    expired = [r for r in rows if can_delete_now(r.scheduled_for_deletion, now)]
    for row in expired:
        db.delete(row)
    db.commit()
    if expired:
        logger.info("connections_swept", deleted=len(expired), stations=[r.station for r in expired])
    return len(expired)
