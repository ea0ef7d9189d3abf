"""Session status state machine.

Every status change a store persists is computed here, so the transition
table is the single authority on what may happen to a session.

Example:
    >>> from token_authority.models.enums import SessionStatus
    >>> can_transition(SessionStatus.CREATED, SessionStatus.REFRESHED)
    True
    >>> can_transition(SessionStatus.REVOKED, SessionStatus.CREATED)
    False
"""

from datetime import datetime

from token_authority.errors import InvalidTransitionError
from token_authority.models.entities import Session
from token_authority.models.enums import SessionStatus
from token_authority.observability import get_metrics
from token_authority.observability.metrics import SESSION_TRANSITIONS_TOTAL

__all__ = [
    "SessionStatus",
    "VALID_TRANSITIONS",
    "can_transition",
    "sources_for",
    "transition",
]

VALID_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.CREATED: frozenset(
        {SessionStatus.REFRESHED, SessionStatus.EXPIRED, SessionStatus.REVOKED}
    ),
    SessionStatus.REFRESHED: frozenset({SessionStatus.REVOKED}),
    SessionStatus.EXPIRED: frozenset({SessionStatus.REVOKED}),
    SessionStatus.REVOKED: frozenset(),
}


def can_transition(from_status: SessionStatus, to_status: SessionStatus) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, frozenset())


def sources_for(to_status: SessionStatus) -> frozenset[SessionStatus]:
    """Statuses from which ``to_status`` is reachable in one step."""
    return frozenset(
        status for status, targets in VALID_TRANSITIONS.items() if to_status in targets
    )


def transition(session: Session, new_status: SessionStatus, now: datetime) -> Session:
    """Return ``session`` moved to ``new_status``.

    Args:
        session: Current session record
        new_status: Target status
        now: Timestamp recorded as ``updated_at``

    Raises:
        InvalidTransitionError: If the table does not allow the move.
    """
    if not can_transition(session.status, new_status):
        raise InvalidTransitionError(
            from_state=session.status.value,
            to_state=new_status.value,
            details={"session_id": session.id},
        )
    get_metrics().increment_counter(
        SESSION_TRANSITIONS_TOTAL,
        {"from_status": session.status.value, "to_status": new_status.value},
    )
    return session.model_copy(update={"status": new_status, "updated_at": now})
