"""Session lifecycle state machine."""

from token_authority.state.machine import (
    VALID_TRANSITIONS,
    can_transition,
    sources_for,
    transition,
)

__all__ = ["VALID_TRANSITIONS", "can_transition", "sources_for", "transition"]
