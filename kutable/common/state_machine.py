"""Booking status transitions enforced by every writer of `bookings.status`."""

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"cancelled", "refund_requested", "completed"},
    "refund_requested": {"cancelled", "completed"},
    # A payment retried after a failure can still succeed later.
    "cancelled": {"confirmed"},
    "completed": {"refund_requested"},
}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if not can_transition(current, new):
        raise ValueError(f"Invalid transition: {current} -> {new}")
