"""Booking status writes shared by the payment and webhook services."""

from sqlalchemy import select, update
from sqlalchemy.orm.attributes import set_committed_value

from kutable.common.db import utcnow
from kutable.common.errors import ConflictError
from kutable.common.logging import logger
from kutable.common.models import Booking, BookingTimeline
from kutable.common.state_machine import validate_transition

PAYMENT_FAILED_REASON = "payment_failed"


def can_confirm(db, booking: Booking) -> bool:
    """Whether a successful payment may still confirm `booking`.

    Pending bookings always can. A cancelled booking only can when its latest
    cancellation came from a failed payment attempt; refunded or otherwise
    cancelled bookings stay cancelled.
    """

    if booking.status == "pending":
        return True
    if booking.status != "cancelled":
        return False
    reason = db.scalar(
        select(BookingTimeline.reason)
        .where(BookingTimeline.booking_id == booking.id, BookingTimeline.to_state == "cancelled")
        .order_by(BookingTimeline.created_at.desc())
        .limit(1)
    )
    return bool(reason) and reason.startswith(PAYMENT_FAILED_REASON)


def transition_booking(db, booking: Booking, new_status: str, reason: str, event_id: str | None = None, **values) -> bool:
    """Apply one validated status transition with optimistic concurrency.

    The write is guarded by `(id, status, state_version)` so a stale concurrent
    update cannot succeed. Returns False when the booking already has
    `new_status`, True when the transition was applied. Extra column `values`
    are written in the same statement.
    """

    if booking.status == new_status:
        return False
    validate_transition(booking.status, new_status)
    from_status = booking.status
    current_version = booking.state_version
    now = utcnow()

    result = db.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status == from_status,
            Booking.state_version == current_version,
        )
        .values(status=new_status, state_version=current_version + 1, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f"Booking {booking.id} changed concurrently (expected version {current_version})")

    # Reflect the written row without scheduling a second UPDATE on flush.
    for key, value in {"status": new_status, "state_version": current_version + 1, "updated_at": now, **values}.items():
        set_committed_value(booking, key, value)
    db.add(
        BookingTimeline(
            booking_id=booking.id,
            from_state=from_status,
            to_state=new_status,
            reason=reason,
            event_id=event_id,
        )
    )
    logger.info("booking_transition booking_id=%s from=%s to=%s reason=%s", booking.id, from_status, new_status, reason)
    return True
