"""Daily appointment reminders for tomorrow's confirmed bookings.

Each booking is reminded at most once per appointment date: a
`booking_reminders` row is committed before the notification goes out, so
overlapping scheduler runs skip bookings another run has already taken.
"""

from datetime import date, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from kutable.common.db import utcnow
from kutable.common.errors import KutableError
from kutable.common.logging import booking_id_ctx, logger
from kutable.common.models import Booking
from kutable.services.notification.models import BookingReminder

REMINDER_EVENT = "appointment_reminder"
REMINDER_RETENTION = timedelta(days=30)


class ReminderScheduler:
    def __init__(self, session_factory, notifier) -> None:
        self.session_factory = session_factory
        self.notifier = notifier

    def _claim(self, booking_id: str, appointment_date: str) -> str | None:
        with self.session_factory() as db:
            marker = BookingReminder(
                booking_id=booking_id, reminder_type=REMINDER_EVENT, appointment_date=appointment_date
            )
            db.add(marker)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return None
            return marker.id

    def _release(self, marker_id: str) -> None:
        with self.session_factory() as db:
            db.execute(delete(BookingReminder).where(BookingReminder.id == marker_id))
            db.commit()

    def run(self, today: date | None = None) -> dict:
        """Remind clients and barbers about appointments on the day after `today`."""

        target = ((today or utcnow().date()) + timedelta(days=1)).isoformat()
        with self.session_factory() as db:
            booking_ids = db.execute(
                select(Booking.id).where(Booking.appointment_date == target, Booking.status == "confirmed")
            ).scalars().all()

        sent = skipped = failed = 0
        for booking_id in booking_ids:
            booking_id_ctx.set(booking_id)
            marker_id = self._claim(booking_id, target)
            if marker_id is None:
                skipped += 1
                continue
            try:
                self.notifier.notify(booking_id, REMINDER_EVENT)
            except KutableError as exc:
                logger.warning("reminder_failed booking_id=%s error=%s", booking_id, exc.message)
                self._release(marker_id)
                failed += 1
                continue
            sent += 1

        with self.session_factory() as db:
            db.execute(delete(BookingReminder).where(BookingReminder.sent_at < utcnow() - REMINDER_RETENTION))
            db.commit()

        logger.info("reminder_run date=%s checked=%s sent=%s skipped=%s", target, len(booking_ids), sent, skipped)
        return {
            "success": True,
            "summary": {
                "totalBookingsChecked": len(booking_ids),
                "remindersSent": sent,
                "remindersSkipped": skipped,
                "remindersFailed": failed,
                "date": target,
            },
        }
