"""Retry scheduling for provider deliveries.

The helpers are model-agnostic: any table with `status`, `attempts`,
`created_at` and `updated_at` columns can be swept with the same
claim/backlog logic.
"""

from datetime import datetime, timedelta

from sqlalchemy import and_, case, func, literal, or_, select, update

from kutable.common.db import as_utc, utcnow
from kutable.common.metrics import notification_retry_backlog

RETRYABLE_STATUSES = ("failed", "queued")
BACKOFF_SCHEDULE_SECONDS = (60, 300, 900)


def backoff_seconds(attempts: int) -> int:
    """Delay before the next try: 60s after one attempt, 300s after two, 900s after that."""

    index = min(max(attempts, 1), len(BACKOFF_SCHEDULE_SECONDS)) - 1
    return BACKOFF_SCHEDULE_SECONDS[index]


def is_retry_eligible(status: str, attempts: int, updated_at: datetime, now: datetime, max_attempts: int = 3) -> bool:
    if status not in RETRYABLE_STATUSES or attempts >= max_attempts:
        return False
    return now - as_utc(updated_at) > timedelta(seconds=backoff_seconds(attempts))


def _eligible_clause(table, now: datetime, max_attempts: int):
    # One cutoff per attempts bucket, so the filter stays a plain index-friendly predicate.
    windows = []
    for attempts in range(1, max_attempts):
        cutoff = now - timedelta(seconds=backoff_seconds(attempts))
        bucket = table.c.attempts <= 1 if attempts == 1 else table.c.attempts == attempts
        windows.append(and_(bucket, table.c.updated_at < cutoff))
    return and_(
        table.c.status.in_(RETRYABLE_STATUSES),
        table.c.attempts < max_attempts,
        or_(*windows) if windows else literal(False),
    )


def claim_retry_batch(db, model, limit: int = 25, max_attempts: int = 3, now: datetime | None = None) -> list:
    """Atomically move a batch of eligible rows to `sending` and bump their attempts.

    Concurrent sweepers skip each other's locked rows, so one row is never
    retried twice in the same window.
    """

    table = model.__table__
    now = now or utcnow()
    claim_ids = (
        select(table.c.id)
        .where(_eligible_clause(table, now, max_attempts))
        .order_by(table.c.updated_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .cte("claim_ids")
    )
    rows = db.execute(
        update(table)
        .where(table.c.id.in_(select(claim_ids.c.id)))
        .values(
            status="sending",
            attempts=case((table.c.attempts < 1, 1), else_=table.c.attempts) + 1,
            updated_at=now,
        )
        .returning(*table.c)
    ).all()
    return list(rows)


def update_retry_backlog_metrics(db, model, service_name: str, max_attempts: int = 3) -> int:
    """Publish how many rows could still be retried."""

    table = model.__table__
    backlog = db.execute(
        select(func.count())
        .select_from(table)
        .where(table.c.status.in_(RETRYABLE_STATUSES), table.c.attempts < max_attempts)
    ).scalar_one()
    notification_retry_backlog.labels(service=service_name).set(float(backlog))
    return backlog
