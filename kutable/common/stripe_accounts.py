"""Connected-account snapshot writes shared by the status poller and webhooks."""

from sqlalchemy import select, update

from kutable.common.db import utcnow
from kutable.common.models import BarberProfile, StripeAccount


def capability_flags(account: dict) -> tuple[bool, bool]:
    capabilities = account.get("capabilities") or {}
    return capabilities.get("transfers") == "active", capabilities.get("card_payments") == "active"


def account_status_for(details_submitted: bool, transfers_active: bool, card_payments_active: bool) -> str:
    if details_submitted and transfers_active and card_payments_active:
        return "active"
    return "pending_verification" if details_submitted else "pending"


def upsert_account_snapshot(
    db,
    stripe_account_id: str,
    barber_id: str | None,
    account_status: str,
    charges_enabled: bool,
    payouts_enabled: bool,
    details_submitted: bool,
) -> StripeAccount | None:
    """Insert or refresh the `stripe_accounts` row keyed by `stripe_account_id`.

    Returns None when the account is new and no barber can be attributed.
    """

    row = db.execute(
        select(StripeAccount).where(StripeAccount.stripe_account_id == stripe_account_id)
    ).scalar_one_or_none()
    if row is None and barber_id:
        # A barber reconnecting with a new account keeps one row.
        row = db.execute(select(StripeAccount).where(StripeAccount.barber_id == barber_id)).scalar_one_or_none()
    if row is None:
        if not barber_id:
            return None
        row = StripeAccount(barber_id=barber_id, stripe_account_id=stripe_account_id)
        db.add(row)
    row.stripe_account_id = stripe_account_id
    row.account_status = account_status
    row.charges_enabled = charges_enabled
    row.payouts_enabled = payouts_enabled
    row.details_submitted = details_submitted
    row.updated_at = utcnow()
    return row


def set_onboarding_completed(db, stripe_account_id: str, completed: bool) -> None:
    db.execute(
        update(BarberProfile)
        .where(BarberProfile.stripe_account_id == stripe_account_id)
        .values(stripe_onboarding_completed=completed, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
