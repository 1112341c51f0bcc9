"""Stripe Connect account lifecycle for barbers.

Creates Express accounts and onboarding links, polls capability status,
detaches accounts from barbers, and gates payment initiation on the connected
account being able to take cards.
"""

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import delete, or_, select, update

from kutable.common.config import settings
from kutable.common.db import utcnow
from kutable.common.errors import NotFoundError, ValidationError
from kutable.common.logging import logger
from kutable.common.models import BarberProfile, StripeAccount
from kutable.common.stripe_accounts import (
    account_status_for,
    capability_flags,
    set_onboarding_completed,
    upsert_account_snapshot,
)

STRIPE_PAYMENTS_DISABLED = "STRIPE_PAYMENTS_DISABLED"
STRIPE_VERIFICATION_PENDING = "STRIPE_VERIFICATION_PENDING"
BARBER_SHOP_MCC = "7230"


class StripeAccountManager:
    """Owns `stripe_accounts` writes driven by the platform (not by webhooks)."""

    def __init__(self, session_factory, gateway) -> None:
        self.session_factory = session_factory
        self.gateway = gateway

    def create_account(self, req) -> dict:
        """Create (or reuse) the barber's Express account and return an onboarding link."""

        try:
            validate_email(req.email, check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValidationError("Invalid email format") from exc

        with self.session_factory() as db:
            barber = db.get(BarberProfile, req.barber_id)
            if barber is None:
                raise NotFoundError("Barber profile not found")
            account_id = barber.stripe_account_id

        if not account_id:
            first, _, rest = req.owner_name.strip().partition(" ")
            individual = {"first_name": first, "last_name": rest or first, "email": req.email}
            business_profile = {
                "name": req.business_name,
                "mcc": BARBER_SHOP_MCC,
                "url": f"{settings.site_url}/barber/{req.barber_id}",
                "support_email": req.email,
            }
            if req.phone:
                individual["phone"] = req.phone
                business_profile["support_phone"] = req.phone
            account = self.gateway.create_account(
                type="express",
                country="US",
                email=req.email,
                business_type="individual",
                individual=individual,
                business_profile=business_profile,
                capabilities={"card_payments": {"requested": True}, "transfers": {"requested": True}},
                metadata={"barberId": req.barber_id},
            )
            account_id = account["id"]
            logger.info("stripe_account_created barber_id=%s account_id=%s", req.barber_id, account_id)

            with self.session_factory() as db:
                db.execute(
                    update(BarberProfile)
                    .where(BarberProfile.id == req.barber_id)
                    .values(stripe_account_id=account_id, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                upsert_account_snapshot(db, account_id, req.barber_id, "pending", False, False, False)
                db.commit()

        link = self.gateway.create_account_link(
            account_id,
            refresh_url=f"{settings.site_url}/dashboard?stripe_refresh=true&account_id={account_id}",
            return_url=f"{settings.site_url}/dashboard?stripe_setup=complete&account_id={account_id}",
        )
        return {"success": True, "accountId": account_id, "onboardingUrl": link["url"]}

    def check_status(self, account_id: str) -> dict:
        """Poll Stripe for capability status and persist it once details are submitted."""

        account = self.gateway.retrieve_account(account_id)
        transfers_active, card_payments_active = capability_flags(account)
        details_submitted = bool(account.get("details_submitted"))
        onboarding_complete = details_submitted and transfers_active and card_payments_active
        requires_verification = details_submitted and not (transfers_active and card_payments_active)
        requirements = account.get("requirements") or {}

        logger.info(
            "stripe_status_checked account_id=%s details_submitted=%s transfers=%s card_payments=%s",
            account_id,
            details_submitted,
            transfers_active,
            card_payments_active,
        )
        if details_submitted:
            with self.session_factory() as db:
                barber_id = (account.get("metadata") or {}).get("barberId") or db.execute(
                    select(BarberProfile.id).where(BarberProfile.stripe_account_id == account_id)
                ).scalar_one_or_none()
                upsert_account_snapshot(
                    db,
                    account_id,
                    barber_id,
                    account_status_for(details_submitted, transfers_active, card_payments_active),
                    card_payments_active,
                    bool(account.get("payouts_enabled")),
                    details_submitted,
                )
                set_onboarding_completed(db, account_id, onboarding_complete)
                db.commit()

        capabilities = account.get("capabilities") or {}
        return {
            "success": True,
            "onboardingComplete": onboarding_complete,
            "detailsSubmitted": details_submitted,
            "requiresVerification": requires_verification,
            "transfersActive": transfers_active,
            "cardPaymentsActive": card_payments_active,
            "accountStatus": {
                "details_submitted": details_submitted,
                "charges_enabled": card_payments_active,
                "payouts_enabled": bool(account.get("payouts_enabled")),
                "capabilities": {
                    "transfers": capabilities.get("transfers"),
                    "card_payments": capabilities.get("card_payments"),
                },
                "requirements": {
                    "currently_due": requirements.get("currently_due") or [],
                    "pending_verification": requirements.get("pending_verification") or [],
                },
            },
        }

    def disconnect_account(self, barber_id: str) -> dict:
        """Detach the barber's connected account from their profile.

        The Express account itself stays on Stripe; the barber can connect a
        new one afterwards through `create_account`.
        """

        with self.session_factory() as db:
            barber = db.get(BarberProfile, barber_id)
            if barber is None:
                raise NotFoundError("Barber profile not found")
            account_id = barber.stripe_account_id
            db.execute(
                update(BarberProfile)
                .where(BarberProfile.id == barber_id)
                .values(stripe_account_id=None, stripe_onboarding_completed=False, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            condition = StripeAccount.barber_id == barber_id
            if account_id:
                condition = or_(condition, StripeAccount.stripe_account_id == account_id)
            db.execute(delete(StripeAccount).where(condition).execution_options(synchronize_session=False))
            db.commit()

        logger.info("stripe_account_disconnected barber_id=%s account_id=%s", barber_id, account_id)
        return {
            "success": True,
            "message": "Stripe account disconnected successfully",
            "disconnectedAccountId": account_id,
        }

    def ensure_can_accept_payments(self, barber_id: str) -> str:
        """Return the barber's connected account id, or raise when it cannot take cards yet."""

        with self.session_factory() as db:
            barber = db.get(BarberProfile, barber_id)
            if barber is None:
                raise NotFoundError("Barber profile not found")
            account_id = barber.stripe_account_id
        if not account_id:
            raise ValidationError(
                "This barber has not finished setting up payments yet.", error_code=STRIPE_PAYMENTS_DISABLED
            )

        account = self.gateway.retrieve_account(account_id)
        capabilities = account.get("capabilities") or {}
        transfers_active, card_payments_active = capability_flags(account)
        details_submitted = bool(account.get("details_submitted"))
        with self.session_factory() as db:
            upsert_account_snapshot(
                db,
                account_id,
                barber_id,
                account_status_for(details_submitted, transfers_active, card_payments_active),
                card_payments_active,
                bool(account.get("payouts_enabled")),
                details_submitted,
            )
            set_onboarding_completed(db, account_id, details_submitted and transfers_active and card_payments_active)
            db.commit()

        if transfers_active and card_payments_active:
            return account_id
        if "pending" in (capabilities.get("transfers"), capabilities.get("card_payments")):
            raise ValidationError(
                "This barber's payment account is being verified by Stripe. Please try again later.",
                error_code=STRIPE_VERIFICATION_PENDING,
            )
        raise ValidationError(
            "This barber cannot accept card payments right now.", error_code=STRIPE_PAYMENTS_DISABLED
        )
