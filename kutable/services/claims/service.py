"""Claim workflow: prove ownership of an imported barber listing.

A claim token is issued for an unclaimed profile and mailed as a magic link.
Following the link signs the owner in; `complete` then attaches the profile to
that user with a single conditional update, so two owners racing for the same
listing cannot both win.
"""

import re
import secrets
from datetime import timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from kutable.common.config import settings
from kutable.common.db import as_utc, utcnow
from kutable.common.errors import ConflictError, NotFoundError, UpstreamProviderError, ValidationError
from kutable.common.logging import logger
from kutable.common.models import BarberProfile, UserProfile
from kutable.services.claims.models import ClaimToken

PROFILE_FIELDS = ("id", "slug", "business_name", "owner_name", "phone", "email", "address", "city", "state", "zip_code", "bio")


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")


def claim_url(token: str) -> str:
    return f"{settings.site_url.rstrip('/')}/claim/{token}"


class ClaimService:
    def __init__(self, session_factory, auth_admin, token_ttl_hours: int | None = None) -> None:
        self.session_factory = session_factory
        self.auth_admin = auth_admin
        self.token_ttl = timedelta(hours=token_ttl_hours or settings.claim_token_ttl_hours)

    def _find_profile(self, db, req) -> BarberProfile | None:
        if req.barber_id:
            profile = db.get(BarberProfile, req.barber_id)
            if profile is not None:
                return profile
        candidates = []
        for slug in ((req.slug or "").strip().lower(), slugify(req.slug or ""), slugify(req.business_name or "")):
            if slug and slug not in candidates:
                candidates.append(slug)
        for slug in candidates:
            profile = db.scalar(select(BarberProfile).where(func.lower(BarberProfile.slug) == slug))
            if profile is not None:
                return profile
        return None

    def _resolve_or_create(self, db, req) -> BarberProfile:
        profile = self._find_profile(db, req)
        if profile is not None:
            return profile
        if not req.business_name:
            raise NotFoundError("Profile not found")
        slug = slugify(req.slug or req.business_name)
        if not slug:
            raise ValidationError("Could not compute slug from business name")
        try:
            return self._create_placeholder(db, req, slug)
        except IntegrityError:
            # Another request created the same listing first.
            db.rollback()
            profile = db.scalar(select(BarberProfile).where(func.lower(BarberProfile.slug) == slug))
            if profile is None:
                raise ConflictError("Profile is being created, please retry") from None
            return profile

    def _create_placeholder(self, db, req, slug: str) -> BarberProfile:
        profile = BarberProfile(
            slug=slug,
            business_name=req.business_name,
            owner_name=req.owner_name or req.business_name,
            phone=req.phone,
            email=req.email.strip().lower() if req.email else None,
            address=req.address,
            city=req.city,
            state=req.state,
            zip_code=req.zip_code,
            bio=(
                f"Professional services at {req.business_name}. "
                "Contact us for appointments and more information."
            ),
            is_claimed=False,
            is_active=True,
            import_source=req.import_source or "csv",
            import_external_id=req.import_external_id,
        )
        db.add(profile)
        db.flush()
        logger.info("claim_placeholder_created barber_id=%s slug=%s", profile.id, profile.slug)
        return profile

    def _live_token(self, db, barber_id: str) -> ClaimToken:
        now = utcnow()
        existing = db.scalar(
            select(ClaimToken)
            .where(
                ClaimToken.barber_id == barber_id,
                ClaimToken.consumed_at.is_(None),
                ClaimToken.expires_at > now,
            )
            .order_by(ClaimToken.expires_at.desc())
            .limit(1)
        )
        if existing is not None:
            return existing
        token = ClaimToken(barber_id=barber_id, token=secrets.token_hex(32), expires_at=now + self.token_ttl)
        db.add(token)
        return token

    def _find_user_id(self, db, email: str) -> str | None:
        return db.scalar(select(UserProfile.id).where(func.lower(UserProfile.email) == email.lower()).limit(1))

    def _ensure_user(self, email: str, profile: BarberProfile) -> str:
        with self.session_factory() as db:
            user_id = self._find_user_id(db, email)
            if user_id:
                return user_id
        first, _, last = (profile.owner_name or "").partition(" ")
        user_id = self.auth_admin.create_user(
            email,
            {
                "user_type": "barber",
                "source": "claim_flow",
                "business_name": profile.business_name,
                "first_name": first,
                "last_name": last,
            },
        )
        with self.session_factory() as db:
            if db.get(UserProfile, user_id) is None:
                db.add(UserProfile(id=user_id, email=email, user_type="barber"))
                db.commit()
        logger.info("claim_user_created user_id=%s", user_id)
        return user_id

    def start(self, req) -> dict:
        """Issue (or reuse) a claim token and, given an email, a magic link."""

        if not (req.barber_id or req.slug or req.business_name):
            raise ValidationError("Missing slug or business name")

        with self.session_factory() as db:
            profile = self._resolve_or_create(db, req)
            if profile.is_claimed:
                raise ConflictError("Profile already claimed")
            token = self._live_token(db, profile.id).token
            db.commit()

        url = claim_url(token)
        email = (req.email or "").strip().lower()
        if not email:
            return {
                "success": True,
                "needsEmail": True,
                "claimUrl": url,
                "message": "Email required to create account for claiming",
            }

        self._ensure_user(email, profile)
        try:
            action_link = self.auth_admin.generate_magic_link(email, url)
        except UpstreamProviderError:
            logger.warning("claim_magic_link_failed barber_id=%s", profile.id)
            action_link = None
        if not action_link:
            return {
                "success": True,
                "claimUrl": url,
                "token": token,
                "message": "Magic link generation failed, manual login required",
            }
        logger.info("claim_started barber_id=%s", profile.id)
        return {"success": True, "action_link": action_link, "claimUrl": url, "token": token}

    def peek(self, token: str) -> dict:
        """Return prefill data for a live token without changing anything."""

        if not token:
            raise ValidationError("Missing token")
        with self.session_factory() as db:
            claim = db.scalar(select(ClaimToken).where(ClaimToken.token == token))
            if claim is None:
                raise NotFoundError("Invalid or expired claim token")
            if claim.consumed_at is not None:
                raise ValidationError("Claim token already used")
            if as_utc(claim.expires_at) <= utcnow():
                raise ValidationError("Claim token expired")
            profile = db.get(BarberProfile, claim.barber_id)
            if profile is None:
                raise NotFoundError("Profile not found")
            if profile.is_claimed:
                raise ConflictError("Profile already claimed")
            return {"success": True, "profile": {field: getattr(profile, field) for field in PROFILE_FIELDS}}

    def complete(self, token: str, user_id: str | None = None, email: str | None = None) -> dict:
        """Attach the profile to the signed-in user and consume the token."""

        if not token:
            raise ValidationError("Missing token")
        with self.session_factory() as db:
            claim = db.scalar(select(ClaimToken).where(ClaimToken.token == token))
            if claim is None:
                raise ValidationError("Invalid token")
            if claim.consumed_at is not None:
                raise ValidationError("Token already used")
            if as_utc(claim.expires_at) <= utcnow():
                raise ValidationError("Token expired")

            if not user_id and email:
                user_id = self._find_user_id(db, email.strip())
            if not user_id:
                raise ValidationError(
                    "Could not identify user for claim. Please ensure you followed the magic link."
                )

            profile = db.get(BarberProfile, claim.barber_id)
            if profile is None:
                raise NotFoundError("Profile not found")

            result = db.execute(
                update(BarberProfile)
                .where(
                    BarberProfile.id == profile.id,
                    or_(BarberProfile.is_claimed.is_(False), BarberProfile.user_id == user_id),
                )
                .values(user_id=user_id, is_claimed=True, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.rollback()
                logger.info("claim_conflict barber_id=%s user_id=%s", profile.id, user_id)
                raise ConflictError("Profile already claimed by another user")
            db.commit()
            claimed = {"id": profile.id, "slug": profile.slug, "business_name": profile.business_name}
            claim_id = claim.id

        self._consume(claim_id)
        logger.info("claim_completed barber_id=%s user_id=%s", claimed["id"], user_id)
        return {"success": True, "profile": claimed}

    def _consume(self, claim_id: str) -> None:
        try:
            with self.session_factory() as db:
                db.execute(
                    update(ClaimToken)
                    .where(ClaimToken.id == claim_id, ClaimToken.consumed_at.is_(None))
                    .values(consumed_at=utcnow())
                )
                db.commit()
        except Exception:
            # The profile is already claimed; a leftover live token is rejected by the is_claimed check.
            logger.exception("claim_token_consume_failed claim_id=%s", claim_id)
