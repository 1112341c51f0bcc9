"""HTTP surface for claiming imported barber profiles."""

from fastapi import Request

from kutable.common.config import settings
from kutable.common.db import SessionLocal
from kutable.common.http import client_ip, create_app
from kutable.common.logging import configure_logging, log_startup_config
from kutable.common.rate_limit import RateLimiter
from kutable.common.tracing import setup_tracing
from kutable.services.claims.auth_admin import SupabaseAuthAdmin
from kutable.services.claims.schemas import ClaimCompleteRequest, ClaimPeekRequest, ClaimStartRequest
from kutable.services.claims.service import ClaimService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "POSTGRES_DSN", "REDIS_URL", "SUPABASE_URL", "SITE_URL", "CLAIM_TOKEN_TTL_HOURS"],
)
service = ClaimService(SessionLocal, SupabaseAuthAdmin())
limiter = RateLimiter.from_url()

app = create_app("Kutable Claims")


def _limit(request: Request, action: str) -> None:
    limiter.consume(action, client_ip(request), settings.claim_rate_limit_per_minute)


@app.post("/claim-start")
def claim_start(req: ClaimStartRequest, request: Request):
    """Issue a claim token for a listing and email a magic link when possible."""

    _limit(request, "claim_start")
    return service.start(req)


@app.post("/claim-peek")
def claim_peek(req: ClaimPeekRequest, request: Request):
    """Prefill data for the claim page; does not consume the token."""

    _limit(request, "claim_peek")
    return service.peek(req.token)


@app.post("/claim-complete")
def claim_complete(req: ClaimCompleteRequest, request: Request):
    """Attach the listing to the signed-in user."""

    _limit(request, "claim_complete")
    return service.complete(req.token, user_id=req.user_id, email=req.email)
