"""
Stripe billing endpoints — checkout, customer portal, sync and webhook handling.

Required environment variables:
    STRIPE_SECRET_KEY       — Stripe secret key (sk_live_... or sk_test_...)
    STRIPE_PUBLISHABLE_KEY  — Stripe publishable key (pk_live_... or pk_test_...)
    STRIPE_WEBHOOK_SECRET   — Stripe webhook signing secret (whsec_...)
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.limiter import limiter
from app.middleware.auth import get_current_account
from app.models import Account
from app.schemas.billing import (
    StripeCheckoutRequest,
    StripeCheckoutResponse,
    StripePortalResponse,
    StripeSyncResponse,
)
from app.services.billing_sync import BillingSyncGateway
from app.services.exceptions import SubscriptionError
from app.services.stripe_provider import StripeBillingProvider, get_billing_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing/stripe", tags=["Billing Stripe"])


# ---------------------------------------------------------------------------
# GET /billing/stripe/config  (public — no auth)
# ---------------------------------------------------------------------------

@router.get(
    "/config",
    summary="Stripe configuration status",
    description="Returns the Stripe publishable key and whether Stripe is configured. No auth required.",
)
@limiter.limit("30/minute")
def get_stripe_config(request: Request):
    settings = get_settings()
    return {
        "publishable_key": settings.STRIPE_PUBLISHABLE_KEY or None,
        "stripe_configured": bool(settings.STRIPE_SECRET_KEY),
    }


# ---------------------------------------------------------------------------
# POST /billing/stripe/checkout
# ---------------------------------------------------------------------------

@router.post(
    "/checkout",
    response_model=StripeCheckoutResponse,
    summary="Create a Stripe Checkout session",
    description=(
        "Creates (or reuses) the Stripe customer for the caller and returns the hosted checkout URL. "
        "Stripe redirects back to the app with ?subscription=success|cancelled."
    ),
)
@limiter.limit("5/minute")
def create_stripe_checkout(
    body: StripeCheckoutRequest,
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    provider: StripeBillingProvider = Depends(get_billing_provider),
):
    settings = get_settings()
    url = BillingSyncGateway.checkout(db, provider, account, body.interval, settings.APP_BASE_URL)
    return StripeCheckoutResponse(url=url)


# ---------------------------------------------------------------------------
# POST /billing/stripe/portal
# ---------------------------------------------------------------------------

@router.post(
    "/portal",
    response_model=StripePortalResponse,
    summary="Create a Stripe Customer Portal session",
    description="Opens the Stripe Customer Portal so the user can manage their subscription.",
)
@limiter.limit("5/minute")
def create_stripe_portal(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    provider: StripeBillingProvider = Depends(get_billing_provider),
):
    settings = get_settings()
    url = BillingSyncGateway.portal(db, provider, account.id, settings.APP_BASE_URL)
    if url is None:
        return StripePortalResponse(
            error="no_subscription",
            message="You don't have a subscription yet. Choose a plan first.",
        )
    return StripePortalResponse(url=url)


# ---------------------------------------------------------------------------
# POST /billing/stripe/sync
# ---------------------------------------------------------------------------

@router.post(
    "/sync",
    response_model=StripeSyncResponse,
    summary="Reconcile with Stripe",
    description="Pulls the latest subscription from Stripe. Safe to call repeatedly, e.g. after the checkout redirect.",
)
@limiter.limit("10/minute")
def sync_stripe_subscription(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    provider: StripeBillingProvider = Depends(get_billing_provider),
):
    return BillingSyncGateway.sync(db, provider, account)


# ---------------------------------------------------------------------------
# POST /billing/stripe/webhooks  (no auth — verified by Stripe signature)
# ---------------------------------------------------------------------------

@router.post(
    "/webhooks",
    summary="Stripe webhook endpoint",
    description=(
        "Receives and processes Stripe events. "
        "Verifies the request signature using STRIPE_WEBHOOK_SECRET."
    ),
    include_in_schema=False,
)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider: StripeBillingProvider = Depends(get_billing_provider),
):
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    # Raises PreconditionFailed (400) on a bad signature
    event = provider.construct_event(payload, sig_header)
    event_type = event.get("type")

    try:
        BillingSyncGateway.handle_webhook_event(db, provider, event)
    except (SubscriptionError, SQLAlchemyError) as e:
        db.rollback()
        logger.error("Error processing Stripe event %s: %s", event_type, e)
        # Return 200 to avoid Stripe retries; the next subscription event or sync reconciles
        return {"received": True, "error": str(e)}

    return {"received": True}
