"""
Subscription endpoints for the signed-in account: state, plans, feature
checks, pause/resume, cancellation and the retention offer.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.limiter import limiter
from app.middleware.auth import get_current_account
from app.models import Account
from app.schemas.subscription import (
    ActionResponse,
    CancelOfferResponse,
    CancelRequest,
    PauseRequest,
    PlanPrice,
    PlansResponse,
    SubscriptionConfigResponse,
    SubscriptionStateResponse,
    ValidateRequest,
    ValidateResponse,
)
from app.services.cancellation import CancellationService
from app.services.pause_controller import PauseController
from app.services.pricing import BILLING_INTERVALS, price_display
from app.services.stripe_provider import StripeBillingProvider, get_billing_provider
from app.services.subscription_config_service import SubscriptionConfigService
from app.services.subscription_events import SubscriptionEventLog, RESET_TO_FREE
from app.services.subscription_records import SubscriptionRecordManager
from app.services.subscription_state import SubscriptionStateService
from app.services.trial_lifecycle import TrialLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["Subscription"])


@router.get("", response_model=SubscriptionStateResponse, summary="Current subscription state")
@limiter.limit("60/minute")
def get_subscription_state(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    return SubscriptionStateService.get_state(db, account.id)


@router.get("/config", response_model=SubscriptionConfigResponse, summary="Pricing and trial configuration")
@limiter.limit("60/minute")
def get_subscription_config(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    return SubscriptionConfigService.get(db)


@router.get("/plans", response_model=PlansResponse, summary="Plans with display prices")
@limiter.limit("60/minute")
def get_plans(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    config = SubscriptionConfigService.get(db)
    plans = [
        PlanPrice(
            **price_display(config, interval),
            available=bool(SubscriptionConfigService.price_id_for_interval(config, interval)),
        )
        for interval in BILLING_INTERVALS
    ]
    return PlansResponse(plans=plans, pro_features=config.pro_features or [])


@router.post("/validate", response_model=ValidateResponse, summary="Check a gated action")
@limiter.limit("120/minute")
def validate_action(
    body: ValidateRequest,
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    return SubscriptionStateService.validate(db, account.id, body.action, feature=body.feature)


# ---------------------------------------------------------------------------
# Pause / resume
# ---------------------------------------------------------------------------

@router.post("/pause", response_model=ActionResponse, summary="Pause billing until a date")
@limiter.limit("5/minute")
def pause_subscription(
    body: PauseRequest,
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    provider: StripeBillingProvider = Depends(get_billing_provider),
):
    record = PauseController.pause(db, provider, account.id, body.resume_date)
    return ActionResponse(
        success=True,
        message=f"Subscription paused until {record.pause_resumes_at.date().isoformat()}.",
    )


@router.post("/resume", response_model=ActionResponse, summary="Resume a paused subscription")
@limiter.limit("5/minute")
def resume_subscription(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    provider: StripeBillingProvider = Depends(get_billing_provider),
):
    PauseController.resume(db, provider, account.id)
    return ActionResponse(success=True, message="Subscription resumed.")


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

@router.get("/cancel-offer", response_model=CancelOfferResponse, summary="Retention offer, if eligible")
@limiter.limit("10/minute")
def get_cancel_offer(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    offer = CancellationService.get_offer(db, account.id)
    return CancelOfferResponse(**offer.__dict__)


@router.post("/cancel-offer/accept", response_model=ActionResponse, summary="Accept the retention offer")
@limiter.limit("5/minute")
def accept_cancel_offer(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    provider: StripeBillingProvider = Depends(get_billing_provider),
):
    CancellationService.accept_offer(db, provider, account.id)
    return ActionResponse(success=True, message="Discount applied. Thanks for staying!")


@router.post("/cancel", response_model=ActionResponse, summary="Cancel the subscription or trial")
@limiter.limit("5/minute")
def cancel_subscription(
    body: CancelRequest,
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    provider: StripeBillingProvider = Depends(get_billing_provider),
):
    record = CancellationService.cancel(db, provider, account.id, reason=body.reason)
    if record.cancel_at_period_end:
        period_end = record.stripe_current_period_end
        until = f" on {period_end.date().isoformat()}" if period_end else " at the end of the billing period"
        return ActionResponse(success=True, message=f"Your subscription will end{until}.")
    return ActionResponse(success=True, message="Your trial has been cancelled.")


@router.post("/cancel-trial", response_model=ActionResponse, summary="End the trial immediately")
@limiter.limit("5/minute")
def cancel_trial(
    body: CancelRequest,
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    TrialLifecycle.cancel_trial(db, account.id, reason=body.reason)
    return ActionResponse(success=True, message="Your trial has been cancelled.")


@router.post("/reset", response_model=ActionResponse, summary="Reset the account to the free tier")
@limiter.limit("3/minute")
def reset_to_free_tier(
    request: Request,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    SubscriptionRecordManager.reset_to_free_tier(db, account.id)
    SubscriptionEventLog.record(db, account.id, RESET_TO_FREE, actor_id=account.id)
    logger.info("Account %s reset to free tier", account.id)
    return ActionResponse(success=True, message="Subscription reset to the free tier.")
