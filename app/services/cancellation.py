"""
Cancellation and retention offer.

The reason → offer → confirm negotiation lives on the client
(``subscription_client.CancellationFlow``); the server only sees the two
terminal actions, ``accept_offer`` and ``cancel``. Offer eligibility is
re-checked on accept since the account may have changed since the offer
was shown.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models import SubscriptionConfig, UserSubscription
from app.models.user_subscription import STATUS_ACTIVE, STATUS_TRIALING
from app.services.entitlements import has_active_admin_grant
from app.services.exceptions import PreconditionFailed
from app.services.stripe_provider import StripeBillingProvider
from app.services.subscription_config_service import SubscriptionConfigService
from app.services.subscription_events import (
    SubscriptionEventLog, CANCELLATION_SCHEDULED, RETENTION_OFFER_ACCEPTED,
)
from app.services.subscription_records import (
    SubscriptionRecordManager, OWNER_CANCELLATION, has_live_billing_subscription,
)
from app.services.trial_lifecycle import TrialLifecycle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionOffer:
    offer_available: bool
    discount_percent: Optional[int] = None
    duration_months: Optional[int] = None
    message: Optional[str] = None


class _TemplateValues(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def render_offer_message(config: SubscriptionConfig) -> str:
    """
    Fill ``{discount_percent}`` / ``{duration_months}`` placeholders in the
    admin-edited template. Unknown placeholders are left as written.
    """
    template = config.cancel_offer_message or ""
    values = _TemplateValues(
        discount_percent=config.cancel_offer_discount_percent,
        duration_months=config.cancel_offer_duration_months,
    )
    try:
        return template.format_map(values)
    except (ValueError, IndexError, AttributeError):
        return template


def offer_eligible(record: UserSubscription, config: SubscriptionConfig, now: datetime) -> bool:
    if not config.cancel_offer_enabled:
        return False
    if not has_live_billing_subscription(record):
        return False
    if record.status != STATUS_ACTIVE:
        return False
    # Someone with a running admin grant is not paying for Pro anyway
    return not has_active_admin_grant(record, now)


class CancellationService:

    @staticmethod
    def get_offer(db: Session, account_id: str, now: Optional[datetime] = None) -> RetentionOffer:
        now = now or utcnow()
        record = SubscriptionRecordManager.get(db, account_id)
        config = SubscriptionConfigService.get(db)
        if not offer_eligible(record, config, now):
            return RetentionOffer(offer_available=False)
        return RetentionOffer(
            offer_available=True,
            discount_percent=config.cancel_offer_discount_percent,
            duration_months=config.cancel_offer_duration_months,
            message=render_offer_message(config),
        )

    @staticmethod
    def accept_offer(
        db: Session,
        provider: StripeBillingProvider,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> UserSubscription:
        """Apply the retention discount and call off any scheduled cancellation."""
        now = now or utcnow()
        record = SubscriptionRecordManager.get(db, account_id)
        config = SubscriptionConfigService.get(db)
        if not offer_eligible(record, config, now):
            raise PreconditionFailed("This offer is no longer available for your account.")

        percent = config.cancel_offer_discount_percent
        months = config.cancel_offer_duration_months
        provider.apply_retention_discount(record.stripe_subscription_id, account_id, percent, months)

        record = SubscriptionRecordManager.update(
            db, account_id, {"cancel_at_period_end": False}, owner=OWNER_CANCELLATION, now=now
        )
        SubscriptionEventLog.record(
            db, account_id, RETENTION_OFFER_ACCEPTED,
            details={"discount_percent": percent, "duration_months": months},
            actor_id=account_id,
        )
        logger.info("Account %s accepted retention offer (%s%% for %s months)", account_id, percent, months)
        return record

    @staticmethod
    def cancel(
        db: Session,
        provider: StripeBillingProvider,
        account_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UserSubscription:
        """
        Paid subscriptions end at period end; a bare trial ends immediately.
        The branch is chosen by whether a Stripe subscription is linked.
        """
        record = SubscriptionRecordManager.get(db, account_id)

        if record.stripe_subscription_id:
            if not has_live_billing_subscription(record):
                raise PreconditionFailed("Subscription is already cancelled.")
            if record.cancel_at_period_end:
                return record

            provider.set_cancel_at_period_end(record.stripe_subscription_id, True)
            record = SubscriptionRecordManager.update(
                db, account_id, {"cancel_at_period_end": True}, owner=OWNER_CANCELLATION, now=now
            )
            period_end = record.stripe_current_period_end
            SubscriptionEventLog.record(
                db, account_id, CANCELLATION_SCHEDULED,
                reason=reason,
                details={"period_end": period_end.isoformat() if period_end else None},
                actor_id=account_id,
            )
            logger.info("Account %s scheduled cancellation. Reason: %s", account_id, reason or "Not provided")
            return record

        if record.status == STATUS_TRIALING:
            return TrialLifecycle.cancel_trial(db, account_id, reason=reason, now=now)

        raise PreconditionFailed("There is no active subscription to cancel.")
