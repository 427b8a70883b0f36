"""
Pause/resume controller.

    active --pause(resume_date)--> paused --resume()--> active
                                   paused --resume_date passes--> active

Stripe is told first; local state is written only once Stripe accepted the
change, so a provider failure leaves the record as it was.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.timeutils import start_of_day, utcnow
from app.models import UserSubscription
from app.models.user_subscription import TIER_PRO, STATUS_ACTIVE, STATUS_PAUSED, STATUS_TRIALING
from app.services.exceptions import PreconditionFailed
from app.services.stripe_provider import StripeBillingProvider
from app.services.subscription_events import SubscriptionEventLog, PAUSED, RESUMED, AUTO_RESUMED
from app.services.subscription_records import SubscriptionRecordManager, OWNER_PAUSE

logger = logging.getLogger(__name__)

_RESUMED_FIELDS = {"status": STATUS_ACTIVE, "paused_at": None, "pause_resumes_at": None}


class PauseController:

    @staticmethod
    def pause(
        db: Session,
        provider: StripeBillingProvider,
        account_id: str,
        resume_date: Union[date, datetime],
        now: Optional[datetime] = None,
        max_days: Optional[int] = None,
    ) -> UserSubscription:
        now = now or utcnow()
        if max_days is None:
            max_days = get_settings().PAUSE_MAX_DAYS
        resumes_at = start_of_day(resume_date)

        record = SubscriptionRecordManager.get(db, account_id)
        PauseController._check_can_pause(record)

        if resumes_at <= now:
            raise PreconditionFailed("Resume date must be in the future.")
        if resumes_at > now + timedelta(days=max_days):
            raise PreconditionFailed(f"Subscriptions can be paused for at most {max_days} days.")

        provider.pause_subscription(record.stripe_subscription_id, resumes_at)

        record = SubscriptionRecordManager.update(
            db,
            account_id,
            {"status": STATUS_PAUSED, "paused_at": now, "pause_resumes_at": resumes_at},
            owner=OWNER_PAUSE,
            now=now,
        )
        SubscriptionEventLog.record(
            db, account_id, PAUSED,
            details={"resumes_at": resumes_at.isoformat()},
            actor_id=account_id,
        )
        logger.info("Account %s paused until %s", account_id, resumes_at.date())
        return record

    @staticmethod
    def resume(
        db: Session,
        provider: StripeBillingProvider,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> UserSubscription:
        record = SubscriptionRecordManager.get(db, account_id)
        if record.status != STATUS_PAUSED:
            raise PreconditionFailed("Subscription is not paused.")

        if record.stripe_subscription_id:
            provider.resume_subscription(record.stripe_subscription_id)

        record = SubscriptionRecordManager.update(db, account_id, dict(_RESUMED_FIELDS), owner=OWNER_PAUSE, now=now)
        SubscriptionEventLog.record(db, account_id, RESUMED, actor_id=account_id)
        logger.info("Account %s resumed", account_id)
        return record

    @staticmethod
    def reconcile_expired_pause(
        db: Session,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[UserSubscription]:
        """
        Flip a paused record back to active once its resume date has passed.
        Stripe resumes collection on its own at ``resumes_at``, so no provider call.
        """
        now = now or utcnow()
        record = SubscriptionRecordManager.find(db, account_id)
        if record is None or record.status != STATUS_PAUSED:
            return record
        if record.pause_resumes_at is None or record.pause_resumes_at > now:
            return record

        record = SubscriptionRecordManager.update(db, account_id, dict(_RESUMED_FIELDS), owner=OWNER_PAUSE, now=now)
        SubscriptionEventLog.record(db, account_id, AUTO_RESUMED)
        logger.info("Account %s auto-resumed after pause ended", account_id)
        return record

    @staticmethod
    def _check_can_pause(record: UserSubscription) -> None:
        if record.status == STATUS_PAUSED:
            raise PreconditionFailed("Subscription is already paused.")
        if record.status == STATUS_TRIALING:
            raise PreconditionFailed("Trials cannot be paused. Cancel the trial instead.")
        if not record.stripe_subscription_id:
            raise PreconditionFailed("No active paid subscription to pause.")
        if record.tier != TIER_PRO or record.status != STATUS_ACTIVE:
            raise PreconditionFailed("Only active subscriptions can be paused.")
        if record.cancel_at_period_end:
            raise PreconditionFailed("Subscription is already scheduled to cancel.")
