"""
SubscriptionRecordManager — the only writer of ``user_subscriptions`` rows.

Writes are partial: each call names the component that owns the write and
only that component's columns may appear in it. The UPDATE statement carries
the changed columns only, so a webhook-driven sync and a manual pause racing
on the same account do not clobber each other's fields. A write whose values
already match the row is a no-op and leaves ``updated_at`` untouched.

Usage:
    record = SubscriptionRecordManager.update(
        db, account_id, {"cancel_at_period_end": True}, owner=OWNER_CANCELLATION
    )
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models import UserSubscription
from app.models.user_subscription import (
    TIER_FREE, STATUS_ACTIVE, STATUS_CANCELLED,
)
from app.services.exceptions import SubscriptionNotFound

logger = logging.getLogger(__name__)

OWNER_TRIAL = "trial"
OWNER_BILLING_SYNC = "billing_sync"
OWNER_PAUSE = "pause"
OWNER_CANCELLATION = "cancellation"
OWNER_ADMIN_GRANT = "admin_grant"
OWNER_RESET = "reset"

TRIAL_FIELDS = frozenset({"trial_started_at", "trial_ends_at"})
BILLING_FIELDS = frozenset({
    "stripe_customer_id",
    "stripe_subscription_id",
    "stripe_price_id",
    "stripe_current_period_end",
    "cancel_at_period_end",
})
PAUSE_FIELDS = frozenset({"paused_at", "pause_resumes_at"})
ADMIN_GRANT_FIELDS = frozenset({
    "admin_granted_pro",
    "admin_granted_by",
    "admin_grant_expires_at",
    "admin_grant_note",
})
ACCESS_FIELDS = frozenset({"tier", "status"})

STATE_FIELDS = ACCESS_FIELDS | TRIAL_FIELDS | BILLING_FIELDS | PAUSE_FIELDS | ADMIN_GRANT_FIELDS

FIELD_OWNERSHIP = {
    OWNER_TRIAL: ACCESS_FIELDS | TRIAL_FIELDS,
    # The provider snapshot owns billing, trial end (provider trials) and pause state
    OWNER_BILLING_SYNC: ACCESS_FIELDS | BILLING_FIELDS | TRIAL_FIELDS | PAUSE_FIELDS,
    OWNER_PAUSE: frozenset({"status"}) | PAUSE_FIELDS,
    OWNER_CANCELLATION: frozenset({"cancel_at_period_end"}),
    OWNER_ADMIN_GRANT: ACCESS_FIELDS | ADMIN_GRANT_FIELDS,
    OWNER_RESET: STATE_FIELDS,
}

FREE_TIER_DEFAULTS = {
    "tier": TIER_FREE,
    "status": STATUS_ACTIVE,
    "trial_started_at": None,
    "trial_ends_at": None,
    "stripe_customer_id": None,
    "stripe_subscription_id": None,
    "stripe_price_id": None,
    "stripe_current_period_end": None,
    "cancel_at_period_end": False,
    "admin_granted_pro": False,
    "admin_granted_by": None,
    "admin_grant_expires_at": None,
    "admin_grant_note": None,
    "paused_at": None,
    "pause_resumes_at": None,
}


class FieldOwnershipError(ValueError):
    """A component tried to write columns it does not own."""
    pass


def has_live_billing_subscription(record: UserSubscription) -> bool:
    """True when a provider subscription is linked and has not ended."""
    return bool(record.stripe_subscription_id) and record.status != STATUS_CANCELLED


class SubscriptionRecordManager:

    @staticmethod
    def find(db: Session, account_id: str) -> Optional[UserSubscription]:
        return (
            db.query(UserSubscription)
            .filter(UserSubscription.account_id == account_id)
            .populate_existing()
            .first()
        )

    @staticmethod
    def get(db: Session, account_id: str) -> UserSubscription:
        record = SubscriptionRecordManager.find(db, account_id)
        if record is None:
            raise SubscriptionNotFound(f"Subscription record not found for account {account_id}")
        return record

    @staticmethod
    def find_by_stripe_subscription(db: Session, subscription_id: str) -> Optional[UserSubscription]:
        if not subscription_id:
            return None
        return (
            db.query(UserSubscription)
            .filter(UserSubscription.stripe_subscription_id == subscription_id)
            .populate_existing()
            .first()
        )

    @staticmethod
    def find_by_stripe_customer(db: Session, customer_id: str) -> Optional[UserSubscription]:
        if not customer_id:
            return None
        return (
            db.query(UserSubscription)
            .filter(UserSubscription.stripe_customer_id == customer_id)
            .populate_existing()
            .first()
        )

    @staticmethod
    def list_all(db: Session) -> List[UserSubscription]:
        return db.query(UserSubscription).order_by(UserSubscription.created_at.desc()).all()

    @staticmethod
    def create(db: Session, account_id: str, fields: dict, owner: str) -> UserSubscription:
        """
        Insert the record for a new account. If another request provisioned it
        first, the existing record is returned untouched.
        """
        SubscriptionRecordManager._check_ownership(fields, owner)
        now = utcnow()
        record = UserSubscription(
            account_id=account_id,
            **{**FREE_TIER_DEFAULTS, **fields},
            created_at=now,
            updated_at=now,
        )
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("Subscription record for %s already provisioned", account_id)
            return SubscriptionRecordManager.get(db, account_id)
        db.refresh(record)
        return record

    @staticmethod
    def update(
        db: Session,
        account_id: str,
        fields: dict,
        owner: str,
        now: Optional[datetime] = None,
    ) -> UserSubscription:
        """Write only the given columns, and only those that actually change."""
        SubscriptionRecordManager._check_ownership(fields, owner)
        record = SubscriptionRecordManager.get(db, account_id)

        changes = {
            name: value for name, value in fields.items()
            if getattr(record, name) != value
        }
        if not changes:
            return record

        changes["updated_at"] = now or utcnow()
        db.query(UserSubscription).filter(
            UserSubscription.account_id == account_id
        ).update(changes, synchronize_session=False)
        db.commit()
        db.refresh(record)

        logger.debug("Subscription %s updated by %s: %s", account_id, owner, sorted(changes))
        return record

    @staticmethod
    def reset_to_free_tier(db: Session, account_id: str) -> UserSubscription:
        """Clear every derived field back to free/active (support remediation)."""
        record = SubscriptionRecordManager.get(db, account_id)
        if has_live_billing_subscription(record):
            logger.warning(
                "Resetting %s detaches live Stripe subscription %s",
                account_id, record.stripe_subscription_id,
            )
        return SubscriptionRecordManager.update(
            db, account_id, dict(FREE_TIER_DEFAULTS), owner=OWNER_RESET
        )

    @staticmethod
    def _check_ownership(fields: dict, owner: str) -> None:
        allowed = FIELD_OWNERSHIP.get(owner)
        if allowed is None:
            raise FieldOwnershipError(f"Unknown subscription field owner: {owner}")
        foreign = set(fields) - allowed
        if foreign:
            raise FieldOwnershipError(f"{owner} may not write {', '.join(sorted(foreign))}")
