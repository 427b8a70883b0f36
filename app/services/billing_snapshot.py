"""
Provider snapshot → local subscription fields.

Sync and the webhook both end up here, so there is exactly one mapping from
Stripe's subscription object to our columns. ``derive_record_fields`` is pure:
the same snapshot over the same record always yields the same fields, which
is what makes re-applying a snapshot a no-op.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.timeutils import from_unix
from app.models import UserSubscription
from app.models.user_subscription import (
    TIER_FREE, TIER_PRO, STATUS_ACTIVE, STATUS_CANCELLED, STATUS_PAUSED, STATUS_TRIALING,
)

# Stripe statuses that keep Pro. Dunning (past_due/unpaid) stays Pro until
# Stripe gives up and deletes the subscription.
PRO_STATUSES = {
    "active": STATUS_ACTIVE,
    "trialing": STATUS_TRIALING,
    "past_due": STATUS_ACTIVE,
    "unpaid": STATUS_ACTIVE,
}
ENDED_STATUSES = frozenset({"canceled", "incomplete_expired"})


@dataclass(frozen=True)
class ProviderSnapshot:
    subscription_id: str
    customer_id: Optional[str]
    status: str
    price_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    trial_end: Optional[datetime] = None
    pause_resumes_at: Optional[datetime] = None
    account_id: Optional[str] = None

    @classmethod
    def from_stripe(cls, obj: dict) -> "ProviderSnapshot":
        items = (obj.get("items") or {}).get("data") or [{}]
        first_item = items[0] or {}
        period_end = obj.get("current_period_end") or first_item.get("current_period_end")
        pause = obj.get("pause_collection") or {}

        return cls(
            subscription_id=obj["id"],
            customer_id=obj.get("customer"),
            status=obj.get("status", ""),
            price_id=(first_item.get("price") or {}).get("id"),
            current_period_end=from_unix(period_end),
            cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
            trial_end=from_unix(obj.get("trial_end")),
            pause_resumes_at=from_unix(pause.get("resumes_at")),
            account_id=(obj.get("metadata") or {}).get("account_id"),
        )

    @property
    def is_pending(self) -> bool:
        return self.status not in PRO_STATUSES and self.status not in ENDED_STATUSES


def derive_record_fields(
    snapshot: ProviderSnapshot,
    record: UserSubscription,
    now: datetime,
) -> Optional[dict]:
    """
    Columns to write for this snapshot, or None when the snapshot must not
    touch the record (checkout still incomplete, or an ended subscription
    that has already been replaced by another one).
    """
    if snapshot.is_pending:
        return None

    if snapshot.status in ENDED_STATUSES:
        if record.stripe_subscription_id and record.stripe_subscription_id != snapshot.subscription_id:
            return None
        return {
            "tier": TIER_FREE,
            "status": STATUS_CANCELLED,
            "stripe_customer_id": snapshot.customer_id or record.stripe_customer_id,
            "stripe_subscription_id": None,
            "stripe_price_id": None,
            "stripe_current_period_end": None,
            "cancel_at_period_end": False,
            "trial_started_at": None,
            "trial_ends_at": None,
            "paused_at": None,
            "pause_resumes_at": None,
        }

    fields = {
        "tier": TIER_PRO,
        "status": PRO_STATUSES[snapshot.status],
        "stripe_customer_id": snapshot.customer_id or record.stripe_customer_id,
        "stripe_subscription_id": snapshot.subscription_id,
        "stripe_price_id": snapshot.price_id,
        "stripe_current_period_end": snapshot.current_period_end,
        "cancel_at_period_end": snapshot.cancel_at_period_end,
        "paused_at": None,
        "pause_resumes_at": None,
    }

    if fields["status"] == STATUS_TRIALING:
        fields["trial_started_at"] = record.trial_started_at or now
        fields["trial_ends_at"] = snapshot.trial_end
    else:
        fields["trial_started_at"] = None
        fields["trial_ends_at"] = None

    if snapshot.pause_resumes_at is not None and snapshot.pause_resumes_at > now:
        fields["status"] = STATUS_PAUSED
        fields["paused_at"] = record.paused_at or now
        fields["pause_resumes_at"] = snapshot.pause_resumes_at

    return fields
