"""
Entitlement resolver — decides whether an account currently has Pro access.

Pure functions over a subscription record, a config snapshot and a clock
reading. No I/O and no side effects; for a well-formed record they always
return a value. Drift between the local record and the billing provider is
never corrected here: the record is trusted as of its last sync.

Access sources are a prioritized list of named rules. The first rule that
grants access is reported as the reason; the result is the OR of all rules.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.core.timeutils import naive_utc
from app.models import SubscriptionConfig, UserSubscription
from app.models.user_subscription import TIER_PRO, STATUS_ACTIVE, STATUS_TRIALING

ONE_DAY = timedelta(days=1)


def _is_after(moment: Optional[datetime], now: datetime) -> bool:
    return moment is not None and naive_utc(moment) > naive_utc(now)


@dataclass(frozen=True)
class AccessRule:
    name: str
    grants: Callable[[UserSubscription, datetime], bool]


@dataclass(frozen=True)
class AccessDecision:
    has_pro: bool
    reason: Optional[str] = None


def _admin_grant(sub: UserSubscription, now: datetime) -> bool:
    if not sub.admin_granted_pro:
        return False
    return sub.admin_grant_expires_at is None or _is_after(sub.admin_grant_expires_at, now)


def _paid_subscription(sub: UserSubscription, now: datetime) -> bool:
    if sub.tier != TIER_PRO or sub.status != STATUS_ACTIVE:
        return False
    # No period end means Pro was set without a billing record
    if sub.stripe_current_period_end is None:
        return True
    return _is_after(sub.stripe_current_period_end, now)


def _trial(sub: UserSubscription, now: datetime) -> bool:
    if sub.tier != TIER_PRO or sub.status != STATUS_TRIALING:
        return False
    return _is_after(sub.trial_ends_at, now)


def has_active_admin_grant(sub: UserSubscription, now: datetime) -> bool:
    return _admin_grant(sub, now)


ACCESS_RULES = (
    AccessRule("admin_grant", _admin_grant),
    AccessRule("paid_subscription", _paid_subscription),
    AccessRule("trial", _trial),
)


def resolve_access(sub: Optional[UserSubscription], now: datetime) -> AccessDecision:
    """Evaluate every access rule in priority order and report the first match."""
    if sub is None:
        return AccessDecision(has_pro=False)
    for rule in ACCESS_RULES:
        if rule.grants(sub, now):
            return AccessDecision(has_pro=True, reason=rule.name)
    return AccessDecision(has_pro=False)


def has_pro_access(sub: Optional[UserSubscription], now: datetime) -> bool:
    return resolve_access(sub, now).has_pro


def trial_days_remaining(sub: Optional[UserSubscription], now: datetime) -> Optional[int]:
    """
    Whole days left in a trial, rounded up. None unless the record is trialing
    with a trial end set.
    """
    if sub is None or sub.status != STATUS_TRIALING or sub.trial_ends_at is None:
        return None
    remaining = (naive_utc(sub.trial_ends_at) - naive_utc(now)) / ONE_DAY
    return max(0, math.ceil(remaining))


def can_save_recipe(
    sub: Optional[UserSubscription],
    config: SubscriptionConfig,
    current_count: int,
    now: datetime,
) -> bool:
    """Pro accounts save without limit; everyone else is capped at the free limit."""
    if has_pro_access(sub, now):
        return True
    return current_count < config.free_recipe_limit
