"""
Stripe adapter — the only module that talks to the billing provider.

Required environment variables:
    STRIPE_SECRET_KEY       — Stripe secret key (sk_live_... or sk_test_...)
    STRIPE_WEBHOOK_SECRET   — Stripe webhook signing secret (whsec_...)

Every call returns plain dicts. Stripe errors are re-raised as
BillingProviderError carrying Stripe's user-facing message; nothing is retried
here (``max_network_retries = 0``), retry is the caller's decision.
"""
import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

import stripe

from app.core.config import get_settings
from app.services.exceptions import BillingNotConfigured, BillingProviderError, PreconditionFailed

logger = logging.getLogger(__name__)


def _to_dict(obj) -> dict:
    """StripeObject → plain dict."""
    if obj is None:
        return {}
    return json.loads(str(obj))


def _unix(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


@contextmanager
def _stripe_call(operation: str):
    try:
        yield
    except stripe.StripeError as e:
        message = getattr(e, "user_message", None) or str(e) or "Stripe request failed"
        logger.error("Stripe %s failed: %s", operation, message)
        raise BillingProviderError(message) from e


class StripeBillingProvider:

    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None):
        stripe.api_key = secret_key
        stripe.max_network_retries = 0
        self.webhook_secret = webhook_secret

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def find_customer(self, account_id: str) -> Optional[str]:
        """Look up a customer previously created for this account."""
        with _stripe_call("customer search"):
            result = stripe.Customer.search(query=f"metadata['account_id']:'{account_id}'", limit=1)
        customers = _to_dict(result).get("data") or []
        return customers[0]["id"] if customers else None

    def create_customer(self, account_id: str, email: Optional[str] = None) -> str:
        with _stripe_call("customer create"):
            customer = stripe.Customer.create(
                email=email,
                metadata={"account_id": account_id},
                # Replays within Stripe's idempotency window return the same customer
                idempotency_key=f"customer-{account_id}",
            )
        logger.info("Created Stripe customer %s for account %s", customer.id, account_id)
        return customer.id

    # ------------------------------------------------------------------
    # Hosted pages
    # ------------------------------------------------------------------

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        account_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        with _stripe_call("checkout session"):
            session = stripe.checkout.Session.create(
                customer=customer_id,
                client_reference_id=account_id,
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                subscription_data={"metadata": {"account_id": account_id}},
            )
        return session.url

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        with _stripe_call("portal session"):
            session = stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url)
        return session.url

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def get_latest_subscription(self, customer_id: str) -> Optional[dict]:
        """Most recent subscription of the customer in any status, or None."""
        with _stripe_call("subscription list"):
            result = stripe.Subscription.list(customer=customer_id, status="all", limit=1)
        subscriptions = _to_dict(result).get("data") or []
        return subscriptions[0] if subscriptions else None

    def get_subscription(self, subscription_id: str) -> dict:
        with _stripe_call("subscription retrieve"):
            return _to_dict(stripe.Subscription.retrieve(subscription_id))

    def pause_subscription(self, subscription_id: str, resumes_at: datetime) -> dict:
        with _stripe_call("subscription pause"):
            subscription = stripe.Subscription.modify(
                subscription_id,
                pause_collection={"behavior": "void", "resumes_at": _unix(resumes_at)},
            )
        return _to_dict(subscription)

    def resume_subscription(self, subscription_id: str) -> dict:
        with _stripe_call("subscription resume"):
            # An empty string unsets pause_collection
            subscription = stripe.Subscription.modify(subscription_id, pause_collection="")
        return _to_dict(subscription)

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool = True) -> dict:
        with _stripe_call("subscription cancel"):
            subscription = stripe.Subscription.modify(subscription_id, cancel_at_period_end=cancel)
        return _to_dict(subscription)

    def apply_retention_discount(
        self,
        subscription_id: str,
        account_id: str,
        percent_off: int,
        duration_months: int,
    ) -> dict:
        """Create a one-off repeating coupon and attach it to the subscription."""
        with _stripe_call("retention discount"):
            coupon = stripe.Coupon.create(
                id=f"retention_{account_id[:8]}_{int(time.time())}",
                percent_off=percent_off,
                duration="repeating",
                duration_in_months=duration_months,
                name=f"Retention offer {percent_off}% off",
            )
            subscription = stripe.Subscription.modify(
                subscription_id,
                discounts=[{"coupon": coupon.id}],
                cancel_at_period_end=False,
            )
        logger.info("Applied retention coupon %s to subscription %s", coupon.id, subscription_id)
        return _to_dict(subscription)

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_event(self, payload: bytes, sig_header: str) -> dict:
        """Verify the webhook signature and return the event as a plain dict."""
        if not self.webhook_secret:
            raise BillingNotConfigured("STRIPE_WEBHOOK_SECRET is not configured.")
        try:
            stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Stripe webhook signature verification failed: %s", e)
            raise PreconditionFailed(f"Webhook signature invalid: {e}") from e
        return json.loads(payload)


def get_billing_provider() -> StripeBillingProvider:
    """FastAPI dependency. Tests override it with an in-memory fake."""
    settings = get_settings()
    if not settings.STRIPE_SECRET_KEY:
        raise BillingNotConfigured("Stripe is not configured. Set STRIPE_SECRET_KEY in the environment.")
    return StripeBillingProvider(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
