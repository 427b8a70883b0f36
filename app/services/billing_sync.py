"""
Billing sync gateway — reconciles local subscription records with Stripe.

Two entry points converge on ``apply_snapshot``:
    - ``sync``: pulled by the client after the checkout redirect
    - ``handle_webhook_event``: pushed by Stripe
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models import Account, UserSubscription
from app.services.billing_snapshot import ProviderSnapshot, derive_record_fields
from app.services.exceptions import BillingNotConfigured, BillingProviderError, PreconditionFailed
from app.services.stripe_provider import StripeBillingProvider
from app.services.subscription_config_service import SubscriptionConfigService
from app.services.subscription_events import SubscriptionEventLog, PROVIDER_SNAPSHOT_APPLIED
from app.services.subscription_records import (
    SubscriptionRecordManager, OWNER_BILLING_SYNC, has_live_billing_subscription,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})


class BillingSyncGateway:

    @staticmethod
    def ensure_customer(db: Session, provider: StripeBillingProvider, account: Account) -> str:
        """
        Return the account's Stripe customer, creating it at most once.
        Order: local record, then a Stripe search by account metadata, then create.
        """
        record = SubscriptionRecordManager.get(db, account.id)
        if record.stripe_customer_id:
            return record.stripe_customer_id

        customer_id = provider.find_customer(account.id)
        if customer_id is None:
            customer_id = provider.create_customer(account.id, account.email)

        SubscriptionRecordManager.update(
            db, account.id, {"stripe_customer_id": customer_id}, owner=OWNER_BILLING_SYNC
        )
        return customer_id

    @staticmethod
    def apply_snapshot(
        db: Session,
        snapshot: ProviderSnapshot,
        account_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[UserSubscription]:
        """
        Write the fields derived from one provider snapshot. Returns the record,
        or None if the snapshot matched no account or was not applicable.
        """
        now = now or utcnow()
        record = BillingSyncGateway._find_record(db, snapshot, account_id)
        if record is None:
            logger.warning(
                "No subscription record for Stripe subscription %s (customer %s)",
                snapshot.subscription_id, snapshot.customer_id,
            )
            return None

        fields = derive_record_fields(snapshot, record, now)
        if fields is None:
            logger.info(
                "Snapshot %s (%s) not applied to account %s",
                snapshot.subscription_id, snapshot.status, record.account_id,
            )
            return None

        previous_update = record.updated_at
        record = SubscriptionRecordManager.update(
            db, record.account_id, fields, owner=OWNER_BILLING_SYNC, now=now
        )
        if record.updated_at != previous_update:
            SubscriptionEventLog.record(
                db, record.account_id, PROVIDER_SNAPSHOT_APPLIED,
                details={"subscription_id": snapshot.subscription_id, "provider_status": snapshot.status},
            )
            logger.info(
                "Account %s reconciled to %s/%s from Stripe subscription %s",
                record.account_id, record.tier, record.status, snapshot.subscription_id,
            )
        return record

    @staticmethod
    def sync(
        db: Session,
        provider: StripeBillingProvider,
        account: Account,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Pull the latest subscription from Stripe and apply it. Provider errors
        are reported as ``synced: False``; the webhook completes reconciliation later.
        """
        record = SubscriptionRecordManager.get(db, account.id)
        synced = False
        try:
            customer_id = BillingSyncGateway.ensure_customer(db, provider, account)
            subscription = provider.get_latest_subscription(customer_id)
            if subscription is not None:
                applied = BillingSyncGateway.apply_snapshot(
                    db, ProviderSnapshot.from_stripe(subscription), account_id=account.id, now=now
                )
                synced = applied is not None
            else:
                logger.info("No Stripe subscription yet for account %s", account.id)
        except BillingProviderError as e:
            logger.warning("Sync failed for account %s: %s", account.id, e)

        record = SubscriptionRecordManager.get(db, account.id)
        return {"synced": synced, "tier": record.tier, "status": record.status}

    @staticmethod
    def checkout(
        db: Session,
        provider: StripeBillingProvider,
        account: Account,
        interval: str,
        base_url: str,
    ) -> str:
        config = SubscriptionConfigService.get(db)
        price_id = SubscriptionConfigService.price_id_for_interval(config, interval)
        if not price_id:
            raise BillingNotConfigured(f"No Stripe price configured for {interval} billing.")

        record = SubscriptionRecordManager.get(db, account.id)
        if has_live_billing_subscription(record):
            raise PreconditionFailed(
                "This account already has a subscription. Use the billing portal to change plans."
            )

        customer_id = BillingSyncGateway.ensure_customer(db, provider, account)
        base_url = base_url.rstrip("/")
        url = provider.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            account_id=account.id,
            success_url=f"{base_url}/?subscription=success",
            cancel_url=f"{base_url}/?subscription=cancelled",
        )
        logger.info("Checkout session created for account %s (%s)", account.id, interval)
        return url

    @staticmethod
    def portal(
        db: Session,
        provider: StripeBillingProvider,
        account_id: str,
        base_url: str,
    ) -> Optional[str]:
        """Billing portal URL, or None when the account has never subscribed."""
        record = SubscriptionRecordManager.get(db, account_id)
        if not record.stripe_customer_id or not record.stripe_subscription_id:
            return None
        return provider.create_portal_session(record.stripe_customer_id, return_url=base_url)

    @staticmethod
    def handle_webhook_event(
        db: Session,
        provider: StripeBillingProvider,
        event: dict,
        now: Optional[datetime] = None,
    ) -> None:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        logger.info("Stripe webhook received: %s", event_type)

        if event_type == "checkout.session.completed":
            subscription_id = obj.get("subscription")
            if not subscription_id:
                logger.debug("Checkout session %s has no subscription", obj.get("id"))
                return
            subscription = provider.get_subscription(subscription_id)
            BillingSyncGateway.apply_snapshot(
                db,
                ProviderSnapshot.from_stripe(subscription),
                account_id=obj.get("client_reference_id"),
                now=now,
            )

        elif event_type in SUBSCRIPTION_EVENTS:
            BillingSyncGateway.apply_snapshot(db, ProviderSnapshot.from_stripe(obj), now=now)

        elif event_type == "invoice.payment_failed":
            # Stripe runs dunning; the subscription events carry the outcome
            logger.warning(
                "Payment failed for customer %s (invoice %s)", obj.get("customer"), obj.get("id")
            )

        else:
            logger.debug("Unhandled Stripe event: %s", event_type)

    @staticmethod
    def _find_record(
        db: Session,
        snapshot: ProviderSnapshot,
        account_id: Optional[str],
    ) -> Optional[UserSubscription]:
        if account_id:
            return SubscriptionRecordManager.find(db, account_id)
        return (
            SubscriptionRecordManager.find_by_stripe_subscription(db, snapshot.subscription_id)
            or SubscriptionRecordManager.find_by_stripe_customer(db, snapshot.customer_id)
            or (snapshot.account_id and SubscriptionRecordManager.find(db, snapshot.account_id))
            or None
        )
