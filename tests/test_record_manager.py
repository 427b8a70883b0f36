from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models import UserSubscription
from app.services.exceptions import SubscriptionNotFound
from app.services.subscription_records import (
    FieldOwnershipError,
    SubscriptionRecordManager,
    OWNER_ADMIN_GRANT,
    OWNER_BILLING_SYNC,
    OWNER_CANCELLATION,
    OWNER_PAUSE,
    OWNER_TRIAL,
)


def test_get_before_provisioning_raises_not_found(db_session: Session, account):
    with pytest.raises(SubscriptionNotFound):
        SubscriptionRecordManager.get(db_session, account.id)


def test_create_twice_returns_first_record(db_session: Session, account):
    first = SubscriptionRecordManager.create(
        db_session, account.id, {"tier": "pro", "status": "trialing"}, owner=OWNER_TRIAL
    )
    second = SubscriptionRecordManager.create(db_session, account.id, {"tier": "free"}, owner=OWNER_TRIAL)

    assert second.id == first.id
    assert second.tier == "pro"
    assert db_session.query(UserSubscription).count() == 1


@pytest.mark.parametrize("owner,fields", [
    (OWNER_PAUSE, {"admin_granted_pro": False}),
    (OWNER_PAUSE, {"tier": "free"}),
    (OWNER_CANCELLATION, {"status": "cancelled"}),
    (OWNER_ADMIN_GRANT, {"stripe_subscription_id": None}),
    (OWNER_TRIAL, {"paused_at": None}),
    (OWNER_BILLING_SYNC, {"admin_grant_note": None}),
])
def test_writes_outside_owned_fields_are_rejected(db_session: Session, account, make_subscription, owner, fields):
    make_subscription(account.id)
    with pytest.raises(FieldOwnershipError):
        SubscriptionRecordManager.update(db_session, account.id, fields, owner=owner)


def test_unknown_owner_is_rejected(db_session: Session, account, make_subscription):
    make_subscription(account.id)
    with pytest.raises(FieldOwnershipError):
        SubscriptionRecordManager.update(db_session, account.id, {"tier": "pro"}, owner="webhook")


def test_disjoint_writers_do_not_clobber_each_other(db_session: Session, account, make_subscription):
    now = utcnow()
    make_subscription(
        account.id, tier="pro", status="active",
        stripe_customer_id="cus_1", stripe_subscription_id="sub_1",
    )
    SubscriptionRecordManager.update(
        db_session, account.id,
        {"admin_granted_pro": True, "admin_granted_by": "admin-1", "admin_grant_note": "support"},
        owner=OWNER_ADMIN_GRANT,
    )
    record = SubscriptionRecordManager.update(
        db_session, account.id,
        {"status": "paused", "paused_at": now, "pause_resumes_at": now + timedelta(days=10)},
        owner=OWNER_PAUSE,
    )

    assert record.status == "paused"
    assert record.admin_granted_pro is True
    assert record.admin_granted_by == "admin-1"
    assert record.admin_grant_note == "support"
    assert record.stripe_subscription_id == "sub_1"


def test_noop_update_leaves_updated_at_untouched(db_session: Session, account, make_subscription):
    make_subscription(account.id, tier="pro", status="active")
    before = SubscriptionRecordManager.get(db_session, account.id).updated_at

    record = SubscriptionRecordManager.update(
        db_session, account.id, {"tier": "pro", "status": "active"},
        owner=OWNER_ADMIN_GRANT, now=utcnow() + timedelta(hours=1),
    )

    assert record.updated_at == before


def test_update_bumps_updated_at_on_change(db_session: Session, account, make_subscription):
    make_subscription(account.id)
    later = utcnow() + timedelta(hours=1)

    record = SubscriptionRecordManager.update(
        db_session, account.id, {"cancel_at_period_end": True}, owner=OWNER_CANCELLATION, now=later
    )

    assert record.cancel_at_period_end is True
    assert record.updated_at == later


def test_reset_to_free_tier_clears_every_derived_field(db_session: Session, account, make_subscription):
    now = utcnow()
    make_subscription(
        account.id,
        tier="pro", status="paused",
        trial_started_at=now - timedelta(days=20), trial_ends_at=now - timedelta(days=13),
        stripe_customer_id="cus_1", stripe_subscription_id="sub_1", stripe_price_id="price_monthly",
        stripe_current_period_end=now + timedelta(days=10), cancel_at_period_end=True,
        admin_granted_pro=True, admin_granted_by="admin-1", admin_grant_note="vip",
        paused_at=now, pause_resumes_at=now + timedelta(days=5),
    )

    record = SubscriptionRecordManager.reset_to_free_tier(db_session, account.id)

    assert (record.tier, record.status) == ("free", "active")
    assert record.trial_started_at is None and record.trial_ends_at is None
    assert record.stripe_customer_id is None and record.stripe_subscription_id is None
    assert record.stripe_price_id is None and record.stripe_current_period_end is None
    assert record.cancel_at_period_end is False
    assert record.admin_granted_pro is False and record.admin_granted_by is None
    assert record.paused_at is None and record.pause_resumes_at is None


def test_reset_endpoint(client, db_session: Session, account, make_subscription, auth_headers):
    make_subscription(account.id, tier="pro", status="trialing", trial_ends_at=utcnow() + timedelta(days=3))

    response = client.post("/subscription/reset", headers=auth_headers(account))

    assert response.status_code == 200
    assert response.json()["success"] is True
    record = SubscriptionRecordManager.get(db_session, account.id)
    assert (record.tier, record.status) == ("free", "active")


def test_reset_without_record_reports_message(client, account, auth_headers):
    response = client.post("/subscription/reset", headers=auth_headers(account))

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["message"] == f"Subscription record not found for account {account.id}"
