from datetime import timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models import SubscriptionConfig
from app.models.subscription_config import CONFIG_SINGLETON_ID
from app.services.exceptions import PreconditionFailed
from app.services.pricing import format_price, price_display
from app.services.subscription_config_service import SubscriptionConfigService


def test_config_defaults_created_on_first_read(db_session: Session):
    config = SubscriptionConfigService.get(db_session)

    assert config.id == CONFIG_SINGLETON_ID
    assert config.trial_period_days == 7
    assert (config.price_weekly_cents, config.price_monthly_cents, config.price_yearly_cents) == (299, 999, 7999)
    assert config.yearly_discount_percent == 33
    assert config.free_recipe_limit == 20
    assert config.cancel_offer_enabled is True
    assert (config.cancel_offer_discount_percent, config.cancel_offer_duration_months) == (50, 3)
    assert "pantry_scanner" in config.pro_features
    assert db_session.query(SubscriptionConfig).count() == 1


def test_update_changes_only_given_fields(db_session: Session):
    config = SubscriptionConfigService.update(db_session, {"free_recipe_limit": 30}, updated_by="admin-1")

    assert config.free_recipe_limit == 30
    assert config.trial_period_days == 7
    assert config.updated_by == "admin-1"


def test_update_rejects_unknown_fields(db_session: Session):
    with pytest.raises(PreconditionFailed):
        SubscriptionConfigService.update(db_session, {"id": "other"})


def test_update_rejects_null_for_required_fields(db_session: Session):
    with pytest.raises(PreconditionFailed):
        SubscriptionConfigService.update(db_session, {"trial_period_days": None})


def test_price_ids_can_be_cleared(db_session: Session, config):
    config = SubscriptionConfigService.update(db_session, {"stripe_weekly_price_id": None})
    assert config.stripe_weekly_price_id is None
    assert config.stripe_monthly_price_id == "price_monthly"


def test_format_price():
    assert format_price(999) == "$9.99"
    assert format_price(7999) == "$79.99"
    assert format_price(0) == "$0.00"


def test_price_display_yearly_savings(db_session: Session):
    config = SubscriptionConfigService.get(db_session)

    assert price_display(config, "weekly") == {
        "interval": "weekly", "price_cents": 299, "price": "$2.99", "per_period": "/week", "savings": None,
    }
    assert price_display(config, "yearly")["savings"] == "Save 33%"
    with pytest.raises(ValueError):
        price_display(config, "daily")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def test_patch_config_as_admin(client, admin, auth_headers):
    response = client.patch(
        "/admin/subscription-config", json={"trial_period_days": 14}, headers=auth_headers(admin)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["trial_period_days"] == 14
    assert data["price_monthly_cents"] == 999


def test_patch_config_requires_admin(client, account, auth_headers):
    response = client.patch(
        "/admin/subscription-config", json={"trial_period_days": 14}, headers=auth_headers(account)
    )
    assert response.status_code == 403


def test_plans_endpoint(client, db_session: Session, config, account, auth_headers):
    SubscriptionConfigService.update(db_session, {"stripe_weekly_price_id": None})

    response = client.get("/subscription/plans", headers=auth_headers(account))

    assert response.status_code == 200
    plans = {p["interval"]: p for p in response.json()["plans"]}
    assert plans["weekly"]["price"] == "$2.99"
    assert plans["weekly"]["available"] is False
    assert plans["monthly"]["per_period"] == "/month"
    assert plans["yearly"]["savings"] == "Save 33%"
    assert plans["yearly"]["available"] is True


def test_config_endpoint(client, account, auth_headers):
    response = client.get("/subscription/config", headers=auth_headers(account))
    assert response.status_code == 200
    assert response.json()["free_recipe_limit"] == 20


@pytest.fixture
def saved_recipes(db_session: Session):
    db_session.execute(text("CREATE TABLE IF NOT EXISTS favorite_meals (id INTEGER PRIMARY KEY, user_id VARCHAR(36))"))
    db_session.commit()

    def _save(account_id, count):
        for _ in range(count):
            db_session.execute(text("INSERT INTO favorite_meals (user_id) VALUES (:uid)"), {"uid": account_id})
        db_session.commit()

    yield _save
    db_session.execute(text("DROP TABLE favorite_meals"))
    db_session.commit()


def test_state_counts_saved_recipes(client, account, make_subscription, saved_recipes, auth_headers):
    make_subscription(account.id)
    saved_recipes(account.id, 20)

    state = client.get("/subscription", headers=auth_headers(account)).json()

    assert state["recipe_count"] == 20
    assert state["recipe_limit"] == 20
    assert state["can_create_recipe"] is False
    assert state["has_pro"] is False


def test_state_without_recipe_table(client, account, make_subscription, auth_headers):
    make_subscription(account.id, tier="pro", status="trialing", trial_ends_at=utcnow() + timedelta(days=2, hours=12))

    state = client.get("/subscription", headers=auth_headers(account)).json()

    assert state["recipe_count"] == 0
    assert state["recipe_limit"] is None
    assert state["has_pro"] is True
    assert state["access_reason"] == "trial"
    assert state["is_trialing"] is True
    assert state["days_left_in_trial"] == 3


def test_validate_can_create_recipe(client, account, make_subscription, saved_recipes, auth_headers):
    make_subscription(account.id)
    saved_recipes(account.id, 19)
    headers = auth_headers(account)

    assert client.post("/subscription/validate", json={"action": "can_create_recipe"}, headers=headers).json() == {
        "allowed": True, "reason": None,
    }
    saved_recipes(account.id, 1)
    result = client.post("/subscription/validate", json={"action": "can_create_recipe"}, headers=headers).json()
    assert result["allowed"] is False
    assert "20 recipes" in result["reason"]


def test_validate_check_feature(client, account, make_subscription, auth_headers):
    make_subscription(account.id)
    headers = auth_headers(account)

    gated = client.post(
        "/subscription/validate", json={"action": "check_feature", "feature": "pantry_scanner"}, headers=headers
    ).json()
    open_feature = client.post(
        "/subscription/validate", json={"action": "check_feature", "feature": "meal_calendar"}, headers=headers
    ).json()
    missing = client.post("/subscription/validate", json={"action": "check_feature"}, headers=headers)

    assert gated["allowed"] is False
    assert open_feature["allowed"] is True
    assert missing.status_code == 400


def test_validate_check_pro_for_admin_grant(client, account, make_subscription, auth_headers):
    make_subscription(account.id, admin_granted_pro=True)
    result = client.post("/subscription/validate", json={"action": "check_pro"}, headers=auth_headers(account)).json()
    assert result == {"allowed": True, "reason": None}
