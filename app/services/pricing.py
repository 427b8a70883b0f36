"""
Display helpers for plan prices. Monetary math stays with Stripe; these only
format the configured price points.
"""
from app.models import SubscriptionConfig

BILLING_INTERVALS = ("weekly", "monthly", "yearly")

_PER_PERIOD = {
    "weekly": "/week",
    "monthly": "/month",
    "yearly": "/year",
}


def format_price(cents: int) -> str:
    return f"${cents / 100:.2f}"


def price_display(config: SubscriptionConfig, interval: str) -> dict:
    if interval not in _PER_PERIOD:
        raise ValueError(f"Invalid billing interval: {interval}")

    cents = getattr(config, f"price_{interval}_cents")
    display = {
        "interval": interval,
        "price_cents": cents,
        "price": format_price(cents),
        "per_period": _PER_PERIOD[interval],
        "savings": None,
    }
    if interval == "yearly":
        display["savings"] = f"Save {config.yearly_discount_percent}%"
    return display
