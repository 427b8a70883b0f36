"""
Meal Planner Subscription API - Python client
Integration client for the web app backend and support tooling.
"""

import requests
from datetime import date
from typing import Optional, Dict, List, Any


class SubscriptionClient:
    """Python client for the subscription service."""

    def __init__(self, base_url: str, token: str, session: Optional[Any] = None):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the API (e.g., "http://localhost:8000")
            token: Account JWT (sent as a Bearer token)
            session: requests-compatible session (default: a new requests.Session)
        """
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.session = session or requests.Session()
        self.headers = {
            'Authorization': f'Bearer {token}'
        }

    def _get(self, path: str, params: Optional[Dict] = None) -> Any:
        response = self.session.get(f"{self.base_url}{path}", headers=self.headers, params=params)
        response.raise_for_status()
        return response.json()

    def _post(self, path: str, payload: Optional[Dict] = None) -> Any:
        response = self.session.post(f"{self.base_url}{path}", headers=self.headers, json=payload or {})
        response.raise_for_status()
        return response.json()

    # ==================== STATE ====================

    def get_subscription(self) -> Dict[str, Any]:
        """
        Get the subscription state of the signed-in account.

        Returns:
            dict: {"subscription", "config", "has_pro", "is_trialing",
                   "days_left_in_trial", "recipe_count", "can_create_recipe", ...}
        """
        return self._get("/subscription")

    def get_config(self) -> Dict[str, Any]:
        return self._get("/subscription/config")

    def get_plans(self) -> Dict[str, Any]:
        return self._get("/subscription/plans")

    def validate(self, action: str, feature: Optional[str] = None) -> Dict[str, Any]:
        """
        Check a gated action.

        Args:
            action: check_pro | can_create_recipe | check_feature
            feature: Feature name, required for check_feature

        Returns:
            dict: {"allowed": bool, "reason": str | None}
        """
        return self._post("/subscription/validate", {'action': action, 'feature': feature})

    # ==================== BILLING ====================

    def create_checkout_session(self, interval: str) -> str:
        """Returns the Stripe Checkout URL for weekly | monthly | yearly billing."""
        return self._post("/billing/stripe/checkout", {'interval': interval})['url']

    def create_portal_session(self) -> Dict[str, Any]:
        """Returns {"url": ...} or {"error": "no_subscription", "message": ...}."""
        return self._post("/billing/stripe/portal")

    def sync_subscription(self) -> Dict[str, Any]:
        """Returns {"synced": bool, "tier": str, "status": str}."""
        return self._post("/billing/stripe/sync")

    # ==================== PAUSE ====================

    def pause_subscription(self, resume_date: date) -> Dict[str, Any]:
        return self._post("/subscription/pause", {'resume_date': resume_date.isoformat()})

    def resume_subscription(self) -> Dict[str, Any]:
        return self._post("/subscription/resume")

    # ==================== CANCELLATION ====================

    def get_cancel_offer(self) -> Dict[str, Any]:
        return self._get("/subscription/cancel-offer")

    def accept_cancel_offer(self) -> Dict[str, Any]:
        return self._post("/subscription/cancel-offer/accept")

    def cancel_subscription(self, reason: Optional[str] = None) -> Dict[str, Any]:
        return self._post("/subscription/cancel", {'reason': reason})

    def cancel_trial(self, reason: Optional[str] = None) -> Dict[str, Any]:
        return self._post("/subscription/cancel-trial", {'reason': reason})

    def reset_to_free_tier(self) -> Dict[str, Any]:
        return self._post("/subscription/reset")

    def start_cancellation(self) -> "CancellationFlow":
        return CancellationFlow(self)

    # ==================== ADMIN ====================

    def list_subscriptions(self) -> List[Dict]:
        return self._get("/admin/subscriptions")

    def grant_pro_access(
        self,
        account_id: str,
        expires_at: Optional[str] = None,
        note: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Grant Pro to an account (admin only).

        Args:
            account_id: Target account
            expires_at: ISO timestamp, or None for a permanent grant
            note: Free-text reason shown to other admins
        """
        return self._post(
            f"/admin/subscriptions/{account_id}/grant",
            {'expires_at': expires_at, 'note': note}
        )

    def revoke_pro_access(self, account_id: str) -> Dict[str, Any]:
        return self._post(f"/admin/subscriptions/{account_id}/revoke")

    def get_subscription_events(self, account_id: str, limit: int = 50) -> List[Dict]:
        return self._get(f"/admin/subscriptions/{account_id}/events", params={'limit': limit})

    def update_config(self, **fields) -> Dict[str, Any]:
        """Update only the given config fields (admin only)."""
        response = self.session.patch(
            f"{self.base_url}/admin/subscription-config",
            headers=self.headers,
            json=fields
        )
        response.raise_for_status()
        return response.json()


class CancellationFlowError(RuntimeError):
    """A step was called out of order."""
    pass


class CancellationFlow:
    """
    Client-held cancellation negotiation: reason -> offer -> confirm.

    Nothing is stored server-side; the server is only called to fetch the
    offer, and by the terminal actions accept_offer() and confirm().

        flow = client.start_cancellation()
        if flow.submit_reason("Too expensive") == CancellationFlow.OFFER:
            print(flow.offer["message"])
            flow.accept_offer()      # or flow.decline_offer(); flow.confirm()
        else:
            flow.confirm()
    """

    REASON = "reason"
    OFFER = "offer"
    CONFIRM = "confirm"
    RETAINED = "retained"
    CANCELLED = "cancelled"

    def __init__(self, client: SubscriptionClient):
        self.client = client
        self.step = self.REASON
        self.reason: Optional[str] = None
        self.offer: Optional[Dict[str, Any]] = None

    def submit_reason(self, reason: Optional[str] = None) -> str:
        self._require(self.REASON)
        self.reason = reason
        offer = self.client.get_cancel_offer()
        if offer.get('offer_available'):
            self.offer = offer
            self.step = self.OFFER
        else:
            self.step = self.CONFIRM
        return self.step

    def accept_offer(self) -> Dict[str, Any]:
        self._require(self.OFFER)
        result = self.client.accept_cancel_offer()
        self.step = self.RETAINED
        return result

    def decline_offer(self) -> str:
        self._require(self.OFFER)
        self.step = self.CONFIRM
        return self.step

    def confirm(self) -> Dict[str, Any]:
        self._require(self.CONFIRM)
        result = self.client.cancel_subscription(self.reason)
        self.step = self.CANCELLED
        return result

    def _require(self, step: str) -> None:
        if self.step != step:
            raise CancellationFlowError(f"Cannot do that in step '{self.step}' (expected '{step}')")


# ==================== USAGE EXAMPLES ====================

def example_checkout_and_sync():
    """Checkout workflow: plans -> checkout -> (redirect) -> sync."""

    client = SubscriptionClient(
        base_url="http://localhost:8000",
        token="your-jwt-here"
    )

    plans = client.get_plans()
    for plan in plans['plans']:
        print(f"{plan['interval']}: {plan['price']}{plan['per_period']} {plan['savings'] or ''}")

    print("\nOpen this URL to pay:")
    print(client.create_checkout_session("monthly"))

    # After Stripe redirects back with ?subscription=success
    result = client.sync_subscription()
    print(f"\nSynced: {result['synced']} -> {result['tier']}/{result['status']}")


if __name__ == "__main__":
    example_checkout_and_sync()
