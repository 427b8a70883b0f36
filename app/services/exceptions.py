"""
Exceptions raised by the subscription services and translated to HTTP
responses by the routers.
"""


class SubscriptionError(Exception):
    """Base exception for subscription lifecycle failures."""
    pass


class SubscriptionNotFound(SubscriptionError):
    """No subscription record for the account (provisioning has not run)."""
    pass


class PreconditionFailed(SubscriptionError):
    """The account is not in a state that allows the requested transition."""
    pass


class BillingProviderError(SubscriptionError):
    """The billing provider was unreachable or rejected the request."""
    pass


class BillingNotConfigured(SubscriptionError):
    """Stripe credentials or price IDs are missing."""
    pass
