from .subscription import (
    SubscriptionResponse, SubscriptionConfigResponse, SubscriptionConfigUpdate,
    SubscriptionStateResponse, ValidateRequest, ValidateResponse, ActionResponse,
)
from .billing import StripeCheckoutRequest, StripePortalResponse, StripeSyncResponse
