from .subscription import router as subscription_router
from .billing_stripe import router as billing_stripe_router
from .admin_subscriptions import router as admin_subscriptions_router
