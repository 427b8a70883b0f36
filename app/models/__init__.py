from .account import Account, Base
from .user_subscription import UserSubscription
from .subscription_config import SubscriptionConfig
from .subscription_event import SubscriptionEvent
