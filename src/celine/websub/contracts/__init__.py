"""Public contracts for the WebSub subscriber."""
from celine.websub.contracts.subscription import (
    DiscoverResult,
    PendingSubscription,
    Subscription,
    SubscriptionMode,
    SubscriptionState,
)
from celine.websub.contracts.request import (
    CallbackRequest,
    CallbackResponse,
    InboundRequest,
    Notification,
)
from celine.websub.contracts.hooks import SubscriberHooks

__all__ = [
    "DiscoverResult", "PendingSubscription", "Subscription",
    "SubscriptionMode", "SubscriptionState",
    "CallbackRequest", "CallbackResponse", "InboundRequest", "Notification",
    "SubscriberHooks",
]
