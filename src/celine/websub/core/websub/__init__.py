"""WebSub subscriber engine: discovery, hub negotiation and callback handling."""
from celine.websub.core.websub.errors import (
    CommunicationError,
    ProtocolError,
    RedirectLoopError,
    WebSubError,
)
from celine.websub.core.websub.registry import SubscriptionRegistry
from celine.websub.core.websub.pending import PendingSubscriptionTracker
from celine.websub.core.websub.discovery import TopicDiscoverer
from celine.websub.core.websub.negotiator import HubNegotiator
from celine.websub.core.websub.dispatcher import CallbackDispatcher
from celine.websub.core.websub.subscriber import SubscriberOptions, WebSubSubscriber

__all__ = [
    "WebSubError", "CommunicationError", "ProtocolError", "RedirectLoopError",
    "SubscriptionRegistry", "PendingSubscriptionTracker",
    "TopicDiscoverer", "HubNegotiator", "CallbackDispatcher",
    "SubscriberOptions", "WebSubSubscriber",
]
