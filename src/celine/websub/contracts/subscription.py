# celine/websub/contracts/subscription.py
"""
Subscription contracts for the WebSub subscriber.

A ``Subscription`` is a hub-confirmed subscription kept in the registry.
A ``PendingSubscription`` is a negotiation acknowledged by the hub (202) that
is still waiting for the hub's intent verification request.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum


class SubscriptionState(str, Enum):
    ACTIVE = "active"
    REJECTED = "rejected"
    FAILED = "failed"


class SubscriptionMode(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"


@dataclass(frozen=True)
class Subscription:
    """Confirmed subscription, identified by its callback id.

    Instances are immutable; state changes produce a new instance that
    replaces the previous one in the registry.
    """

    id: str
    topic_url: str
    expiration: datetime
    state: SubscriptionState = SubscriptionState.ACTIVE
    hub_url: str | None = None

    def with_state(self, state: SubscriptionState) -> "Subscription":
        return replace(self, state=state)


@dataclass(frozen=True)
class PendingSubscription:
    """In-flight negotiation awaiting hub verification. Never persisted."""

    mode: SubscriptionMode
    hub_url: str
    topic_url: str
    callback_id: str
    lease_seconds: int = 0

    def to_subscription(self, expiration: datetime) -> Subscription:
        return Subscription(
            id=self.callback_id,
            topic_url=self.topic_url,
            expiration=expiration,
            hub_url=self.hub_url,
        )


@dataclass
class DiscoverResult:
    """Canonical topic URL and priority-ordered hub URLs of a resource."""

    topic_url: str | None = None
    hub_urls: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.topic_url is not None and len(self.hub_urls) > 0
