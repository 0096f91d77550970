# celine/websub/contracts/hooks.py
"""
Lifecycle hooks consumed by the application layer.

Every hook runs after the matching registry/tracker change has been applied.
``WebSubSubscriber`` provides the default implementations; applications
subclass it and override what they need.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from celine.websub.contracts.request import Notification
from celine.websub.contracts.subscription import Subscription


@runtime_checkable
class SubscriberHooks(Protocol):
    def on_subscribe_success(self, subscription: Subscription) -> None: ...

    def on_subscribe_rejected(
        self, subscription: Subscription, reason: str | None = None
    ) -> None: ...

    def on_subscribe_failed(self, subscription: Subscription) -> None: ...

    def on_unsubscribe_success(self, subscription: Subscription) -> None: ...

    def on_unsubscribe_failed(self, subscription: Subscription) -> None: ...

    def on_notification(
        self, subscription: Subscription, notification: Notification
    ) -> None: ...

    def on_subscription_refresh(
        self, previous_id: str, subscription: Subscription
    ) -> None: ...
