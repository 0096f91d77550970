# celine/websub/core/websub/subscriber.py
"""
WebSub subscriber engine.

The subscriber keeps two stores:

1. ``SubscriptionRegistry`` - confirmed subscriptions expecting notifications.
2. ``PendingSubscriptionTracker`` - negotiations between the hub's 202 and its
   verification request; in memory only.

Callback URLs have the form ``{base_url}/{callback_id}``; the web layer must
route every request under ``base_url`` to ``handle_request``.

All methods are synchronous and block on outbound HTTP. Timeouts, proxies,
certificates and headers are configured on the ``httpx.Client`` passed in.

References:
    WebSub: https://www.w3.org/TR/websub/
    Link header fields: https://tools.ietf.org/html/rfc8288
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

import httpx

from celine.websub.contracts.request import (
    CallbackResponse,
    InboundRequest,
    Notification,
)
from celine.websub.contracts.subscription import (
    DiscoverResult,
    PendingSubscription,
    Subscription,
    SubscriptionMode,
)
from celine.websub.core.websub.discovery import TopicDiscoverer
from celine.websub.core.websub.dispatcher import CallbackDispatcher
from celine.websub.core.websub.negotiator import HubNegotiator
from celine.websub.core.websub.pending import PendingSubscriptionTracker
from celine.websub.core.websub.registry import SubscriptionRegistry

if TYPE_CHECKING:
    from celine.websub.core.config import Settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SubscriberOptions:
    """
    Engine options.

    Attributes:
        base_url: Base for callback URLs (``{base_url}/{callback_id}``).
        lease_seconds: Lease to request, or 0 to omit ``hub.lease_seconds``.
        base_retry_interval: Expiration offset for denied and unsubscribed
            entries.
        max_redirects: Hub redirects followed before giving up.
        timeout: Timeout of the httpx client the subscriber creates itself.
    """

    base_url: str
    lease_seconds: int = 0
    base_retry_interval: timedelta = field(default=timedelta(minutes=5))
    max_redirects: int = 10
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("SubscriberOptions.base_url is required")
        if self.lease_seconds < 0:
            raise ValueError("SubscriberOptions.lease_seconds must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SubscriberOptions":
        return cls(
            base_url=settings.callback_base_url,
            lease_seconds=settings.websub_lease_seconds,
            base_retry_interval=timedelta(seconds=settings.websub_base_retry_interval),
            max_redirects=settings.websub_max_redirects,
            timeout=settings.websub_http_timeout,
        )


class WebSubSubscriber:
    """
    Subscriber side of the WebSub protocol.

    Applications react to protocol events by subclassing and overriding the
    ``on_*`` hooks; each hook runs after the registry has been updated.

    Example:
        subscriber = WebSubSubscriber(
            SubscriptionRegistry(),
            SubscriberOptions(base_url="https://me.example.com/websub/callback"),
        )

        found = subscriber.discover("https://blog.example.com/feed")
        callback_id = subscriber.subscribe(found.hub_urls[0], found.topic_url)

        # later, from the web layer
        response = subscriber.handle_request(request)
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        options: SubscriberOptions,
        *,
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._options = options
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=options.timeout)
        self._tracker = PendingSubscriptionTracker()

        self._discoverer = TopicDiscoverer(self._client)
        self._negotiator = HubNegotiator(
            self._client,
            self._tracker,
            callback_base_url=options.base_url,
            max_redirects=options.max_redirects,
        )
        self._dispatcher = CallbackDispatcher(
            registry=registry,
            tracker=self._tracker,
            hooks=self,
            base_retry_interval=options.base_retry_interval,
            clock=clock,
        )

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def pending(self) -> PendingSubscriptionTracker:
        return self._tracker

    @property
    def options(self) -> SubscriberOptions:
        return self._options

    def callback_url(self, callback_id: str) -> str:
        return self._negotiator.callback_url(callback_id)

    # -- Outbound ----------------------------------------------------------

    def discover(self, topic_url: str) -> DiscoverResult:
        """Find the canonical topic URL and hubs of a resource."""
        result = self._discoverer.discover(topic_url)
        logger.info(
            "Discovered topic %s with %d hub(s) for %s",
            result.topic_url,
            len(result.hub_urls),
            topic_url,
        )
        return result

    def subscribe(
        self, hub_url: str, topic_url: str, callback_id: str | None = None
    ) -> str:
        """
        Ask a hub to subscribe ``topic_url`` to our callback.

        Success means the hub accepted the request; the subscription becomes
        active when the hub verifies it.

        Args:
            hub_url: Hub endpoint, as returned by ``discover``.
            topic_url: Topic URL, as returned by ``discover``.
            callback_id: Unique id embedded in the callback URL. Generated
                when omitted.

        Returns:
            The callback id.

        Raises:
            CommunicationError: On transport failure or a non-202 answer.
            ProtocolError: On a redirect without ``Location``.
        """
        if callback_id is None:
            callback_id = str(uuid.uuid4())
        self._send(SubscriptionMode.SUBSCRIBE, hub_url, topic_url, callback_id)
        return callback_id

    def unsubscribe(self, hub_url: str, topic_url: str, callback_id: str) -> None:
        """Ask a hub to end a subscription. Same contract as ``subscribe``."""
        self._send(SubscriptionMode.UNSUBSCRIBE, hub_url, topic_url, callback_id)

    def _send(
        self,
        mode: SubscriptionMode,
        hub_url: str,
        topic_url: str,
        callback_id: str,
    ) -> None:
        pending = PendingSubscription(
            mode=mode,
            hub_url=hub_url,
            topic_url=topic_url,
            callback_id=callback_id,
            lease_seconds=self._options.lease_seconds,
        )
        accepted = self._negotiator.send(pending)
        logger.info(
            "Hub %s accepted %s request for '%s' (topic %s)",
            accepted.hub_url,
            mode.value,
            callback_id,
            topic_url,
        )

    # -- Inbound -----------------------------------------------------------

    def handle_request(self, request: InboundRequest) -> CallbackResponse:
        """
        Handle a request addressed to ``{base_url}/{callback_id}``.

        Only requests under the callback base should be passed in; the id is
        the last path segment.
        """
        response = self._dispatcher.handle(request)
        if response.status_code >= 400:
            logger.info(
                "Answered %d to %s callback '%s': %s",
                response.status_code,
                request.method,
                request.callback_id,
                response.body,
            )
        return response

    # -- Lifecycle hooks ---------------------------------------------------

    def on_subscribe_success(self, subscription: Subscription) -> None:
        """Subscription verified; it is already in the registry."""
        logger.info("Subscribe succeeded for %s", subscription.id)

    def on_subscribe_rejected(
        self, subscription: Subscription, reason: str | None = None
    ) -> None:
        """Hub denied the subscription. Removes it from the registry."""
        logger.warning(
            "Subscribe rejected for %s%s",
            subscription.id,
            f" ({reason})" if reason else "",
        )
        self._registry.remove(subscription.id)

    def on_subscribe_failed(self, subscription: Subscription) -> None:
        """Subscription request timed out. Not invoked by the engine itself."""
        logger.warning("Subscribe failed for %s", subscription.id)
        self._registry.remove(subscription.id)

    def on_unsubscribe_success(self, subscription: Subscription) -> None:
        """Unsubscription verified; it is already removed from the registry."""
        logger.info("Unsubscribe succeeded for %s", subscription.id)

    def on_unsubscribe_failed(self, subscription: Subscription) -> None:
        """Unsubscription request timed out. Not invoked by the engine itself."""
        logger.warning("Unsubscribe failed for %s", subscription.id)
        self._registry.remove(subscription.id)

    def on_notification(
        self, subscription: Subscription, notification: Notification
    ) -> None:
        """Content received for an active subscription."""
        logger.debug(
            "Received notification for %s. Size: %d",
            subscription.id,
            len(notification.body),
        )

    def on_subscription_refresh(
        self, previous_id: str, subscription: Subscription
    ) -> None:
        """Subscription renewed under a new id. Not invoked by the engine itself."""
        logger.debug(
            "Subscription %s has been refreshed and is now %s",
            previous_id,
            subscription.id,
        )

    # -- Resources ---------------------------------------------------------

    def close(self) -> None:
        """Close the httpx client if the subscriber created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "WebSubSubscriber":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
