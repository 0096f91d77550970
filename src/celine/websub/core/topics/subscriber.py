# celine/websub/core/topics/subscriber.py
"""
Subscriber for topics declared in configuration.

Each configured topic is discovered and subscribed with its configured id
as callback id, and notifications for that id go to the topic's handler.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from celine.websub.contracts.request import Notification
from celine.websub.contracts.subscription import Subscription
from celine.websub.core.loader import import_attr
from celine.websub.core.topics.config import TopicSpec, TopicsConfig
from celine.websub.core.websub.errors import WebSubError
from celine.websub.core.websub.registry import SubscriptionRegistry
from celine.websub.core.websub.subscriber import SubscriberOptions, WebSubSubscriber

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[Subscription, Notification], Any]


class TopicSubscriber(WebSubSubscriber):
    """WebSubSubscriber that manages the topics of a ``TopicsConfig``.

    Handlers are imported eagerly so that a bad import path fails at
    construction time rather than on the first notification.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        options: SubscriberOptions,
        topics: TopicsConfig,
        **kwargs: Any,
    ) -> None:
        super().__init__(registry, options, **kwargs)
        self._topics = topics
        self._handlers: dict[str, NotificationHandler] = {}

        for spec in topics.topics:
            if not spec.enabled or spec.handler is None:
                continue
            handler = import_attr(spec.handler)
            if not callable(handler):
                raise ValueError(
                    f"Handler '{spec.handler}' for topic '{spec.id}' is not callable"
                )
            self._handlers[spec.id] = handler

    @property
    def topics(self) -> TopicsConfig:
        return self._topics

    def subscribe_topic(self, spec: TopicSpec) -> bool:
        """
        Discover and subscribe a single configured topic.

        Returns:
            True if a hub accepted the subscription request or the topic is
            already subscribed, False if discovery found nothing usable.

        Raises:
            WebSubError: On discovery or negotiation failure.
            httpx.HTTPError: On unexpected client errors.
        """
        if spec.id in self.registry:
            logger.debug("Already subscribed to %s, skipping.", spec.topic_url)
            return True

        logger.info("Discovering %s", spec.topic_url)
        found = self.discover(spec.topic_url)
        if not found.hub_urls:
            logger.warning("Could not get hub URLs for %s.", spec.topic_url)
            return False
        if found.topic_url is None:
            logger.warning("Could not get topic URL for %s.", spec.topic_url)
            return False

        self.subscribe(found.hub_urls[0], found.topic_url, spec.id)
        return True

    def subscribe_all(self) -> dict[str, bool]:
        """
        Subscribe every enabled topic.

        Failures are isolated per topic.

        Returns:
            Dict mapping topic id to success.
        """
        results: dict[str, bool] = {}

        for spec in self._topics.topics:
            if not spec.enabled:
                logger.info("Skipping disabled topic: %s", spec.id)
                continue
            try:
                results[spec.id] = self.subscribe_topic(spec)
            except (WebSubError, httpx.HTTPError) as exc:
                results[spec.id] = False
                logger.error("Failed to subscribe topic '%s': %s", spec.id, exc)

        return results

    def on_notification(
        self, subscription: Subscription, notification: Notification
    ) -> None:
        super().on_notification(subscription, notification)
        handler = self._handlers.get(subscription.id)
        if handler is None:
            logger.warning("No handler found for subscription %s", subscription.id)
            return
        logger.info("Dispatching notification for %s", subscription.id)
        handler(subscription, notification)
