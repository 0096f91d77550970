# celine/websub/core/websub/dispatcher.py
"""
Inbound callback handling.

Requests arrive at ``<callback-base>/<id>``:

- ``GET ?hub.mode=subscribe|unsubscribe``: intent verification of a pending
  negotiation; answered with the ``hub.challenge`` value.
- ``GET ?hub.mode=denied``: the hub refused (or revoked) a subscription.
- ``POST``: content notification for a confirmed subscription.

Every outcome is an HTTP status; nothing is raised to the web layer.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from celine.websub.contracts.hooks import SubscriberHooks
from celine.websub.contracts.request import (
    CallbackResponse,
    InboundRequest,
    Notification,
)
from celine.websub.contracts.subscription import (
    Subscription,
    SubscriptionMode,
    SubscriptionState,
)
from celine.websub.core.websub.constants import HubParams, Modes
from celine.websub.core.websub.pending import PendingSubscriptionTracker
from celine.websub.core.websub.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

NO_SUBSCRIPTION = "No subscription found."
TOPIC_MISMATCH = "Topic URL does not match expected."


def _missing_param(name: str) -> CallbackResponse:
    return CallbackResponse.error(400, f"Request must have one '{name}' parameter.")


def _header(request: InboundRequest, name: str) -> str | None:
    for key, value in request.headers.items():
        if key.lower() == name:
            return value
    return None


class CallbackDispatcher:
    """Drives registry/tracker transitions from inbound hub requests."""

    def __init__(
        self,
        *,
        registry: SubscriptionRegistry,
        tracker: PendingSubscriptionTracker,
        hooks: SubscriberHooks,
        base_retry_interval: timedelta,
        clock: Callable[[], datetime],
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._hooks = hooks
        self._base_retry_interval = base_retry_interval
        self._clock = clock

    def handle(self, request: InboundRequest) -> CallbackResponse:
        logger.debug("Received %s callback for '%s'", request.method, request.callback_id)
        method = request.method.upper()
        if method == "POST":
            return self._handle_notification(request)
        if method == "GET":
            return self._handle_get(request)
        return CallbackResponse.error(405, "Only GET/POST supported.")

    # -- GET ---------------------------------------------------------------

    def _handle_get(self, request: InboundRequest) -> CallbackResponse:
        mode = request.get_param(HubParams.MODE)
        if mode is None:
            return _missing_param(HubParams.MODE)

        if mode == Modes.DENIED:
            return self._handle_denied(request)

        if mode in (Modes.SUBSCRIBE, Modes.UNSUBSCRIBE):
            return self._handle_verification(SubscriptionMode(mode), request)

        return CallbackResponse.error(
            400,
            f"'{HubParams.MODE}' value must be one of denied, subscribe, or unsubscribe.",
        )

    def _handle_verification(
        self, mode: SubscriptionMode, request: InboundRequest
    ) -> CallbackResponse:
        callback_id = request.callback_id
        pending = self._tracker.get(callback_id)
        if pending is None:
            logger.info("Verification for unknown id '%s'", callback_id)
            return CallbackResponse.error(404, NO_SUBSCRIPTION)

        if pending.mode is not mode:
            logger.info(
                "Verification mode %s does not match pending %s for '%s'",
                mode.value,
                pending.mode.value,
                callback_id,
            )
            return CallbackResponse.error(404, NO_SUBSCRIPTION)

        topic = request.get_param(HubParams.TOPIC)
        if topic is None:
            return _missing_param(HubParams.TOPIC)
        if topic != pending.topic_url:
            logger.warning(
                "Verification topic %s does not match %s for '%s'",
                topic,
                pending.topic_url,
                callback_id,
            )
            return CallbackResponse.error(404, TOPIC_MISMATCH)

        challenge = request.get_param(HubParams.CHALLENGE)
        if challenge is None:
            return _missing_param(HubParams.CHALLENGE)

        if mode is SubscriptionMode.SUBSCRIBE:
            raw_lease = request.get_param(HubParams.LEASE_SECONDS)
            if raw_lease is None:
                return CallbackResponse.error(
                    400,
                    f"Subscription requests must have one '{HubParams.LEASE_SECONDS}' parameter.",
                )
            try:
                lease_seconds = int(raw_lease)
            except ValueError:
                lease_seconds = -1
            if lease_seconds < 0:
                return CallbackResponse.error(
                    400, f"'{HubParams.LEASE_SECONDS}' must be a non-negative integer."
                )
            duration = timedelta(seconds=lease_seconds)
        else:
            duration = self._base_retry_interval

        # Consume atomically; a concurrent verification for the same id loses.
        if self._tracker.remove(callback_id) is None:
            logger.info("Pending entry for '%s' already consumed", callback_id)
            return CallbackResponse.error(404, NO_SUBSCRIPTION)
        subscription = pending.to_subscription(self._clock() + duration)

        if mode is SubscriptionMode.SUBSCRIBE:
            self._registry.add(subscription)
            self._call_hook("on_subscribe_success", subscription)
        else:
            self._registry.remove(subscription.id)
            self._call_hook("on_unsubscribe_success", subscription)

        return CallbackResponse.ok(challenge)

    def _handle_denied(self, request: InboundRequest) -> CallbackResponse:
        callback_id = request.callback_id
        # A denial may arrive for a pending negotiation or at any later time.
        subscription = self._registry.get_by_id(callback_id)
        from_pending = subscription is None
        if from_pending:
            pending = self._tracker.get(callback_id)
            if pending is None:
                logger.info("Denial for unknown id '%s'", callback_id)
                return CallbackResponse.error(404, NO_SUBSCRIPTION)
            subscription = pending.to_subscription(
                self._clock() + self._base_retry_interval
            )

        topic = request.get_param(HubParams.TOPIC)
        if topic is None:
            return _missing_param(HubParams.TOPIC)
        if topic != subscription.topic_url:
            return CallbackResponse.error(404, TOPIC_MISMATCH)

        # Only drop the pending entry once the topic has been checked.
        if self._tracker.remove(callback_id) is None and from_pending:
            logger.info("Pending entry for '%s' already consumed", callback_id)
            return CallbackResponse.error(404, NO_SUBSCRIPTION)
        rejected = subscription.with_state(SubscriptionState.REJECTED)
        self._registry.add(rejected)
        self._call_hook(
            "on_subscribe_rejected", rejected, request.get_param(HubParams.REASON)
        )
        return CallbackResponse.ok()

    # -- POST --------------------------------------------------------------

    def _handle_notification(self, request: InboundRequest) -> CallbackResponse:
        subscription = self._registry.get_by_id(request.callback_id)
        if subscription is None:
            logger.info("Notification for unknown id '%s'", request.callback_id)
            return CallbackResponse.error(404, NO_SUBSCRIPTION)

        try:
            body = request.read_body()
        except OSError:
            logger.exception(
                "Could not read notification body for '%s'", request.callback_id
            )
            # Dropped without invoking the hook; the POST is still acknowledged.
            return CallbackResponse.ok()

        notification = Notification(
            callback_id=subscription.id,
            body=body,
            headers=request.headers,
            received_at=self._clock(),
            content_type=_header(request, "content-type"),
        )
        self._call_hook("on_notification", subscription, notification)
        return CallbackResponse.ok()

    def _call_hook(self, name: str, subscription: Subscription, *args: object) -> None:
        try:
            getattr(self._hooks, name)(subscription, *args)
        except Exception:
            logger.exception("Hook '%s' failed for '%s'", name, subscription.id)
