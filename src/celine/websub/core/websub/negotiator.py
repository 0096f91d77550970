# celine/websub/core/websub/negotiator.py
"""
Outbound subscribe/unsubscribe requests against a WebSub hub.

A 202 answer only means the hub accepted the request; the subscription is
confirmed later by the hub's verification request to the callback URL.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from urllib.parse import urljoin

import httpx

from celine.websub.contracts.subscription import PendingSubscription
from celine.websub.core.websub.constants import HubParams
from celine.websub.core.websub.errors import (
    CommunicationError,
    ProtocolError,
    RedirectLoopError,
)
from celine.websub.core.websub.pending import PendingSubscriptionTracker

logger = logging.getLogger(__name__)

REDIRECT_STATUS_CODES = frozenset({307, 308})


class HubNegotiator:
    """Sends hub requests and records acknowledged ones as pending.

    Redirects are followed here, not by httpx, so that loops can be detected
    and the hop count bounded.
    """

    def __init__(
        self,
        client: httpx.Client,
        tracker: PendingSubscriptionTracker,
        *,
        callback_base_url: str,
        max_redirects: int = 10,
    ) -> None:
        self._client = client
        self._tracker = tracker
        self._callback_base_url = callback_base_url.rstrip("/")
        self._max_redirects = max_redirects

    def callback_url(self, callback_id: str) -> str:
        return f"{self._callback_base_url}/{callback_id}"

    def build_form(self, pending: PendingSubscription) -> dict[str, str]:
        data = {
            HubParams.MODE: pending.mode.value,
            HubParams.TOPIC: pending.topic_url,
            HubParams.CALLBACK: self.callback_url(pending.callback_id),
        }
        if pending.lease_seconds != 0:
            data[HubParams.LEASE_SECONDS] = str(pending.lease_seconds)
        return data

    def send(self, pending: PendingSubscription) -> PendingSubscription:
        """
        Send a subscribe or unsubscribe request for ``pending``.

        Args:
            pending: Negotiation details; ``hub_url`` is the first hub to try.

        Returns:
            The tracked pending entry, whose ``hub_url`` is the hub that
            accepted the request.

        Raises:
            CommunicationError: Transport failure, non-202 status, or too
                many redirects.
            RedirectLoopError: A redirect targeted an already requested URL.
            ProtocolError: A redirect response had no usable ``Location``
                header, or a hub URL is malformed.
        """
        form = self.build_form(pending)
        url = pending.hub_url
        visited = [url]

        while True:
            logger.info(
                "Sending %s request for '%s' to hub %s",
                pending.mode.value,
                pending.callback_id,
                url,
            )
            try:
                response = self._client.post(url, data=form, follow_redirects=False)
            except httpx.InvalidURL as exc:
                raise ProtocolError(f"Invalid hub URL {url!r}") from exc
            except httpx.RequestError as exc:
                raise CommunicationError(
                    f"Hub request to {url} failed: {exc}", url=url
                ) from exc

            if response.status_code == 202:
                accepted = replace(pending, hub_url=url)
                self._tracker.put(accepted)
                return accepted

            if response.status_code not in REDIRECT_STATUS_CODES:
                logger.warning(
                    "Hub %s answered %d to %s request for '%s'",
                    url,
                    response.status_code,
                    pending.mode.value,
                    pending.callback_id,
                )
                raise CommunicationError(
                    f"Received status code {response.status_code}",
                    status_code=response.status_code,
                    url=url,
                )

            location = response.headers.get("location")
            if not location:
                raise ProtocolError("Hub redirect did not have Location header")

            try:
                target = urljoin(url, location)
            except ValueError as exc:
                raise ProtocolError("Invalid Location header") from exc
            if target in visited:
                raise RedirectLoopError(
                    "Detected redirect loop",
                    status_code=response.status_code,
                    url=target,
                )
            if len(visited) > self._max_redirects:
                raise CommunicationError(
                    f"Exceeded {self._max_redirects} hub redirects",
                    status_code=response.status_code,
                    url=target,
                )

            logger.debug("Hub %s redirected to %s", url, target)
            visited.append(target)
            url = target
