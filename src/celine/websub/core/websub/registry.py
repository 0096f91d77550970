# celine/websub/core/websub/registry.py
"""
Subscription registry for confirmed WebSub subscriptions.

Subscriptions are indexed uniquely by id and kept ordered by expiration so
that expired entries can be swept without scanning the whole store.
"""
from __future__ import annotations

import bisect
import logging
import threading
from datetime import datetime
from typing import Iterator

from celine.websub.contracts.subscription import Subscription

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Thread-safe registry of confirmed subscriptions.

    Provides:
    - Upsert by id (``add`` replaces any entry with the same id)
    - Lookup by id
    - Range query on expiration (``get_expires_before``)

    Example:
        registry = SubscriptionRegistry()
        registry.add(Subscription(id="abc", topic_url=url, expiration=exp))

        registry.get_by_id("abc")
        registry.get_expires_before(datetime.now(timezone.utc))
    """

    def __init__(self) -> None:
        self._by_id: dict[str, Subscription] = {}
        # (expiration, id) pairs, kept sorted
        self._by_expiration: list[tuple[datetime, str]] = []
        self._lock = threading.RLock()

    def add(self, subscription: Subscription) -> None:
        """
        Add a subscription, replacing any existing entry with the same id.

        Args:
            subscription: The subscription to store.
        """
        with self._lock:
            previous = self._by_id.get(subscription.id)
            if previous is not None:
                self._drop_expiration(previous)

            self._by_id[subscription.id] = subscription
            bisect.insort(
                self._by_expiration, (subscription.expiration, subscription.id)
            )

            logger.debug(
                "%s subscription '%s' (state=%s, expires=%s)",
                "Replaced" if previous is not None else "Added",
                subscription.id,
                subscription.state.value,
                subscription.expiration.isoformat(),
            )

    def remove(self, subscription_id: str) -> bool:
        """
        Remove a subscription by id.

        Args:
            subscription_id: The subscription id.

        Returns:
            True if a subscription was removed, False if none was registered.
        """
        with self._lock:
            subscription = self._by_id.pop(subscription_id, None)
            if subscription is None:
                return False

            self._drop_expiration(subscription)
            logger.debug("Removed subscription '%s'", subscription_id)
            return True

    def get_by_id(self, subscription_id: str) -> Subscription | None:
        with self._lock:
            return self._by_id.get(subscription_id)

    def get_expires_before(self, when: datetime) -> list[Subscription]:
        """
        Get all subscriptions expiring strictly before ``when``.

        Returns:
            Subscriptions ordered by expiration, earliest first.
        """
        with self._lock:
            end = bisect.bisect_left(self._by_expiration, (when,))
            return [self._by_id[sid] for _, sid in self._by_expiration[:end]]

    def list_all(self) -> list[Subscription]:
        with self._lock:
            return list(self._by_id.values())

    def _drop_expiration(self, subscription: Subscription) -> None:
        key = (subscription.expiration, subscription.id)
        idx = bisect.bisect_left(self._by_expiration, key)
        if idx < len(self._by_expiration) and self._by_expiration[idx] == key:
            del self._by_expiration[idx]

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    def __contains__(self, subscription_id: str) -> bool:
        with self._lock:
            return subscription_id in self._by_id

    def __iter__(self) -> Iterator[Subscription]:
        with self._lock:
            return iter(list(self._by_id.values()))
