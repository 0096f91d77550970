# celine/websub/core/websub/pending.py
"""
Tracker for negotiations acknowledged by a hub but not yet verified.

Entries live in memory only. An entry lost on restart leaves a hub-side
subscription that can no longer be verified.
"""
from __future__ import annotations

import logging
import threading

from celine.websub.contracts.subscription import PendingSubscription

logger = logging.getLogger(__name__)


class PendingSubscriptionTracker:
    """Map from callback id to pending negotiation, guarded by a lock."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingSubscription] = {}
        self._lock = threading.Lock()

    def put(self, pending: PendingSubscription) -> None:
        with self._lock:
            self._pending[pending.callback_id] = pending
        logger.debug(
            "Tracking pending %s for '%s' (topic=%s)",
            pending.mode.value,
            pending.callback_id,
            pending.topic_url,
        )

    def get(self, callback_id: str) -> PendingSubscription | None:
        with self._lock:
            return self._pending.get(callback_id)

    def remove(self, callback_id: str) -> PendingSubscription | None:
        """Remove and return the pending entry, or None if absent."""
        with self._lock:
            return self._pending.pop(callback_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, callback_id: str) -> bool:
        with self._lock:
            return callback_id in self._pending
