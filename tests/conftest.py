# tests/conftest.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from celine.websub.core.websub.registry import SubscriptionRegistry
from celine.websub.core.websub.subscriber import SubscriberOptions
from websub_fakes import CALLBACK_BASE, FakeClock, MockHttp, RecordingSubscriber


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def mock_http() -> MockHttp:
    return MockHttp()


@pytest.fixture
def make_subscriber(mock_http: MockHttp, clock: FakeClock):
    def factory(**options: Any) -> RecordingSubscriber:
        keep_rejected = options.pop("keep_rejected", False)
        return RecordingSubscriber(
            SubscriptionRegistry(),
            SubscriberOptions(base_url=CALLBACK_BASE, **options),
            client=mock_http.client(),
            clock=clock,
            keep_rejected=keep_rejected,
        )

    return factory


@pytest.fixture
def subscriber(make_subscriber) -> RecordingSubscriber:
    return make_subscriber()
