# tests/core/websub/test_websub_subscriber.py
from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from celine.websub.contracts import CallbackRequest, Subscription, SubscriptionState
from celine.websub.core.config import Settings
from celine.websub.core.websub.errors import CommunicationError
from celine.websub.core.websub.registry import SubscriptionRegistry
from celine.websub.core.websub.subscriber import SubscriberOptions, WebSubSubscriber
from websub_fakes import CALLBACK_BASE, form_of

TOPIC = "https://blog.example.com/feed"
HUB = "https://hub.example.com/"


def serve_topic(mock_http) -> None:
    mock_http.on(
        TOPIC,
        lambda r: httpx.Response(
            200,
            headers=[("Link", f'<{HUB}>; rel="hub"'), ("Link", f'<{TOPIC}>; rel="self"')],
        ),
    )


def verify_request(form: dict[str, str], challenge: str = "challenge-1", **extra) -> CallbackRequest:
    params = {
        "hub.mode": [form["hub.mode"]],
        "hub.topic": [form["hub.topic"]],
        "hub.challenge": [challenge],
    }
    params.update({k: [v] for k, v in extra.items()})
    return CallbackRequest(
        method="GET",
        callback_id=form["hub.callback"].rsplit("/", 1)[-1],
        params=params,
    )


class TestSubscriberOptions:
    def test_defaults(self):
        options = SubscriberOptions(base_url=CALLBACK_BASE)

        assert options.lease_seconds == 0
        assert options.base_retry_interval == timedelta(minutes=5)
        assert options.max_redirects == 10

    def test_base_url_required(self):
        with pytest.raises(ValueError):
            SubscriberOptions(base_url="")

    def test_negative_lease_rejected(self):
        with pytest.raises(ValueError):
            SubscriberOptions(base_url=CALLBACK_BASE, lease_seconds=-1)

    def test_from_settings(self):
        settings = Settings(
            websub_base_url="https://me.example.com/",
            websub_callback_prefix="hooks/",
            websub_lease_seconds=600,
            websub_base_retry_interval=60,
            websub_max_redirects=2,
        )

        options = SubscriberOptions.from_settings(settings)

        assert options.base_url == "https://me.example.com/hooks"
        assert options.lease_seconds == 600
        assert options.base_retry_interval == timedelta(seconds=60)
        assert options.max_redirects == 2


class TestSubscribeFlow:
    def test_discover_subscribe_verify_notify(self, subscriber, mock_http, clock):
        serve_topic(mock_http)
        mock_http.on(HUB, lambda r: httpx.Response(202))

        found = subscriber.discover(TOPIC)
        callback_id = subscriber.subscribe(found.hub_urls[0], found.topic_url)

        form = form_of(mock_http.requests[-1])
        assert form["hub.callback"] == subscriber.callback_url(callback_id)
        assert callback_id in subscriber.pending
        assert callback_id not in subscriber.registry

        response = subscriber.handle_request(
            verify_request(form, **{"hub.lease_seconds": "45"})
        )

        assert response.status_code == 200
        assert response.body == "challenge-1"
        sub = subscriber.registry.get_by_id(callback_id)
        assert sub.state is SubscriptionState.ACTIVE
        assert sub.expiration == clock() + timedelta(seconds=45)

        notify = CallbackRequest.from_url(
            "POST", subscriber.callback_url(callback_id), body=b"hello"
        )
        assert subscriber.handle_request(notify).status_code == 200
        assert subscriber.notifications[0][1].body == b"hello"

    def test_generated_callback_ids_are_unique(self, subscriber, mock_http):
        mock_http.on(HUB, lambda r: httpx.Response(202))

        ids = {subscriber.subscribe(HUB, TOPIC) for _ in range(3)}

        assert len(ids) == 3
        assert all(i in subscriber.pending for i in ids)

    def test_explicit_callback_id(self, subscriber, mock_http):
        mock_http.on(HUB, lambda r: httpx.Response(202))

        assert subscriber.subscribe(HUB, TOPIC, "my-id") == "my-id"
        assert form_of(mock_http.requests[0])["hub.callback"] == f"{CALLBACK_BASE}/my-id"

    def test_lease_option_is_requested(self, make_subscriber, mock_http):
        subscriber = make_subscriber(lease_seconds=86400)
        mock_http.on(HUB, lambda r: httpx.Response(202))

        subscriber.subscribe(HUB, TOPIC)

        assert form_of(mock_http.requests[0])["hub.lease_seconds"] == "86400"

    def test_rejected_request_leaves_no_state(self, subscriber, mock_http):
        mock_http.on(HUB, lambda r: httpx.Response(400))

        with pytest.raises(CommunicationError):
            subscriber.subscribe(HUB, TOPIC, "abc")

        assert len(subscriber.pending) == 0
        assert len(subscriber.registry) == 0

    def test_unsubscribe_flow(self, subscriber, mock_http):
        mock_http.on(HUB, lambda r: httpx.Response(202))
        callback_id = subscriber.subscribe(HUB, TOPIC)
        subscriber.handle_request(
            verify_request(form_of(mock_http.requests[0]), **{"hub.lease_seconds": "60"})
        )
        assert callback_id in subscriber.registry

        subscriber.unsubscribe(HUB, TOPIC, callback_id)
        form = form_of(mock_http.requests[1])
        assert form["hub.mode"] == "unsubscribe"
        assert "hub.lease_seconds" not in form

        response = subscriber.handle_request(verify_request(form, challenge="bye"))

        assert response.body == "bye"
        assert callback_id not in subscriber.registry
        assert subscriber.hook_names() == ["subscribe_success", "unsubscribe_success"]

    def test_denial_during_negotiation(self, subscriber, mock_http):
        mock_http.on(HUB, lambda r: httpx.Response(202))
        callback_id = subscriber.subscribe(HUB, TOPIC)

        response = subscriber.handle_request(
            CallbackRequest(
                method="GET",
                callback_id=callback_id,
                params={"hub.mode": ["denied"], "hub.topic": [TOPIC]},
            )
        )

        assert response.status_code == 200
        assert callback_id not in subscriber.pending
        assert callback_id not in subscriber.registry
        assert subscriber.hook_names() == ["subscribe_rejected"]


class TestDefaultHooks:
    @pytest.fixture
    def plain(self, mock_http, clock) -> WebSubSubscriber:
        return WebSubSubscriber(
            SubscriptionRegistry(),
            SubscriberOptions(base_url=CALLBACK_BASE),
            client=mock_http.client(),
            clock=clock,
        )

    def test_failure_hooks_remove_from_registry(self, plain, clock):
        sub = Subscription(id="a", topic_url=TOPIC, expiration=clock())
        for hook in (plain.on_subscribe_failed, plain.on_unsubscribe_failed):
            plain.registry.add(sub)
            hook(sub)
            assert "a" not in plain.registry

    def test_refresh_hook_is_informational(self, plain, clock):
        sub = Subscription(id="b", topic_url=TOPIC, expiration=clock())
        plain.registry.add(sub)

        plain.on_subscription_refresh("a", sub)

        assert "b" in plain.registry

    def test_context_manager_keeps_caller_client(self, mock_http):
        client = mock_http.client()
        with WebSubSubscriber(
            SubscriptionRegistry(), SubscriberOptions(base_url=CALLBACK_BASE), client=client
        ):
            pass

        assert not client.is_closed

    def test_owned_client_is_closed(self):
        subscriber = WebSubSubscriber(
            SubscriptionRegistry(), SubscriberOptions(base_url=CALLBACK_BASE)
        )

        subscriber.close()

        assert subscriber._client.is_closed
