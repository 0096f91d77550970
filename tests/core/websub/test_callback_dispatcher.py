# tests/core/websub/test_callback_dispatcher.py
from __future__ import annotations

import io
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from urllib.parse import urlencode

import pytest

from celine.websub.contracts import (
    CallbackRequest,
    PendingSubscription,
    Subscription,
    SubscriptionMode,
    SubscriptionState,
)
from websub_fakes import CALLBACK_BASE

HUB = "https://hub.example.com/"
TOPIC = "https://blog.example.com/feed"


def get(callback_id: str, query: str | dict = "") -> CallbackRequest:
    if isinstance(query, dict):
        query = urlencode(query)
    return CallbackRequest.from_url("GET", f"{CALLBACK_BASE}/{callback_id}?{query}")


def verification(callback_id: str = "abc", mode: str = "subscribe", **extra) -> CallbackRequest:
    params = {"hub.mode": mode, "hub.topic": TOPIC, "hub.challenge": "C"}
    if mode == "subscribe":
        params["hub.lease_seconds"] = "45"
    params.update(extra)
    return get(callback_id, {k: v for k, v in params.items() if v is not None})


@dataclass
class GatedRequest(CallbackRequest):
    """Blocks on a barrier when ``gate_param`` is read, to line up two threads."""

    gate_param: str = ""
    barrier: threading.Barrier | None = field(default=None, repr=False)

    def get_param(self, name: str) -> str | None:
        if name == self.gate_param and self.barrier is not None:
            self.barrier.wait()
        return super().get_param(name)


def run_concurrently(subscriber, make_request) -> list[int]:
    barrier = threading.Barrier(2, timeout=5)
    statuses: list[int] = []
    lock = threading.Lock()

    def worker() -> None:
        response = subscriber.handle_request(make_request(barrier))
        with lock:
            statuses.append(response.status_code)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return sorted(statuses)


def post(callback_id: str, body=b"<feed/>", headers=None) -> CallbackRequest:
    return CallbackRequest.from_url(
        "POST",
        f"{CALLBACK_BASE}/{callback_id}",
        headers=headers or {"Content-Type": "application/atom+xml"},
        body=body,
    )


def track(subscriber, callback_id: str = "abc", mode=SubscriptionMode.SUBSCRIBE):
    pending = PendingSubscription(
        mode=mode, hub_url=HUB, topic_url=TOPIC, callback_id=callback_id
    )
    subscriber.pending.put(pending)
    return pending


def activate(subscriber, clock, callback_id: str = "abc") -> Subscription:
    sub = Subscription(
        id=callback_id,
        topic_url=TOPIC,
        expiration=clock() + timedelta(hours=1),
        hub_url=HUB,
    )
    subscriber.registry.add(sub)
    return sub


class TestSubscribeVerification:
    def test_confirms_pending_subscription(self, subscriber, clock):
        track(subscriber)

        response = subscriber.handle_request(verification())

        assert response.status_code == 200
        assert response.body == "C"
        assert response.media_type == "text/plain"
        sub = subscriber.registry.get_by_id("abc")
        assert sub.topic_url == TOPIC
        assert sub.hub_url == HUB
        assert sub.state is SubscriptionState.ACTIVE
        assert sub.expiration == clock() + timedelta(seconds=45)
        assert "abc" not in subscriber.pending
        assert subscriber.hook_names() == ["subscribe_success"]

    def test_zero_lease_is_accepted(self, subscriber, clock):
        track(subscriber)

        response = subscriber.handle_request(verification(**{"hub.lease_seconds": "0"}))

        assert response.status_code == 200
        assert subscriber.registry.get_by_id("abc").expiration == clock()

    def test_unknown_id(self, subscriber):
        response = subscriber.handle_request(verification("nope"))

        assert response.status_code == 404
        assert response.body == "No subscription found."
        assert subscriber.calls == []

    def test_topic_mismatch_keeps_pending(self, subscriber):
        track(subscriber)

        response = subscriber.handle_request(
            verification(**{"hub.topic": "https://evil.example.com/"})
        )

        assert response.status_code == 404
        assert response.body == "Topic URL does not match expected."
        assert "abc" in subscriber.pending
        assert "abc" not in subscriber.registry

    def test_mode_mismatch(self, subscriber):
        track(subscriber, mode=SubscriptionMode.UNSUBSCRIBE)

        response = subscriber.handle_request(verification())

        assert response.status_code == 404
        assert "abc" in subscriber.pending

    @pytest.mark.parametrize(
        "missing, message",
        [
            ("hub.topic", "Request must have one 'hub.topic' parameter."),
            ("hub.challenge", "Request must have one 'hub.challenge' parameter."),
        ],
    )
    def test_missing_parameter(self, subscriber, missing, message):
        track(subscriber)

        response = subscriber.handle_request(verification(**{missing: None}))

        assert response.status_code == 400
        assert response.body == message
        assert "abc" in subscriber.pending

    def test_missing_lease(self, subscriber):
        track(subscriber)

        response = subscriber.handle_request(verification(**{"hub.lease_seconds": None}))

        assert response.status_code == 400
        assert "hub.lease_seconds" in response.body
        assert "abc" in subscriber.pending

    @pytest.mark.parametrize("lease", ["abc", "-5", "1.5", ""])
    def test_invalid_lease(self, subscriber, lease):
        track(subscriber)

        response = subscriber.handle_request(verification(**{"hub.lease_seconds": lease}))

        assert response.status_code == 400
        assert "abc" not in subscriber.registry

    def test_second_verification_is_rejected(self, subscriber):
        track(subscriber)
        assert subscriber.handle_request(verification()).status_code == 200

        response = subscriber.handle_request(verification())

        assert response.status_code == 404
        assert subscriber.hook_names() == ["subscribe_success"]

    def test_concurrent_verifications_confirm_once(self, subscriber):
        track(subscriber)
        base = verification()

        def make_request(barrier):
            return GatedRequest(
                method="GET",
                callback_id="abc",
                params=base.params,
                gate_param="hub.challenge",
                barrier=barrier,
            )

        statuses = run_concurrently(subscriber, make_request)

        assert statuses == [200, 404]
        assert subscriber.hook_names() == ["subscribe_success"]
        assert len(subscriber.registry) == 1


class TestModeParameter:
    def test_missing_mode(self, subscriber):
        response = subscriber.handle_request(get("abc", "hub.topic=x"))

        assert response.status_code == 400
        assert response.body == "Request must have one 'hub.mode' parameter."

    def test_duplicate_mode(self, subscriber):
        track(subscriber)

        response = subscriber.handle_request(
            get("abc", "hub.mode=subscribe&hub.mode=subscribe")
        )

        assert response.status_code == 400

    def test_unknown_mode(self, subscriber):
        response = subscriber.handle_request(get("abc", "hub.mode=publish"))

        assert response.status_code == 400
        assert "denied, subscribe, or unsubscribe" in response.body

    @pytest.mark.parametrize("method", ["PUT", "DELETE", "PATCH"])
    def test_unsupported_method(self, subscriber, method):
        response = subscriber.handle_request(
            CallbackRequest.from_url(method, f"{CALLBACK_BASE}/abc")
        )

        assert response.status_code == 405
        assert response.body == "Only GET/POST supported."


class TestUnsubscribeVerification:
    def test_confirms_unsubscription(self, subscriber, clock):
        activate(subscriber, clock)
        track(subscriber, mode=SubscriptionMode.UNSUBSCRIBE)

        response = subscriber.handle_request(verification(mode="unsubscribe"))

        assert response.status_code == 200
        assert response.body == "C"
        assert "abc" not in subscriber.registry
        assert "abc" not in subscriber.pending
        name, sub = subscriber.calls[0]
        assert name == "unsubscribe_success"
        assert sub.expiration == clock() + timedelta(minutes=5)

    def test_lease_not_required(self, subscriber):
        track(subscriber, mode=SubscriptionMode.UNSUBSCRIBE)

        response = subscriber.handle_request(get("abc", {
            "hub.mode": "unsubscribe", "hub.topic": TOPIC, "hub.challenge": "xyz",
        }))

        assert response.status_code == 200
        assert response.body == "xyz"


class TestDenial:
    def test_denies_active_subscription(self, subscriber, clock):
        sub = activate(subscriber, clock)

        response = subscriber.handle_request(get("abc", {
            "hub.mode": "denied", "hub.topic": TOPIC, "hub.reason": "banned",
        }))

        assert response.status_code == 200
        name, (rejected, reason) = subscriber.calls[0]
        assert name == "subscribe_rejected"
        assert rejected.state is SubscriptionState.REJECTED
        assert rejected.expiration == sub.expiration
        assert reason == "banned"
        assert "abc" not in subscriber.registry

    def test_denies_pending_subscription(self, subscriber, clock):
        track(subscriber)

        response = subscriber.handle_request(
            get("abc", {"hub.mode": "denied", "hub.topic": TOPIC})
        )

        assert response.status_code == 200
        assert "abc" not in subscriber.pending
        _, (rejected, reason) = subscriber.calls[0]
        assert rejected.expiration == clock() + timedelta(minutes=5)
        assert reason is None

    def test_kept_rejection_is_idempotent(self, make_subscriber, clock):
        subscriber = make_subscriber(keep_rejected=True)
        track(subscriber)
        request = get("abc", {"hub.mode": "denied", "hub.topic": TOPIC})

        assert subscriber.handle_request(request).status_code == 200
        assert subscriber.handle_request(request).status_code == 200

        assert len(subscriber.registry) == 1
        assert subscriber.registry.get_by_id("abc").state is SubscriptionState.REJECTED
        assert subscriber.hook_names() == ["subscribe_rejected", "subscribe_rejected"]

    def test_unknown_id(self, subscriber):
        response = subscriber.handle_request(
            get("abc", {"hub.mode": "denied", "hub.topic": TOPIC})
        )

        assert response.status_code == 404

    def test_topic_mismatch(self, subscriber):
        track(subscriber)

        response = subscriber.handle_request(
            get("abc", {"hub.mode": "denied", "hub.topic": "https://other.example.com/"})
        )

        assert response.status_code == 404
        assert "abc" in subscriber.pending
        assert subscriber.calls == []

    def test_missing_topic(self, subscriber, clock):
        activate(subscriber, clock)

        response = subscriber.handle_request(get("abc", {"hub.mode": "denied"}))

        assert response.status_code == 400
        assert subscriber.registry.get_by_id("abc").state is SubscriptionState.ACTIVE

    def test_concurrent_denials_of_pending_reject_once(self, subscriber):
        track(subscriber)

        def make_request(barrier):
            return GatedRequest(
                method="GET",
                callback_id="abc",
                params={"hub.mode": ["denied"], "hub.topic": [TOPIC]},
                gate_param="hub.topic",
                barrier=barrier,
            )

        statuses = run_concurrently(subscriber, make_request)

        assert statuses == [200, 404]
        assert subscriber.hook_names() == ["subscribe_rejected"]


class TestNotification:
    def test_delivers_to_hook(self, subscriber, clock):
        sub = activate(subscriber, clock)

        response = subscriber.handle_request(post("abc"))

        assert response.status_code == 200
        (received_sub, notification), = subscriber.notifications
        assert received_sub == sub
        assert notification.callback_id == "abc"
        assert notification.body == b"<feed/>"
        assert notification.content_type == "application/atom+xml"
        assert notification.received_at == clock()

    def test_stream_body(self, subscriber, clock):
        activate(subscriber, clock)

        subscriber.handle_request(post("abc", body=io.BytesIO(b"streamed")))

        assert subscriber.notifications[0][1].body == b"streamed"

    def test_unknown_id(self, subscriber):
        response = subscriber.handle_request(post("abc"))

        assert response.status_code == 404
        assert subscriber.notifications == []

    def test_pending_only_is_not_delivered(self, subscriber):
        track(subscriber)

        response = subscriber.handle_request(post("abc"))

        assert response.status_code == 404
        assert subscriber.notifications == []

    def test_unreadable_body(self, subscriber, clock):
        class BrokenStream(io.RawIOBase):
            def read(self, size=-1):
                raise OSError("connection reset")

        activate(subscriber, clock)

        response = subscriber.handle_request(post("abc", body=BrokenStream()))

        assert response.status_code == 200
        assert subscriber.notifications == []

    def test_failing_hook_still_acknowledged(self, subscriber, clock, monkeypatch, caplog):
        activate(subscriber, clock)

        def boom(subscription, notification):
            raise RuntimeError("handler failed")

        monkeypatch.setattr(subscriber, "on_notification", boom)

        response = subscriber.handle_request(post("abc"))

        assert response.status_code == 200
        assert "Hook 'on_notification' failed" in caplog.text
