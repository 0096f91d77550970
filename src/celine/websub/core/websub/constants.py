# celine/websub/core/websub/constants.py
"""Parameter names and modes of the WebSub wire protocol."""
from __future__ import annotations


class Modes:
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    DENIED = "denied"


class HubParams:
    CALLBACK = "hub.callback"
    CHALLENGE = "hub.challenge"
    LEASE_SECONDS = "hub.lease_seconds"
    MODE = "hub.mode"
    REASON = "hub.reason"
    TOPIC = "hub.topic"


class LinkRels:
    HUB = "hub"
    SELF = "self"


HTML_MEDIA_TYPE = "text/html"
