# celine/websub/main.py
"""
WebSub subscriber application factory.

Creates a FastAPI application that owns a single ``TopicSubscriber``, routes
hub callbacks to it and subscribes the configured topics on startup.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from celine.websub.api.callback import build_callback_router
from celine.websub.api.status import router as status_router
from celine.websub.core.config import Settings
from celine.websub.core.config import settings as default_settings
from celine.websub.core.logging import configure_logging
from celine.websub.core.topics import TopicsConfig, TopicSubscriber, load_topics_config
from celine.websub.core.websub.registry import SubscriptionRegistry
from celine.websub.core.websub.subscriber import SubscriberOptions, WebSubSubscriber

logger = logging.getLogger(__name__)


# -- Helpers -------------------------------------------------------------------


def _load_topics(settings: Settings) -> TopicsConfig:
    try:
        return load_topics_config(settings.topics_config_paths)
    except Exception:
        logger.exception("Failed to load topics")
        raise


def build_subscriber(settings: Settings) -> TopicSubscriber:
    """Build the subscriber for the configured callback URL and topics."""
    return TopicSubscriber(
        SubscriptionRegistry(),
        SubscriberOptions.from_settings(settings),
        _load_topics(settings),
    )


# -- Lifespan ------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    subscriber: WebSubSubscriber = app.state.subscriber

    if settings.websub_subscribe_on_startup and isinstance(subscriber, TopicSubscriber):
        results = await asyncio.to_thread(subscriber.subscribe_all)
        for topic_id, ok in results.items():
            lvl = logging.INFO if ok else logging.WARNING
            logger.log(lvl, "Topic '%s': %s", topic_id, "requested" if ok else "FAILED")

    try:
        yield
    finally:
        subscriber.close()


# -- Application factory -------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    subscriber: WebSubSubscriber | None = None,
) -> FastAPI:
    """Build and wire the subscriber FastAPI application."""
    settings = settings or default_settings
    configure_logging(settings.log_level, json=settings.log_json)
    logger.info("Creating WebSub subscriber application (env=%s)", settings.app_env)

    if subscriber is None:
        subscriber = build_subscriber(settings)

    app = FastAPI(
        title="CELINE WebSub Subscriber",
        version="1.0.0",
        description="Subscriber side of the WebSub protocol",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.subscriber = subscriber

    prefix = "/" + settings.websub_callback_prefix.strip("/")
    app.include_router(status_router)
    app.include_router(build_callback_router(), prefix=prefix)

    logger.info(
        "WebSub subscriber ready: callbacks at %s/{id}",
        subscriber.options.base_url,
    )
    return app
