# celine/websub/core/topics/config.py
"""
Configuration loading for topic subscriptions.

Topics are declared in YAML and subscribed at startup by
``TopicSubscriber.subscribe_all``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from celine.websub.core.loader import load_yaml_files, substitute_env_vars

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TopicSpec:
    """
    Specification for a topic subscription from configuration.

    Attributes:
        id: Callback id used for the subscription.
        topic_url: Resource URL to discover and subscribe to.
        handler: Import path to a notification handler (module:function).
        enabled: Whether this topic is subscribed.
    """

    id: str
    topic_url: str
    handler: str | None = None
    enabled: bool = True


@dataclass(frozen=True)
class TopicsConfig:
    topics: list[TopicSpec] = field(default_factory=list)

    def get(self, topic_id: str) -> TopicSpec | None:
        for spec in self.topics:
            if spec.id == topic_id:
                return spec
        return None


def load_topics_config(patterns: Iterable[str]) -> TopicsConfig:
    """
    Load topic declarations from YAML files.

    Expected YAML structure:
    ```yaml
    topics:
      - id: releases
        topic_url: "${RELEASES_FEED:-https://example.com/releases.atom}"
        handler: "myapp.handlers:on_release"
        enabled: true
    ```

    When several files declare the same id, the later file wins.

    Raises:
        ValueError: If a topic lacks ``id`` or ``topic_url``.
    """
    topics_map: dict[str, dict[str, Any]] = {}

    for path, data in load_yaml_files(patterns):
        for raw in data.get("topics") or []:
            if not isinstance(raw, dict) or "id" not in raw:
                raise ValueError(f"Topic in '{path}' missing required 'id' field")
            if "topic_url" not in raw:
                raise ValueError(
                    f"Topic '{raw['id']}' in '{path}' missing required 'topic_url' field"
                )
            if str(raw["id"]) in topics_map:
                logger.info("Topic '%s' overridden by %s", raw["id"], path)
            topics_map[str(raw["id"])] = substitute_env_vars(raw)

    specs = [
        TopicSpec(
            id=topic_id,
            topic_url=raw["topic_url"],
            handler=raw.get("handler"),
            enabled=raw.get("enabled", True),
        )
        for topic_id, raw in topics_map.items()
    ]

    logger.info("Loaded %d topic spec(s): %s", len(specs), [s.id for s in specs])
    return TopicsConfig(topics=specs)
