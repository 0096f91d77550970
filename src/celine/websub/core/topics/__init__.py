"""Topic subscriptions declared in configuration."""

from celine.websub.core.topics.config import TopicSpec, TopicsConfig, load_topics_config
from celine.websub.core.topics.subscriber import TopicSubscriber

__all__ = [
    "TopicSpec",
    "TopicsConfig",
    "load_topics_config",
    "TopicSubscriber",
]
