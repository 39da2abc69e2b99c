"""Per-topic task queues."""

from .topic_queue import TopicQueue, TopicQueueRegistry

__all__ = ["TopicQueue", "TopicQueueRegistry"]
