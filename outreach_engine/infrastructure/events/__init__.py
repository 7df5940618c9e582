"""Event publishers"""

from .redis_publisher import RedisEventPublisher

__all__ = [
    "RedisEventPublisher",
]
