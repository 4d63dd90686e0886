"""Test fixtures for django-xfetch."""

from tests.fixtures.containers import (
    RedisContainerInfo,
    redis_container,
    redis_container_factory,
    redis_images,
)
from tests.fixtures.guard import clock, guard, memory_cache

__all__ = [
    "RedisContainerInfo",
    "clock",
    "guard",
    "memory_cache",
    "redis_container",
    "redis_container_factory",
    "redis_images",
]
