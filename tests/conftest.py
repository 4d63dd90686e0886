"""Pytest configuration for django-xfetch tests."""

from tests.fixtures import (
    clock,
    guard,
    memory_cache,
    redis_container,
    redis_container_factory,
    redis_images,
)

# Re-export fixtures so pytest can discover them
__all__ = [
    "clock",
    "guard",
    "memory_cache",
    "redis_container",
    "redis_container_factory",
    "redis_images",
]
