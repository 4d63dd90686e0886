"""Utilities for serializer instantiation."""

from __future__ import annotations

from typing import Any

from django.utils.module_loading import import_string

DEFAULT_SERIALIZER = "django_xfetch.serializers.pickle.PickleSerializer"


def is_serializer_instance(obj: Any) -> bool:
    """Check if an object is a serializer instance (has dumps/loads methods)."""
    if isinstance(obj, type):
        return False
    return hasattr(obj, "dumps") and hasattr(obj, "loads") and callable(obj.dumps) and callable(obj.loads)


def create_serializer(config: str | type | Any | None, **kwargs: Any) -> Any:
    """Create a serializer instance from config.

    Args:
        config: A dotted path string, a class, an instance, or None for default pickle
        **kwargs: Keyword arguments to pass to serializer constructor
    """
    if config is None:
        config = DEFAULT_SERIALIZER

    if is_serializer_instance(config):
        return config

    if isinstance(config, type):
        return config(**kwargs)

    cls = import_string(config)
    return cls(**kwargs)
