"""Settings-driven guards, one per Django cache alias.

Configuration::

    XFETCH = {
        "default": {
            "BETA": 1.0,                      # early-expiration sensitivity
            "BUFFER": 60,                     # seconds kept past logical expiry
            "LOG_IGNORED_EXCEPTIONS": False,  # log cache read faults
            "WRITE_ERROR_HANDLER": "django_xfetch.guard.log_write_error",
        }
    }

Aliases missing from ``XFETCH`` use the defaults above.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver
from django.utils.module_loading import import_string

from django_xfetch.backends.djangocache import DjangoEntryCache
from django_xfetch.guard import StampedeGuard
from django_xfetch.stampede import StampedeConfig

_KNOWN_OPTIONS = frozenset({"BETA", "BUFFER", "LOG_IGNORED_EXCEPTIONS", "WRITE_ERROR_HANDLER"})

_guards: dict[str, StampedeGuard] = {}
_guards_lock = threading.Lock()


def get_options(alias: str = "default") -> dict[str, Any]:
    """Return the ``XFETCH`` options for ``alias``, validated."""
    if alias not in settings.CACHES:
        msg = f"Could not find config for '{alias}' in settings.CACHES"
        raise ImproperlyConfigured(msg)

    all_options = getattr(settings, "XFETCH", {})
    if not isinstance(all_options, Mapping):
        msg = "settings.XFETCH must be a mapping of cache aliases to options"
        raise ImproperlyConfigured(msg)
    options = all_options.get(alias, {})
    if not isinstance(options, Mapping):
        msg = f"settings.XFETCH['{alias}'] must be a mapping"
        raise ImproperlyConfigured(msg)

    unknown = set(options) - _KNOWN_OPTIONS
    if unknown:
        msg = f"Unknown XFETCH options for '{alias}': {', '.join(sorted(unknown))}"
        raise ImproperlyConfigured(msg)
    return dict(options)


def get_config(alias: str = "default") -> StampedeConfig:
    options = get_options(alias)
    defaults = StampedeConfig()
    try:
        return StampedeConfig(
            beta=float(options.get("BETA", defaults.beta)),
            buffer=options.get("BUFFER", defaults.buffer),
        )
    except (TypeError, ValueError) as e:
        msg = f"Invalid XFETCH options for '{alias}': {e}"
        raise ImproperlyConfigured(msg) from e


def create_guard(alias: str = "default") -> StampedeGuard:
    """Build a new guard for ``alias`` from settings."""
    options = get_options(alias)
    config = get_config(alias)

    handler = options.get("WRITE_ERROR_HANDLER")
    if isinstance(handler, str):
        handler = import_string(handler)
    if handler is not None and not callable(handler):
        msg = f"XFETCH['{alias}']['WRITE_ERROR_HANDLER'] must be callable or a dotted path"
        raise ImproperlyConfigured(msg)

    return StampedeGuard(
        DjangoEntryCache(alias, buffer=config.buffer),
        beta=config.beta,
        on_write_error=handler,
        log_ignored_exceptions=bool(options.get("LOG_IGNORED_EXCEPTIONS", False)),
    )


def get_guard(alias: str = "default") -> StampedeGuard:
    """Return the shared guard for a Django cache alias.

    Guards are created on first use and reused; changing ``XFETCH`` or
    ``CACHES`` (e.g. with ``override_settings``) drops them.
    """
    guard = _guards.get(alias)
    if guard is not None:
        return guard
    with _guards_lock:
        guard = _guards.get(alias)
        if guard is None:
            guard = _guards[alias] = create_guard(alias)
    return guard


@receiver(setting_changed)
def _reset_guards(*, setting: str, **kwargs: Any) -> None:
    if setting in {"XFETCH", "CACHES"}:
        with _guards_lock:
            _guards.clear()
