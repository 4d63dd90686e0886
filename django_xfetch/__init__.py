VERSION = (1, 0, 0)
__version__ = ".".join(map(str, VERSION))


def get_guard(alias="default"):
    """Helper used for obtaining the shared StampedeGuard for a cache alias."""
    from django_xfetch.conf import get_guard as _get_guard

    return _get_guard(alias)
