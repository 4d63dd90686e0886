"""Exceptions for django-xfetch.

Backends raise these from ``get``/``set``; the guard absorbs read-side
errors and routes write-side errors to its write-error handler. Errors
raised by a recompute callback are never wrapped.
"""


class CacheMissError(KeyError):
    """Raised by a backend's ``get`` when the key holds no entry.

    Attributes:
        key: The key that was looked up.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"No cache entry for key {self.key!r}"


class EnvelopeError(ValueError):
    """Raised when stored bytes are not a valid entry envelope.

    This can occur when:
    - The key was written by something other than django-xfetch
    - The value was truncated or corrupted in storage

    The guard treats it like a miss and recomputes, which overwrites the
    bad value.
    """


class SerializerError(Exception):
    """Raised when serialization or deserialization of an entry value fails."""


class NotSupportedError(Exception):
    """Raised when an operation is not supported by a backend.

    Attributes:
        operation: The operation that is not supported.
        backend: Optional name of the backend that doesn't support it.

    Example:
        Calling ``afetch`` on a guard whose backend has no async client::

            from django_xfetch.exceptions import NotSupportedError

            try:
                value = await guard.afetch("report", build_report)
            except NotSupportedError:
                value = await sync_to_async(guard.fetch)("report", build_report_sync)
    """

    def __init__(self, operation: str, backend: str | None = None) -> None:
        self.operation = operation
        self.backend = backend
        super().__init__(str(self))

    def __str__(self) -> str:
        msg = f"Operation '{self.operation}' is not supported"
        if self.backend:
            msg += f" by {self.backend}"
        return msg
