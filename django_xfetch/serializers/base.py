from typing import Any


class BaseSerializer:
    """Base class for entry value serializers.

    Any object with ``dumps`` and ``loads`` methods works as a serializer;
    this class only documents the interface. ``RedisEntryCache`` calls
    ``dumps`` on the entry's value before wrapping it in the envelope and
    ``loads`` after unwrapping.

    ``loads`` should raise ``SerializerError`` for data it cannot decode so
    that the guard treats the key as a miss.
    """

    def __init__(self, **kwargs: Any) -> None:
        pass

    def dumps(self, obj: Any) -> bytes:
        raise NotImplementedError

    def loads(self, data: bytes) -> Any:
        raise NotImplementedError
