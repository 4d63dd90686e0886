import pickle
from typing import Any

from django.core.exceptions import ImproperlyConfigured

from django_xfetch.exceptions import SerializerError
from django_xfetch.serializers.base import BaseSerializer


class PickleSerializer(BaseSerializer):
    """Pickle-based serializer, the default for ``RedisEntryCache``.

    Handles any picklable value. Only use it with a cache that untrusted
    parties cannot write to.
    """

    def __init__(self, protocol: int | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if protocol is None:
            protocol = pickle.DEFAULT_PROTOCOL
        elif protocol > pickle.HIGHEST_PROTOCOL:
            msg = f"protocol can't be higher than pickle.HIGHEST_PROTOCOL: {pickle.HIGHEST_PROTOCOL}"
            raise ImproperlyConfigured(msg)
        self.protocol = protocol

    def dumps(self, obj: Any) -> bytes:
        return pickle.dumps(obj, self.protocol)

    def loads(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)  # noqa: S301
        except Exception as e:
            raise SerializerError from e
