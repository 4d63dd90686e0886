from typing import Any

import msgpack

from django_xfetch.exceptions import SerializerError
from django_xfetch.serializers.base import BaseSerializer


class MessagePackSerializer(BaseSerializer):
    """MessagePack serializer: compact binary, JSON-like types only.

    Requires the ``msgpack`` package::

        pip install django-xfetch[msgpack]
    """

    def dumps(self, obj: Any) -> bytes:
        return msgpack.dumps(obj)

    def loads(self, data: bytes) -> Any:
        try:
            return msgpack.loads(data, raw=False)
        except Exception as e:
            raise SerializerError from e
