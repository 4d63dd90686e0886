import json
from typing import Any

from django.core.serializers.json import DjangoJSONEncoder

from django_xfetch.exceptions import SerializerError
from django_xfetch.serializers.base import BaseSerializer


class JSONSerializer(BaseSerializer):
    """JSON serializer using Django's DjangoJSONEncoder.

    Limited to JSON-compatible values, plus what DjangoJSONEncoder adds
    (datetimes, Decimal, UUID, lazy strings), which come back as strings.

    Attributes:
        encoder_class: The JSON encoder class to use.
    """

    encoder_class = DjangoJSONEncoder

    def dumps(self, obj: Any) -> bytes:
        return json.dumps(obj, cls=self.encoder_class).encode()

    def loads(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SerializerError from e
