import dataclasses
import typing

from .models import Resource


@dataclasses.dataclass
class APIError:
    """
    An `Error Object <https://jsonapi.org/format/#error-objects>`_ reported by the server.
    """

    id: typing.Optional[str] = None
    status: typing.Optional[str] = None
    code: typing.Optional[str] = None
    title: typing.Optional[str] = None
    detail: typing.Optional[str] = None
    source_pointer: typing.Optional[str] = None
    source_parameter: typing.Optional[str] = None
    meta: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass
class Document:
    """
    The result of deserializing a single response.

    ``data`` is :py:const:`None` if and only if the document reports errors.
    ``is_collection`` tells whether the primary data was an array on the wire.
    """

    data: typing.Optional[typing.List[Resource]] = None
    is_collection: bool = False
    included: typing.List[Resource] = dataclasses.field(default_factory=list)
    errors: typing.Optional[typing.List[APIError]] = None
    meta: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    jsonapi: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    links: typing.Dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def resource(self) -> typing.Optional[Resource]:
        """
        The first primary resource, if any.
        """
        if not self.data:
            return None
        return self.data[0]
