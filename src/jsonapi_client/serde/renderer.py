"""
:py:class:`ReprRenderer` turns the wire-level Reprs of an outgoing document into
plain JSON values, and :py:meth:`ReprRenderer.dumps` turns those into a payload.

.. code-block:: python

   renderer = ReprRenderer()
   payload = renderer.dumps(
       renderer(
           DocumentRepr(
               data=ResourceRepr(
                   type="articles",
                   id=None,
                   attributes=[("title", "JSON:API paints my bikeshed!")],
                   relationships=[
                       ("author", LinkageRepr(data=ResourceIdRepr(type="people", id="9"))),
                   ],
               ),
           )
       )
   )

"""

import base64
import collections.abc
import datetime
import decimal
import json
import typing
from collections import OrderedDict

from .models import (
    AttributeValue,
    DocumentRepr,
    ErrorRepr,
    LinkageData,
    LinkageRepr,
    LinksRepr,
    Missing,
    ResourceIdRepr,
    ResourceRepr,
)
from .types import JSONScalar, JSONValue, MutableJSONObject, Payload
from .utils import JSONPointer

ScalarRenderer = typing.Callable[["ReprRenderer", typing.Any], JSONScalar]


def _render_datetime(self: "ReprRenderer", value: datetime.datetime) -> JSONScalar:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc)
    return value.isoformat()


def _render_date(self: "ReprRenderer", value: datetime.date) -> JSONScalar:
    return value.isoformat()


def _render_decimal(self: "ReprRenderer", value: decimal.Decimal) -> JSONScalar:
    return str(value) if self.render_decimal_as_str else float(value)


def _render_bytes(self: "ReprRenderer", value: bytes) -> JSONScalar:
    return base64.b64encode(value).decode("ascii")


def _as_is(self: "ReprRenderer", value: JSONScalar) -> JSONScalar:
    return value


class ReprRenderer:
    """
    :param bool render_decimal_as_str: renders :py:class:`decimal.Decimal` values
                                       as strings rather than as (lossy) numbers.
    :param bool omit_null_id: leaves the ``id`` member out of resource objects
                              that have none yet, as creation requests expect.
    """

    render_decimal_as_str: bool
    omit_null_id: bool

    # datetime must precede date, which it subclasses
    scalar_renderers: typing.ClassVar[typing.Sequence[typing.Tuple[type, ScalarRenderer]]] = (
        (datetime.datetime, _render_datetime),
        (datetime.date, _render_date),
        (decimal.Decimal, _render_decimal),
        (bytes, _render_bytes),
        (str, _as_is),
        (bool, _as_is),
        (int, _as_is),
        (float, _as_is),
        (type(None), _as_is),
    )

    def _render_value(self, pointer: JSONPointer, value: AttributeValue) -> JSONValue:
        for type_, render in self.scalar_renderers:
            if isinstance(value, type_):
                return render(self, value)
        if isinstance(value, collections.abc.Mapping):
            return OrderedDict(
                (str(k), self._render_value(pointer / str(k), v)) for k, v in value.items()
            )
        if isinstance(value, collections.abc.Sequence):
            return [self._render_value(pointer[i], v) for i, v in enumerate(value)]
        raise TypeError(f"{pointer}: cannot render {value!r}")

    def _render_identifier(self, repr_: ResourceIdRepr) -> MutableJSONObject:
        retval: MutableJSONObject = {"type": repr_.type, "id": repr_.id}
        if repr_.meta:
            retval["meta"] = repr_.meta
        return retval

    def _render_linkage_data(self, data: LinkageData) -> JSONValue:
        if data is None:
            return None
        if isinstance(data, ResourceIdRepr):
            return self._render_identifier(data)
        return [self._render_identifier(i) for i in typing.cast(typing.Sequence[ResourceIdRepr], data)]

    def _render_links(self, repr_: LinksRepr) -> MutableJSONObject:
        return OrderedDict(repr_.as_dict())

    def _render_relationship(self, repr_: LinkageRepr) -> MutableJSONObject:
        retval: MutableJSONObject = {}
        if repr_.links is not None:
            retval["links"] = self._render_links(repr_.links)
        if repr_.has_data:
            retval["data"] = self._render_linkage_data(repr_.data)
        if repr_.meta:
            retval["meta"] = repr_.meta
        return retval

    def _render_resource(self, pointer: JSONPointer, repr_: ResourceRepr) -> MutableJSONObject:
        retval: MutableJSONObject = {"type": repr_.type}
        if repr_.id is not None or not self.omit_null_id:
            retval["id"] = repr_.id
        if repr_.attributes:
            retval["attributes"] = OrderedDict(
                (key, self._render_value(pointer / "attributes" / key, value))
                for key, value in repr_.attributes.items()
            )
        if repr_.relationships:
            retval["relationships"] = OrderedDict(
                (key, self._render_relationship(linkage))
                for key, linkage in repr_.relationships.items()
            )
        if repr_.links is not None:
            retval["links"] = self._render_links(repr_.links)
        if repr_.meta:
            retval["meta"] = repr_.meta
        return retval

    def _render_error(self, repr_: ErrorRepr) -> MutableJSONObject:
        retval: MutableJSONObject = {}
        for name in ("id", "status", "code", "title", "detail"):
            value = getattr(repr_, name)
            if value is not None:
                retval[name] = value
        if repr_.source is not None:
            retval["source"] = {
                k: v
                for k, v in (("pointer", repr_.source.pointer), ("parameter", repr_.source.parameter))
                if v is not None
            }
        if repr_.links is not None:
            retval["links"] = self._render_links(repr_.links)
        if repr_.meta:
            retval["meta"] = repr_.meta
        return retval

    def render_linkage(self, data: LinkageData) -> MutableJSONObject:
        """
        Renders a document whose primary data consists of resource identifiers only,
        as relationship endpoints expect.
        """
        return {"data": self._render_linkage_data(data)}

    def dumps(self, obj: MutableJSONObject) -> Payload:
        return json.dumps(obj, ensure_ascii=False).encode("utf-8")

    def __call__(self, repr_: DocumentRepr) -> MutableJSONObject:
        root = JSONPointer()
        retval: MutableJSONObject = {}
        if repr_.links is not None:
            retval["links"] = self._render_links(repr_.links)
        if repr_.data is not Missing:
            if repr_.data is None:
                retval["data"] = None
            elif isinstance(repr_.data, ResourceRepr):
                retval["data"] = self._render_resource(root / "data", repr_.data)
            else:
                resources = typing.cast(typing.Sequence[ResourceRepr], repr_.data)
                retval["data"] = [
                    self._render_resource((root / "data")[i], r) for i, r in enumerate(resources)
                ]
        if repr_.errors:
            retval["errors"] = [self._render_error(e) for e in repr_.errors]
        if repr_.included:
            retval["included"] = [
                self._render_resource((root / "included")[i], r)
                for i, r in enumerate(repr_.included)
            ]
        if repr_.jsonapi:
            retval["jsonapi"] = repr_.jsonapi
        if repr_.meta:
            retval["meta"] = repr_.meta
        return retval

    def __init__(self, render_decimal_as_str: bool = True, omit_null_id: bool = True):
        self.render_decimal_as_str = render_decimal_as_str
        self.omit_null_id = omit_null_id
