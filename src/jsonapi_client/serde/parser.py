import collections.abc
import json
import typing

from ..exceptions import InvalidDocumentStructure, InvalidJSONPayload
from .models import (
    AttributeValue,
    DocumentRepr,
    ErrorRepr,
    LinkageData,
    LinkageRepr,
    LinksRepr,
    Missing,
    PrimaryData,
    ResourceIdRepr,
    ResourceRepr,
    SourceRepr,
)
from .types import JSONObject, JSONValue, Payload
from .utils import JSONPointer


def _type_repr(value: JSONValue) -> str:
    if value is None:
        return "null"
    elif isinstance(value, bool):
        return "boolean"
    elif isinstance(value, (int, float)):
        return "number"
    elif isinstance(value, str):
        return "string"
    elif isinstance(value, collections.abc.Mapping):
        return "object"
    else:
        return "array"


class ReprParser:
    """
    Validates the structure of a JSON:API document and turns it into
    a :py:class:`DocumentRepr`.  Any violation is reported as
    :py:class:`InvalidDocumentStructure` carrying the pointer to the offending node.
    """

    def _expect_object(self, pointer: JSONPointer, value: JSONValue) -> JSONObject:
        if not isinstance(value, collections.abc.Mapping):
            raise InvalidDocumentStructure(
                f"value has type {_type_repr(value)} where object expected", pointer
            )
        return value

    def _expect_string(self, pointer: JSONPointer, value: JSONValue) -> str:
        if not isinstance(value, str):
            raise InvalidDocumentStructure(
                f"value has type {_type_repr(value)} where string expected", pointer
            )
        return value

    def _expect_array(self, pointer: JSONPointer, value: JSONValue) -> typing.Sequence[JSONValue]:
        if isinstance(value, (str, bytes)) or not isinstance(value, collections.abc.Sequence):
            raise InvalidDocumentStructure(
                f"value has type {_type_repr(value)} where array expected", pointer
            )
        return value

    def _parse_optional_string(self, pointer: JSONPointer, value: JSONValue) -> typing.Optional[str]:
        if value is None:
            return None
        # ids and statuses are strings in JSON:API, but some servers send numbers.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return self._expect_string(pointer, value)

    def _parse_meta(self, pointer: JSONPointer, value: JSONValue) -> typing.Dict[str, typing.Any]:
        return dict(self._expect_object(pointer, value))

    def _parse_links(self, pointer: JSONPointer, value: JSONValue) -> LinksRepr:
        links = self._expect_object(pointer, value)

        def _href(k: str) -> typing.Optional[str]:
            v = links.get(k)
            if isinstance(v, collections.abc.Mapping):
                # a link object; only its href is of interest
                v = v.get("href")
                return self._parse_optional_string(pointer / k / "href", v)
            return self._parse_optional_string(pointer / k, v)

        return LinksRepr(
            self_=_href("self"),
            related=_href("related"),
            next=_href("next"),
            prev=_href("prev"),
            first=_href("first"),
            last=_href("last"),
            _source_=pointer,
        )

    def _parse_resource_id(self, pointer: JSONPointer, value: JSONValue) -> ResourceIdRepr:
        obj = self._expect_object(pointer, value)
        if "type" not in obj:
            raise InvalidDocumentStructure('value must have a property "type"', pointer)
        if "id" not in obj:
            raise InvalidDocumentStructure('value must have a property "id"', pointer)
        if obj["id"] is None:
            raise InvalidDocumentStructure('value must have a non-null "id"', pointer / "id")
        return ResourceIdRepr(
            type=self._expect_string(pointer / "type", obj["type"]),
            id=typing.cast(str, self._parse_optional_string(pointer / "id", obj["id"])),
            meta=self._parse_meta(pointer / "meta", obj["meta"]) if "meta" in obj else None,
            _source_=pointer,
        )

    def _parse_linkage(self, pointer: JSONPointer, value: JSONValue) -> LinkageRepr:
        obj = self._expect_object(pointer, value)
        data: LinkageData = Missing
        if "data" in obj:
            _pointer = pointer / "data"
            raw = obj["data"]
            if raw is None:
                data = None
            elif isinstance(raw, collections.abc.Mapping):
                data = self._parse_resource_id(_pointer, raw)
            else:
                data = [
                    self._parse_resource_id(_pointer[i], v)
                    for i, v in enumerate(self._expect_array(_pointer, raw))
                ]
        return LinkageRepr(
            data=data,
            links=self._parse_links(pointer / "links", obj["links"]) if "links" in obj else None,
            meta=self._parse_meta(pointer / "meta", obj["meta"]) if "meta" in obj else None,
            _source_=pointer,
        )

    def _parse_resource(self, pointer: JSONPointer, value: JSONValue) -> ResourceRepr:
        obj = self._expect_object(pointer, value)
        if "type" not in obj:
            raise InvalidDocumentStructure('value must have a property "type"', pointer)

        attributes: typing.Sequence[typing.Tuple[str, AttributeValue]] = ()
        if "attributes" in obj:
            attributes = tuple(
                self._expect_object(pointer / "attributes", obj["attributes"]).items()
            )

        relationships: typing.Sequence[typing.Tuple[str, LinkageRepr]] = ()
        if "relationships" in obj:
            _pointer = pointer / "relationships"
            relationships = tuple(
                (k, self._parse_linkage(_pointer / k, v))
                for k, v in self._expect_object(_pointer, obj["relationships"]).items()
            )

        return ResourceRepr(
            type=self._expect_string(pointer / "type", obj["type"]),
            id=self._parse_optional_string(pointer / "id", obj.get("id")),
            attributes=attributes,
            relationships=relationships,
            links=self._parse_links(pointer / "links", obj["links"]) if "links" in obj else None,
            meta=self._parse_meta(pointer / "meta", obj["meta"]) if "meta" in obj else None,
            _source_=pointer,
        )

    def _parse_error(self, pointer: JSONPointer, value: JSONValue) -> ErrorRepr:
        obj = self._expect_object(pointer, value)
        source: typing.Optional[SourceRepr] = None
        if "source" in obj:
            _pointer = pointer / "source"
            source_obj = self._expect_object(_pointer, obj["source"])
            source = SourceRepr(
                pointer=self._parse_optional_string(_pointer / "pointer", source_obj.get("pointer")),
                parameter=self._parse_optional_string(
                    _pointer / "parameter", source_obj.get("parameter")
                ),
                _source_=_pointer,
            )
        return ErrorRepr(
            id=self._parse_optional_string(pointer / "id", obj.get("id")),
            status=self._parse_optional_string(pointer / "status", obj.get("status")),
            code=self._parse_optional_string(pointer / "code", obj.get("code")),
            title=self._parse_optional_string(pointer / "title", obj.get("title")),
            detail=self._parse_optional_string(pointer / "detail", obj.get("detail")),
            source=source,
            links=self._parse_links(pointer / "links", obj["links"]) if "links" in obj else None,
            meta=self._parse_meta(pointer / "meta", obj["meta"]) if "meta" in obj else None,
            _source_=pointer,
        )

    def _parse_document(self, value: JSONValue) -> DocumentRepr:
        pointer = JSONPointer()
        if not isinstance(value, collections.abc.Mapping):
            raise InvalidDocumentStructure(
                f"top-level value has type {_type_repr(value)} where object expected", pointer
            )
        if "data" not in value and "errors" not in value:
            raise InvalidDocumentStructure(
                'document must have either a property "data" or "errors"', pointer
            )
        if "data" in value and "errors" in value:
            raise InvalidDocumentStructure(
                'properties "data" and "errors" must not coexist in a document', pointer
            )

        data: PrimaryData = Missing
        errors: typing.Optional[typing.Sequence[ErrorRepr]] = None
        if "data" in value:
            _pointer = pointer / "data"
            raw = value["data"]
            if raw is None:
                data = None
            elif isinstance(raw, collections.abc.Mapping):
                data = self._parse_resource(_pointer, raw)
            else:
                data = [
                    self._parse_resource(_pointer[i], v)
                    for i, v in enumerate(self._expect_array(_pointer, raw))
                ]
        else:
            _pointer = pointer / "errors"
            errors = [
                self._parse_error(_pointer[i], v)
                for i, v in enumerate(self._expect_array(_pointer, value["errors"]))
            ]

        included: typing.Sequence[ResourceRepr] = ()
        if "included" in value:
            _pointer = pointer / "included"
            included = [
                self._parse_resource(_pointer[i], v)
                for i, v in enumerate(self._expect_array(_pointer, value["included"]))
            ]

        return DocumentRepr(
            data=data,
            errors=errors,
            included=included,
            jsonapi=(
                dict(self._expect_object(pointer / "jsonapi", value["jsonapi"]))
                if "jsonapi" in value
                else None
            ),
            links=self._parse_links(pointer / "links", value["links"]) if "links" in value else None,
            meta=self._parse_meta(pointer / "meta", value["meta"]) if "meta" in value else None,
            _source_=pointer,
        )

    def __call__(self, document: typing.Union[Payload, JSONValue]) -> DocumentRepr:
        """
        Parses ``document``, which is either raw bytes or an already decoded JSON value.
        """
        if isinstance(document, (bytes, bytearray)):
            try:
                document = json.loads(document.decode("utf-8"))
            except (UnicodeDecodeError, ValueError) as e:
                raise InvalidJSONPayload(f"payload is not valid JSON ({e})") from e
        return self._parse_document(document)
