import enum
import typing

from .deserializer import DocumentDeserializer
from .document import Document
from .exceptions import ResourceIDMissing
from .formatters import (
    DasherizedKeyFormatter,
    KeyFormatter,
    ValueFormatter,
    ValueFormatterRegistry,
)
from .models import (
    LinkedResourceCollection,
    Resource,
    ResourceType,
    ToManyRelationship,
    ToOneRelationship,
)
from .serde.models import (
    AttributeValue,
    DocumentRepr,
    LinkageData,
    LinkageRepr,
    ResourceIdRepr,
    ResourceRepr,
)
from .serde.parser import ReprParser
from .serde.renderer import ReprRenderer
from .serde.types import Payload
from .serde.utils import JSONPointer


class SerializationOptions(enum.Flag):
    NONE = 0
    INCLUDE_ID = 1
    """Emit the ``id`` of the resource, if it has one."""
    INCLUDE_TO_ONE = 2
    """Emit the linkage of to-one relationships."""
    INCLUDE_TO_MANY = 4
    """Emit the linkage of to-many relationships."""
    OMIT_NULL_VALUES = 8
    """Leave out attributes whose value is ``None``."""
    TO_MANY_ADDED_ONLY = 16
    """Emit only the resources linked since the last synchronization for to-many relationships."""

    DEFAULT = INCLUDE_ID | INCLUDE_TO_ONE | INCLUDE_TO_MANY


class Serializer:
    """
    Converts between JSON:API payloads and resource graphs.

    :param Optional[KeyFormatter] key_formatter: defaults to :py:class:`DasherizedKeyFormatter`.
    :param Optional[ValueFormatterRegistry] value_formatters: defaults to
        :py:meth:`ValueFormatterRegistry.default_registry`.
    """

    key_formatter: KeyFormatter
    value_formatters: ValueFormatterRegistry
    _resource_types: typing.Dict[str, ResourceType]
    _parser: ReprParser
    _renderer: ReprRenderer

    def register_resource(self, resource_type: ResourceType) -> None:
        self._resource_types[resource_type.name] = resource_type

    def register_value_formatter(self, formatter: ValueFormatter) -> None:
        self.value_formatters.register(formatter)

    def resource_type_named(self, name: str) -> typing.Optional[ResourceType]:
        return self._resource_types.get(name)

    def deserialize(
        self,
        data: Payload,
        mapping_targets: typing.Optional[typing.Sequence[Resource]] = None,
    ) -> Document:
        """
        Deserializes ``data`` into a :py:class:`Document`.

        :param bytes data: the payload.
        :param Optional[Sequence[Resource]] mapping_targets: resources to be updated in place
            when the payload contains resource objects of the same identity.
        :raises SerializerError: if the payload is not a valid JSON:API document.
        """
        repr_ = self._parser(data)
        deserializer = DocumentDeserializer(
            self.resource_type_named,
            self.key_formatter,
            self.value_formatters,
            mapping_targets,
        )
        return deserializer(repr_)

    def _build_resource_id_repr(self, resource: Resource, pointer: JSONPointer) -> ResourceIdRepr:
        if resource.id is None:
            raise ResourceIDMissing(f"cannot link to {resource!r} which has no id yet", pointer)
        return ResourceIdRepr(type=resource.type, id=resource.id)

    def _build_linkage_data(
        self, target: typing.Union[None, Resource, typing.Iterable[Resource]], pointer: JSONPointer
    ) -> LinkageData:
        if target is None:
            return None
        elif isinstance(target, Resource):
            return self._build_resource_id_repr(target, pointer)
        return [self._build_resource_id_repr(r, pointer[i]) for i, r in enumerate(target)]

    def build_resource_repr(
        self,
        resource: Resource,
        options: SerializationOptions = SerializationOptions.DEFAULT,
        pointer: typing.Optional[JSONPointer] = None,
    ) -> ResourceRepr:
        pointer = JSONPointer() if pointer is None else pointer
        resource_type = resource.resource_type

        attributes: typing.List[typing.Tuple[str, AttributeValue]] = []
        for attr in resource_type.attributes.values():
            if attr.read_only or attr.name not in resource:
                continue
            value = resource[attr.name]
            if value is None and SerializationOptions.OMIT_NULL_VALUES in options:
                continue
            attributes.append(
                (self.key_formatter.format(attr), self.value_formatters.format(value, attr))
            )

        relationships: typing.List[typing.Tuple[str, LinkageRepr]] = []
        for rel in resource_type.relationships.values():
            if rel.read_only or rel.name not in resource:
                continue
            key = self.key_formatter.format(rel)
            _pointer = pointer / "relationships" / key / "data"
            if isinstance(rel, ToOneRelationship):
                if SerializationOptions.INCLUDE_TO_ONE not in options:
                    continue
                data = self._build_linkage_data(resource[rel.name], _pointer)
            elif isinstance(rel, ToManyRelationship):
                if SerializationOptions.INCLUDE_TO_MANY not in options:
                    continue
                collection: typing.Optional[LinkedResourceCollection] = resource[rel.name]
                if collection is None:
                    members: typing.Sequence[Resource] = ()
                elif SerializationOptions.TO_MANY_ADDED_ONLY in options:
                    members = collection.added_resources
                else:
                    members = collection.resources
                data = self._build_linkage_data(members, _pointer)
            else:
                continue
            relationships.append((key, LinkageRepr(data=data)))

        return ResourceRepr(
            type=resource.type,
            id=resource.id if SerializationOptions.INCLUDE_ID in options else None,
            attributes=attributes,
            relationships=relationships,
        )

    def serialize_resources(
        self,
        resources: typing.Union[Resource, typing.Sequence[Resource]],
        options: SerializationOptions = SerializationOptions.DEFAULT,
    ) -> Payload:
        """
        Serializes a single resource (``data`` is an object) or a sequence of
        resources (``data`` is an array) for a create or update request.
        """
        pointer = JSONPointer() / "data"
        data: typing.Union[ResourceRepr, typing.List[ResourceRepr]]
        if isinstance(resources, Resource):
            data = self.build_resource_repr(resources, options, pointer)
        else:
            data = [
                self.build_resource_repr(r, options, pointer[i]) for i, r in enumerate(resources)
            ]
        return self._renderer.dumps(self._renderer(DocumentRepr(data=data)))

    def serialize_link_data(
        self, target: typing.Union[None, Resource, typing.Sequence[Resource]]
    ) -> Payload:
        """
        Serializes resource identifiers only, as relationship endpoints expect.
        """
        data = self._build_linkage_data(target, JSONPointer() / "data")
        return self._renderer.dumps(self._renderer.render_linkage(data))

    def __init__(
        self,
        key_formatter: typing.Optional[KeyFormatter] = None,
        value_formatters: typing.Optional[ValueFormatterRegistry] = None,
    ):
        self.key_formatter = key_formatter if key_formatter is not None else DasherizedKeyFormatter()
        self.value_formatters = (
            value_formatters
            if value_formatters is not None
            else ValueFormatterRegistry.default_registry()
        )
        self._resource_types = {}
        self._parser = ReprParser()
        self._renderer = ReprRenderer()
