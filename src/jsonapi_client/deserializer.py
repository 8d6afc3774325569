"""
Turns a :py:class:`DocumentRepr` into a graph of :py:class:`Resource` objects.

JSON:API documents routinely contain forward references and cycles
(an article includes its author, who refers back to the article), so the
graph is built in two passes: every resource object is first given its one
and only instance, then all instances are populated and relationships are
resolved against the instances allocated in the first pass.
"""

import collections.abc
import logging
import typing

from .document import APIError, Document
from .exceptions import (
    InvalidAttributeValue,
    InvalidDocumentStructure,
    ResourceIDMissing,
    ResourceTypeUnregistered,
)
from .formatters import KeyFormatter, ValueFormatterRegistry
from .models import (
    LinkedResourceCollection,
    Relationship,
    RelationshipData,
    Resource,
    ResourceIdentifier,
    ResourceType,
    ToManyRelationship,
    ToOneRelationship,
)
from .serde.models import (
    DocumentRepr,
    ErrorRepr,
    LinkageRepr,
    LinksRepr,
    ResourceIdRepr,
    ResourceRepr,
    Source,
)
from .serde.utils import JSONPointer

logger = logging.getLogger(__name__)


class ResourceTypeQuerier(typing.Protocol):
    def __call__(self, name: str) -> typing.Optional[ResourceType]:
        ...  # pragma: nocover


class IdentityMap:
    """
    Maps ``(type, id)`` to the single :py:class:`Resource` instance that stands
    for that identity within one deserialization pass.
    """

    _resources: typing.Dict[typing.Tuple[str, str], Resource]

    def get(self, type: str, id: str) -> typing.Optional[Resource]:
        return self._resources.get((type, id))

    def add(self, resource: Resource) -> None:
        assert resource.id is not None
        key = (resource.type, resource.id)
        assert key not in self._resources
        self._resources[key] = resource

    def __contains__(self, key: typing.Tuple[str, str]) -> bool:
        return key in self._resources

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> typing.Iterator[Resource]:
        return iter(self._resources.values())

    def __init__(self):
        self._resources = {}


def _pointer(source: typing.Optional[Source]) -> typing.Optional[JSONPointer]:
    if source is None or isinstance(source, JSONPointer):
        return source
    return JSONPointer(source)


class DocumentDeserializer:
    """
    Performs a single deserialization pass.  Instances are not reusable.

    :param ResourceTypeQuerier querier: resolves a type name to a registered :py:class:`ResourceType`.
    :param KeyFormatter key_formatter: derives wire keys from field names.
    :param ValueFormatterRegistry value_formatters: converts wire values of attributes.
    :param Sequence[Resource] mapping_targets: existing resources to be populated in place
                                               instead of allocating new ones.
    """

    identity_map: IdentityMap
    _querier: ResourceTypeQuerier
    _key_formatter: KeyFormatter
    _value_formatters: ValueFormatterRegistry
    _mapping_targets: typing.Sequence[Resource]
    _used_targets: typing.Set[int]

    def _resource_type_for(
        self,
        type_name: str,
        source: typing.Optional[Source],
        fallback: typing.Optional[ResourceType] = None,
    ) -> ResourceType:
        resource_type = self._querier(type_name)
        if resource_type is not None:
            return resource_type
        for target in self._mapping_targets:
            if target.type == type_name:
                return target.resource_type
        if fallback is not None and fallback.name == type_name:
            return fallback
        raise ResourceTypeUnregistered(type_name, _pointer(source))

    def _find_mapping_target(
        self, type_name: str, id_: str, index: typing.Optional[int]
    ) -> typing.Optional[Resource]:
        for target in self._mapping_targets:
            if id(target) in self._used_targets:
                continue
            if target.type == type_name and target.id == id_:
                return target

        if index is not None:
            # a resource created locally learns its id from the server's response
            applicable = [target for target in self._mapping_targets if target.type == type_name]
            if index < len(applicable):
                target = applicable[index]
                if id(target) not in self._used_targets and target.id in (None, id_):
                    return target
        return None

    def _dispense(
        self,
        type_name: str,
        id_: str,
        source: typing.Optional[Source],
        index: typing.Optional[int] = None,
        fallback: typing.Optional[ResourceType] = None,
    ) -> Resource:
        resource = self.identity_map.get(type_name, id_)
        if resource is not None:
            return resource
        resource = self._find_mapping_target(type_name, id_, index)
        if resource is not None:
            self._used_targets.add(id(resource))
            resource.id = id_
        else:
            resource = self._resource_type_for(type_name, source, fallback).instantiate(id_)
        self.identity_map.add(resource)
        return resource

    def _allocate(
        self, repr_: ResourceRepr, index: typing.Optional[int] = None
    ) -> typing.Tuple[ResourceRepr, Resource]:
        if repr_.id is None:
            raise ResourceIDMissing("resource object has no id", _pointer(repr_._source_))
        return repr_, self._dispense(repr_.type, repr_.id, repr_._source_, index=index)

    def _populate_attributes(self, resource: Resource, repr_: ResourceRepr) -> None:
        for attr in resource.resource_type.attributes.values():
            key = self._key_formatter.format(attr)
            if key not in repr_.attributes:
                continue
            try:
                value = self._value_formatters.unformat(repr_.attributes[key], attr)
            except InvalidAttributeValue as e:
                if e.source is None and repr_._source_ is not None:
                    e.source = typing.cast(JSONPointer, _pointer(repr_._source_)) / "attributes" / key
                raise
            resource.set_value(attr, value)

    def _link(self, rel: Relationship, repr_: ResourceIdRepr) -> Resource:
        return self._dispense(repr_.type, repr_.id, repr_._source_, fallback=rel.linked_type)

    def _populate_relationship(
        self, resource: Resource, rel: Relationship, repr_: LinkageRepr
    ) -> None:
        links = repr_.links if repr_.links is not None else LinksRepr()
        data = RelationshipData(
            self_url=links.self_,
            related_url=links.related,
            meta=dict(repr_.meta),
        )

        if isinstance(rel, ToOneRelationship):
            if repr_.has_data:
                if repr_.data is None:
                    resource.set_value(rel, None)
                elif isinstance(repr_.data, ResourceIdRepr):
                    data.linkage = ResourceIdentifier(repr_.data.type, repr_.data.id)
                    resource.set_value(rel, self._link(rel, repr_.data))
                else:
                    raise InvalidDocumentStructure(
                        f'to-one relationship "{rel.name}" has an array as its data',
                        _pointer(repr_._source_),
                    )
        elif isinstance(rel, ToManyRelationship):
            collection: typing.Optional[LinkedResourceCollection]
            if repr_.has_data:
                if repr_.data is None or isinstance(repr_.data, ResourceIdRepr):
                    raise InvalidDocumentStructure(
                        f'to-many relationship "{rel.name}" must have an array as its data',
                        _pointer(repr_._source_),
                    )
                ids = typing.cast(typing.Sequence[ResourceIdRepr], repr_.data)
                data.linkage = tuple(ResourceIdentifier(i.type, i.id) for i in ids)
                collection = LinkedResourceCollection(
                    [self._link(rel, i) for i in ids],
                    link_url=links.self_,
                    resources_url=links.related,
                    is_loaded=True,
                )
                collection.mark_synced()
                resource.set_value(rel, collection)
            else:
                collection = resource[rel.name]
                if collection is not None and collection.is_loaded:
                    collection.link_url = links.self_ or collection.link_url
                    collection.resources_url = links.related or collection.resources_url
                else:
                    collection = LinkedResourceCollection(
                        link_url=links.self_,
                        resources_url=links.related,
                    )
                    collection.mark_synced()
                    resource.set_value(rel, collection)

        resource.relationship_data[rel.name] = data

    def _populate(self, resource: Resource, repr_: ResourceRepr) -> None:
        resource.is_loaded = True
        if repr_.links is not None and repr_.links.self_ is not None:
            resource.url = repr_.links.self_
        if repr_.meta:
            resource.meta = dict(repr_.meta)

        self._populate_attributes(resource, repr_)

        for rel in resource.resource_type.relationships.values():
            linkage = repr_.relationships.get(self._key_formatter.format(rel))
            if linkage is not None:
                self._populate_relationship(resource, rel, linkage)

    def _build_error(self, repr_: ErrorRepr) -> APIError:
        return APIError(
            id=repr_.id,
            status=repr_.status,
            code=repr_.code,
            title=repr_.title,
            detail=repr_.detail,
            source_pointer=repr_.source.pointer if repr_.source is not None else None,
            source_parameter=repr_.source.parameter if repr_.source is not None else None,
            meta=dict(repr_.meta),
        )

    def __call__(self, repr_: DocumentRepr) -> Document:
        counts: typing.Dict[str, int] = {}
        primary = []
        for r in repr_.primary_resources:
            index = counts.get(r.type, 0)
            counts[r.type] = index + 1
            primary.append(self._allocate(r, index=index))
        included = [self._allocate(r) for r in repr_.included]

        for r, resource in primary + included:
            self._populate(resource, r)

        logger.debug(
            "deserialized %d primary and %d included resource objects into %d resources",
            len(primary),
            len(included),
            len(self.identity_map),
        )

        errors: typing.Optional[typing.List[APIError]] = None
        data: typing.Optional[typing.List[Resource]] = None
        if repr_.errors or not repr_.has_data:
            errors = [self._build_error(e) for e in repr_.errors]
        else:
            data = [resource for _, resource in primary]

        return Document(
            data=data,
            is_collection=isinstance(repr_.data, collections.abc.Sequence),
            included=[resource for _, resource in included],
            errors=errors,
            meta=dict(repr_.meta),
            jsonapi=dict(repr_.jsonapi),
            links=repr_.links.as_dict() if repr_.links is not None else {},
        )

    def __init__(
        self,
        querier: ResourceTypeQuerier,
        key_formatter: KeyFormatter,
        value_formatters: ValueFormatterRegistry,
        mapping_targets: typing.Optional[typing.Sequence[Resource]] = None,
    ):
        self.identity_map = IdentityMap()
        self._querier = querier
        self._key_formatter = key_formatter
        self._value_formatters = value_formatters
        self._mapping_targets = list(mapping_targets) if mapping_targets is not None else []
        self._used_targets = set()

