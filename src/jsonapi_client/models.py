import collections.abc
import dataclasses
import typing
from collections import OrderedDict

from .deferred import Deferred, resolve
from .exceptions import UnknownField
from .utils import assert_not_none, unique_by


class Field:
    """
    The base class of everything a :py:class:`ResourceType` declares.

    :param str name: the name by which the field is accessed on a resource.
    :param Optional[str] serialized_name: the key used on the wire, verbatim.
                                          When omitted, the key is derived from ``name``
                                          by the key formatter in use.
    :param bool read_only: set to :py:const:`True` if the field is never sent to the server.
    """

    parent: typing.Optional["ResourceType"] = None
    name: str
    serialized_name: typing.Optional[str]
    read_only: bool

    T = typing.TypeVar("T", bound="Field")

    def bind(self: T, parent: "ResourceType") -> T:
        self.parent = parent
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def __init__(
        self,
        name: str,
        serialized_name: typing.Optional[str] = None,
        read_only: bool = False,
    ):
        self.name = name
        self.serialized_name = serialized_name
        self.read_only = read_only


class Attribute(Field):
    pass


class DateAttribute(Attribute):
    format: typing.Optional[str]
    """
    A :py:func:`datetime.datetime.strftime` format. ISO 8601 is assumed if :py:const:`None`.
    """

    def __init__(
        self,
        name: str,
        format: typing.Optional[str] = None,
        serialized_name: typing.Optional[str] = None,
        read_only: bool = False,
    ):
        super().__init__(name, serialized_name, read_only)
        self.format = format


class URLAttribute(Attribute):
    base_url: typing.Optional[str]
    """
    Relative URLs read from the wire are resolved against this URL.
    """

    def __init__(
        self,
        name: str,
        base_url: typing.Optional[str] = None,
        serialized_name: typing.Optional[str] = None,
        read_only: bool = False,
    ):
        super().__init__(name, serialized_name, read_only)
        self.base_url = base_url


class BooleanAttribute(Attribute):
    pass


class Relationship(Field):
    _linked_type: typing.Union["ResourceType", Deferred["ResourceType"]]

    @property
    def linked_type(self) -> "ResourceType":
        """
        The type of the resource(s) on the other side of the relationship.
        """
        return resolve(self._linked_type)

    def __init__(
        self,
        linked_type: typing.Union["ResourceType", Deferred["ResourceType"]],
        name: str,
        serialized_name: typing.Optional[str] = None,
        read_only: bool = False,
    ):
        super().__init__(name, serialized_name, read_only)
        self._linked_type = linked_type


class ToOneRelationship(Relationship):
    pass


class ToManyRelationship(Relationship):
    pass


class ResourceType:
    """
    A :py:class:`ResourceType` describes a kind of JSON:API resource.

    :param str name: the value of the ``type`` member of the resource objects.
    :param Iterable[Field] fields: the attributes and relationships the resources have.
    :param Optional[str] path: the path of the collection endpoint, relative to the base URL.
                               Defaults to ``name``.
    :param Optional[Type[Resource]] resource_class: the class to instantiate resources with.
    """

    name: str
    path: str
    resource_class: typing.Type["Resource"]
    _fields: typing.MutableMapping[str, Field]

    @property
    def fields(self) -> typing.Mapping[str, Field]:
        return self._fields

    @property
    def attributes(self) -> typing.Mapping[str, Attribute]:
        return OrderedDict(
            (name, field) for name, field in self._fields.items() if isinstance(field, Attribute)
        )

    @property
    def relationships(self) -> typing.Mapping[str, Relationship]:
        return OrderedDict(
            (name, field)
            for name, field in self._fields.items()
            if isinstance(field, Relationship)
        )

    def add_field(self, field: Field) -> None:
        self._fields[assert_not_none(field.name)] = field.bind(self)

    def find_field(self, name: str) -> typing.Optional[Field]:
        return self._fields.get(name)

    def field(self, name: str) -> Field:
        """
        Resolves a declared field by its name.

        :param str name: the name of the field.
        :raises UnknownField: if no such field is declared.
        """
        try:
            return self._fields[name]
        except KeyError:
            raise UnknownField(self, name)

    def instantiate(self, id: typing.Optional[str] = None) -> "Resource":
        return self.resource_class(self, id=id)

    def __call__(self, id: typing.Optional[str] = None, **values: typing.Any) -> "Resource":
        resource = self.instantiate(id)
        for name, value in values.items():
            resource[name] = value
        return resource

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def __init__(
        self,
        name: str,
        fields: typing.Iterable[Field] = (),
        path: typing.Optional[str] = None,
        resource_class: typing.Optional[typing.Type["Resource"]] = None,
    ):
        self.name = name
        self.path = path if path is not None else name
        self.resource_class = resource_class if resource_class is not None else Resource
        self._fields = OrderedDict()
        for field in fields:
            self.add_field(field)


@dataclasses.dataclass(frozen=True)
class ResourceIdentifier:
    type: str
    id: str


@dataclasses.dataclass
class RelationshipData:
    """
    What the server told about a relationship of a resource.
    """

    self_url: typing.Optional[str] = None
    related_url: typing.Optional[str] = None
    linkage: typing.Union[None, ResourceIdentifier, typing.Sequence[ResourceIdentifier]] = None
    meta: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)


IdentityKey = typing.Tuple[str, typing.Union[str, int]]


def identity_key(resource: "Resource") -> IdentityKey:
    """
    Returns ``(type, id)``; unpersisted resources are only equal to themselves.
    """
    if resource.id is None:
        return (resource.type, id(resource))
    return (resource.type, resource.id)


class Resource:
    """
    A :py:class:`Resource` is the in-memory counterpart of a JSON:API resource object.

    Fields are accessed by subscription and are validated against the
    declared fields of the resource type:

    .. code-block:: python

       article = articles(title="Hello")
       article["title"]          # "Hello"
       article["body"]           # None, as it is not set yet
       article["nonexistent"]    # raises UnknownField
    """

    resource_type: ResourceType
    url: typing.Optional[str]
    is_loaded: bool
    meta: typing.Dict[str, typing.Any]
    relationship_data: typing.Dict[str, RelationshipData]
    _id: typing.Optional[str]
    _values: typing.Dict[str, typing.Any]

    @property
    def type(self) -> str:
        return self.resource_type.name

    @property
    def id(self) -> typing.Optional[str]:
        return self._id

    @id.setter
    def id(self, value: typing.Optional[str]) -> None:
        if self._id is not None and value != self._id:
            raise ValueError(f"cannot change the id of {self!r} to {value!r}")
        self._id = value

    @property
    def is_new(self) -> bool:
        return self._id is None

    def __getitem__(self, name: str) -> typing.Any:
        self.resource_type.field(name)
        return self._values.get(name)

    def __setitem__(self, name: str, value: typing.Any) -> None:
        self.set_value(self.resource_type.field(name), value)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str, default: typing.Any = None) -> typing.Any:
        self.resource_type.field(name)
        return self._values.get(name, default)

    def set_value(self, field: Field, value: typing.Any) -> None:
        if isinstance(field, ToOneRelationship):
            if value is not None and not isinstance(value, Resource):
                raise TypeError(f"{field.name} takes a Resource, got {value!r}")
        elif isinstance(field, ToManyRelationship):
            if value is not None and not isinstance(value, LinkedResourceCollection):
                value = LinkedResourceCollection(value)
        self._values[field.name] = value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.type}:{self._id if self._id is not None else '(new)'}>"

    def __init__(self, resource_type: ResourceType, id: typing.Optional[str] = None):
        self.resource_type = resource_type
        self._id = id
        self.url = None
        self.is_loaded = False
        self.meta = {}
        self.relationship_data = {}
        self._values = {}


class ResourceCollection(collections.abc.Sequence):
    """
    An ordered collection of resources, unique by ``(type, id)``.
    Appending a resource that is already in the collection does nothing.
    """

    _resources: typing.List[Resource]
    resources_url: typing.Optional[str]
    next_url: typing.Optional[str]
    previous_url: typing.Optional[str]
    is_loaded: bool

    @property
    def resources(self) -> typing.List[Resource]:
        return list(self._resources)

    @resources.setter
    def resources(self, resources: typing.Iterable[Resource]) -> None:
        self._resources = unique_by(resources, identity_key)

    def __getitem__(self, index):
        return self._resources[index]

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, resource: object) -> bool:
        if not isinstance(resource, Resource):
            return False
        key = identity_key(resource)
        return any(identity_key(r) == key for r in self._resources)

    def append(self, resource: Resource) -> bool:
        if resource in self:
            return False
        self._resources.append(resource)
        return True

    def extend(self, resources: typing.Iterable[Resource]) -> None:
        self.resources = self._resources + list(resources)

    def prepend(self, resources: typing.Iterable[Resource]) -> None:
        self.resources = list(resources) + self._resources

    def remove(self, resource: Resource) -> bool:
        key = identity_key(resource)
        for i, r in enumerate(self._resources):
            if identity_key(r) == key:
                del self._resources[i]
                return True
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._resources!r})"

    @classmethod
    def from_document(cls, document: "document.Document") -> "ResourceCollection":
        return cls(
            document.data or (),
            resources_url=document.links.get("self"),
            next_url=document.links.get("next"),
            previous_url=document.links.get("prev"),
            is_loaded=True,
        )

    def __init__(
        self,
        resources: typing.Iterable[Resource] = (),
        resources_url: typing.Optional[str] = None,
        next_url: typing.Optional[str] = None,
        previous_url: typing.Optional[str] = None,
        is_loaded: bool = False,
    ):
        self.resources = resources
        self.resources_url = resources_url
        self.next_url = next_url
        self.previous_url = previous_url
        self.is_loaded = is_loaded


class LinkedResourceCollection(ResourceCollection):
    """
    The value of a to-many relationship.

    It remembers the members it had when it was last synchronized with the server,
    so that only the difference needs to be sent back.
    """

    link_url: typing.Optional[str]
    _baseline: typing.List[Resource]

    def _diff(
        self, a: typing.Sequence[Resource], b: typing.Sequence[Resource]
    ) -> typing.List[Resource]:
        keys = {identity_key(r) for r in b}
        return [r for r in a if identity_key(r) not in keys]

    @property
    def added_resources(self) -> typing.List[Resource]:
        """
        The resources linked since the collection was last synchronized.
        """
        return self._diff(self._resources, self._baseline)

    @property
    def removed_resources(self) -> typing.List[Resource]:
        """
        The resources unlinked since the collection was last synchronized.
        """
        return self._diff(self._baseline, self._resources)

    def link(self, resource: Resource) -> None:
        self.append(resource)

    def unlink(self, resource: Resource) -> None:
        self.remove(resource)

    def mark_synced(self) -> None:
        self._baseline = list(self._resources)

    def sync_added(self) -> None:
        self._baseline = self._baseline + self.added_resources

    def sync_removed(self) -> None:
        removed = {identity_key(r) for r in self.removed_resources}
        self._baseline = [r for r in self._baseline if identity_key(r) not in removed]

    def __init__(
        self,
        resources: typing.Iterable[Resource] = (),
        link_url: typing.Optional[str] = None,
        resources_url: typing.Optional[str] = None,
        is_loaded: bool = False,
    ):
        super().__init__(resources, resources_url=resources_url, is_loaded=is_loaded)
        self.link_url = link_url
        self._baseline = []


if typing.TYPE_CHECKING:
    from . import document  # noqa: E402
