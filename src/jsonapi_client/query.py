"""
:py:class:`Query` describes what to fetch.  A router compiles it into a URL.

Synopsis
--------

.. code-block:: python

   query = (
       Query(articles)
       .include("author", "comments.author")
       .where("title", "JSON:API")
       .restrict_fields_to("title", "body")
       .add_descending_order("created")
       .paginate(PageBasedPagination(page_number=2, page_size=20))
   )

"""

import dataclasses
import enum
import typing

from .models import Resource, ResourceType

R = typing.TypeVar("R", bound=Resource)


class FilterOperator(enum.Enum):
    EQUAL = "="
    NOT_EQUAL = "!="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="


@dataclasses.dataclass(frozen=True)
class Filter:
    key: str
    value: typing.Any
    operator: FilterOperator = FilterOperator.EQUAL


@dataclasses.dataclass(frozen=True)
class SortDescriptor:
    key: str
    ascending: bool = True


class Pagination:
    """
    The base class of pagination strategies.
    """


@dataclasses.dataclass(frozen=True)
class PageBasedPagination(Pagination):
    page_number: int
    page_size: int


@dataclasses.dataclass(frozen=True)
class OffsetBasedPagination(Pagination):
    offset: int
    limit: int


class Query(typing.Generic[R]):
    """
    A :py:class:`Query` targets either a resource type (optionally narrowed
    down to some ids) or a pre-built URL.  The builder methods mutate the query
    and return it so that calls can be chained.

    :param Optional[ResourceType] resource_type: the type of the resources to fetch.
    :param Optional[Sequence[str]] resource_ids: the ids of the resources to fetch.
    :param Optional[str] url: a URL, absolute or relative to the base URL of the router.
    """

    resource_type: typing.Optional[ResourceType]
    resource_ids: typing.Optional[typing.List[str]]
    url: typing.Optional[str]
    includes: typing.List[str]
    filters: typing.List[Filter]
    fields: typing.Dict[str, typing.List[str]]
    field_types: typing.Dict[str, ResourceType]
    sort_descriptors: typing.List[SortDescriptor]
    pagination: typing.Optional[Pagination]

    def include(self, *paths: str) -> "Query[R]":
        """
        Adds relationship paths to include, such as ``"comments.author"``.
        """
        for path in paths:
            if path not in self.includes:
                self.includes.append(path)
        return self

    def where(
        self, key: str, value: typing.Any, operator: FilterOperator = FilterOperator.EQUAL
    ) -> "Query[R]":
        self.filters.append(Filter(key, value, operator))
        return self

    def where_relationship(
        self, key: str, resource: typing.Optional[Resource]
    ) -> "Query[R]":
        """
        Filters on the id of the resource at the other end of a relationship.
        """
        return self.where(key, resource.id if resource is not None else None)

    def restrict_fields_to(self, *names: str) -> "Query[R]":
        """
        Restricts the fields of the queried resource type.
        """
        assert self.resource_type is not None, "query has no resource type"
        return self.restrict_fields_of_resource_type(self.resource_type, *names)

    def restrict_fields_of_resource_type(
        self, resource_type: typing.Union[ResourceType, str], *names: str
    ) -> "Query[R]":
        if isinstance(resource_type, str):
            type_name = resource_type
        else:
            type_name = resource_type.name
            self.field_types[type_name] = resource_type
        fields = self.fields.setdefault(type_name, [])
        for name in names:
            if name not in fields:
                fields.append(name)
        return self

    def add_ascending_order(self, key: str) -> "Query[R]":
        self.sort_descriptors.append(SortDescriptor(key, True))
        return self

    def add_descending_order(self, key: str) -> "Query[R]":
        self.sort_descriptors.append(SortDescriptor(key, False))
        return self

    def paginate(self, pagination: typing.Optional[Pagination]) -> "Query[R]":
        self.pagination = pagination
        return self

    @classmethod
    def for_resource(cls, resource: R) -> "Query[R]":
        """
        Builds a query that fetches ``resource`` itself, preferring its own URL when known.
        """
        if resource.url is not None:
            return cls(resource.resource_type, url=resource.url)
        assert resource.id is not None, "cannot query a resource that has no id"
        return cls(resource.resource_type, resource_ids=[resource.id])

    def __repr__(self) -> str:
        target = self.url if self.url is not None else getattr(self.resource_type, "name", None)
        return f"{type(self).__name__}({target!r})"

    def __init__(
        self,
        resource_type: typing.Optional[ResourceType] = None,
        resource_ids: typing.Optional[typing.Sequence[str]] = None,
        url: typing.Optional[str] = None,
    ):
        self.resource_type = resource_type
        self.resource_ids = list(resource_ids) if resource_ids is not None else None
        self.url = url
        self.includes = []
        self.filters = []
        self.fields = {}
        self.field_types = {}
        self.sort_descriptors = []
        self.pagination = None
