"""
Routers compile :py:class:`jsonapi_client.query.Query` objects into URLs.

The URLs :py:class:`JSONAPIRouter` produces only depend on the query, so that
two equal queries always give byte-identical URLs:

.. code-block:: python

   router = JSONAPIRouter("https://example.com/api")
   router.url_for_query(Query(articles).include("author").where("title", "a b"))
   # "https://example.com/api/articles?include=author&filter[title]=a%20b"

"""

import abc
import datetime
import typing
import urllib.parse

from .formatters import DasherizedKeyFormatter, KeyFormatter
from .models import (
    LinkedResourceCollection,
    Relationship,
    Resource,
    ResourceType,
)
from .query import (
    Filter,
    FilterOperator,
    OffsetBasedPagination,
    PageBasedPagination,
    Pagination,
    Query,
)

QueryItem = typing.Tuple[str, str]


def append_query_item(items: typing.List[QueryItem], item: QueryItem) -> None:
    """
    Appends ``item``, dropping any earlier item of the same name.
    """
    items[:] = [i for i in items if i[0] != item[0]]
    items.append(item)


def format_filter_value(value: typing.Any) -> str:
    if isinstance(value, Resource):
        return value.id or ""
    elif isinstance(value, bool):
        return "true" if value else "false"
    elif value is None:
        return "null"
    elif isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(format_filter_value(v) for v in value)
    elif isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return str(value)


class Router(metaclass=abc.ABCMeta):
    base_url: typing.Optional[str]
    key_formatter: KeyFormatter

    @abc.abstractmethod
    def url_for_resource_type(self, resource_type: ResourceType) -> str:
        ...  # pragma: nocover

    @abc.abstractmethod
    def url_for_resource(self, resource: Resource) -> str:
        ...  # pragma: nocover

    @abc.abstractmethod
    def url_for_relationship(self, relationship: Relationship, resource: Resource) -> str:
        ...  # pragma: nocover

    @abc.abstractmethod
    def url_for_query(self, query: Query) -> str:
        ...  # pragma: nocover


class JSONAPIRouter(Router):
    """
    The default router, producing the query parameters recommended by JSON:API.

    :param Optional[str] base_url: the URL resource type paths are relative to.
    :param Optional[KeyFormatter] key_formatter: derives the wire keys of fields
                                                 used in includes, filters, fields and sort.
    """

    def _join(self, *components: str) -> str:
        base = (self.base_url or "").rstrip("/")
        return "/".join([base, *(c.strip("/") for c in components)])

    def url_for_resource_type(self, resource_type: ResourceType) -> str:
        return self._join(resource_type.path)

    def url_for_resource(self, resource: Resource) -> str:
        if resource.url is not None:
            return resource.url
        assert resource.id is not None, f"{resource!r} has no URL"
        return self._join(resource.resource_type.path, resource.id)

    def url_for_relationship(self, relationship: Relationship, resource: Resource) -> str:
        data = resource.relationship_data.get(relationship.name)
        if data is not None and data.self_url is not None:
            return data.self_url
        value = resource.get(relationship.name)
        if isinstance(value, LinkedResourceCollection) and value.link_url is not None:
            return value.link_url
        assert resource.id is not None, f"{resource!r} has no relationship URL"
        return self._join(
            resource.resource_type.path,
            resource.id,
            "relationships",
            self.key_formatter.format(relationship),
        )

    def _resolve_key(self, resource_type: typing.Optional[ResourceType], name: str) -> str:
        field = resource_type.find_field(name) if resource_type is not None else None
        if field is None:
            return name
        return self.key_formatter.format(field)

    def _resolve_include(self, resource_type: typing.Optional[ResourceType], path: str) -> str:
        keys = []
        current = resource_type
        for part in path.split("."):
            field = current.find_field(part) if current is not None else None
            if isinstance(field, Relationship):
                keys.append(self.key_formatter.format(field))
                current = field.linked_type
            else:
                keys.append(part)
                current = None
        return ".".join(keys)

    def query_item_for_filter(
        self, key: str, value: typing.Any, operator: FilterOperator
    ) -> QueryItem:
        """
        Builds the query item for a filter on the (already formatted) ``key``.
        Override this to support operators other than equality.

        :raises ValueError: if the operator is not supported.
        """
        if operator is not FilterOperator.EQUAL:
            raise ValueError(f"unsupported filter operator: {operator.name}")
        return (f"filter[{key}]", format_filter_value(value))

    def query_items_for_pagination(self, pagination: Pagination) -> typing.List[QueryItem]:
        if isinstance(pagination, PageBasedPagination):
            return [
                ("page[number]", str(pagination.page_number)),
                ("page[size]", str(pagination.page_size)),
            ]
        elif isinstance(pagination, OffsetBasedPagination):
            return [
                ("page[offset]", str(pagination.offset)),
                ("page[limit]", str(pagination.limit)),
            ]
        raise ValueError(f"unsupported pagination: {pagination!r}")

    def _filter_item(self, query: Query, filter_: Filter) -> QueryItem:
        return self.query_item_for_filter(
            self._resolve_key(query.resource_type, filter_.key), filter_.value, filter_.operator
        )

    def url_for_query(self, query: Query) -> str:
        if query.url is not None:
            url = urllib.parse.urljoin((self.base_url or "").rstrip("/") + "/", query.url)
            pre_built = True
        elif query.resource_type is not None:
            url = self.url_for_resource_type(query.resource_type)
            pre_built = False
        else:
            raise AssertionError("query has neither a URL nor a resource type")

        scheme, netloc, path, query_string, fragment = urllib.parse.urlsplit(url)
        items: typing.List[QueryItem] = urllib.parse.parse_qsl(query_string, keep_blank_values=True)

        if not pre_built and query.resource_ids is not None:
            if len(query.resource_ids) == 1:
                path = path.rstrip("/") + "/" + urllib.parse.quote(query.resource_ids[0], safe="")
            else:
                append_query_item(items, ("filter[id]", ",".join(query.resource_ids)))

        if query.includes:
            append_query_item(
                items,
                (
                    "include",
                    ",".join(self._resolve_include(query.resource_type, i) for i in query.includes),
                ),
            )

        for filter_ in query.filters:
            append_query_item(items, self._filter_item(query, filter_))

        for type_name, names in query.fields.items():
            resource_type = query.field_types.get(type_name)
            if resource_type is None and query.resource_type is not None:
                if query.resource_type.name == type_name:
                    resource_type = query.resource_type
            append_query_item(
                items,
                (f"fields[{type_name}]", ",".join(self._resolve_key(resource_type, n) for n in names)),
            )

        if query.sort_descriptors:
            append_query_item(
                items,
                (
                    "sort",
                    ",".join(
                        ("" if d.ascending else "-") + self._resolve_key(query.resource_type, d.key)
                        for d in query.sort_descriptors
                    ),
                ),
            )

        if query.pagination is not None:
            for item in self.query_items_for_pagination(query.pagination):
                append_query_item(items, item)

        return urllib.parse.urlunsplit(
            (
                scheme,
                netloc,
                path,
                urllib.parse.urlencode(items, safe="[],", quote_via=urllib.parse.quote),
                fragment,
            )
        )

    def __init__(
        self,
        base_url: typing.Optional[str] = None,
        key_formatter: typing.Optional[KeyFormatter] = None,
    ):
        self.base_url = base_url
        self.key_formatter = key_formatter if key_formatter is not None else DasherizedKeyFormatter()
