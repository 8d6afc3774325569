"""
:py:class:`Client` is the entry point of the library.

Synopsis
--------

.. code-block:: python

   people = ResourceType("people", [Attribute("name")])
   articles = ResourceType(
       "articles",
       [
           Attribute("title"),
           DateAttribute("created"),
           ToOneRelationship(people, "author"),
       ],
   )

   async with Client("https://example.com/api") as client:
       client.register_resource(people)
       client.register_resource(articles)

       response = await client.find(Query(articles).include("author"))
       for article in response.resources:
           print(article["title"], article["author"]["name"])

"""

import logging
import typing

from .document import Document
from .exceptions import NextPageNotAvailable, PreviousPageNotAvailable, ResourceNotFound
from .formatters import KeyFormatter, ValueFormatter
from .models import (
    LinkedResourceCollection,
    Relationship,
    Resource,
    ResourceCollection,
    ResourceType,
    ToManyRelationship,
)
from .networking import HTTPXNetworkClient, NetworkClient
from .operations import (
    ConcurrentOperation,
    DeleteOperation,
    FetchOperation,
    Mutation,
    OperationQueue,
    RelationshipMutateOperation,
    RelationshipReplaceOperation,
    SaveOperation,
)
from .query import Query
from .router import JSONAPIRouter, Router
from .serializer import Serializer

logger = logging.getLogger(__name__)

T = typing.TypeVar("T")
R = typing.TypeVar("R", bound=Resource)


class CollectionResponse(typing.NamedTuple):
    resources: ResourceCollection
    meta: typing.Dict[str, typing.Any]
    jsonapi: typing.Dict[str, typing.Any]


class ResourceResponse(typing.NamedTuple):
    resource: Resource
    meta: typing.Dict[str, typing.Any]
    jsonapi: typing.Dict[str, typing.Any]


QueryCallback = typing.Callable[[Query], Query]


class Client:
    """
    :param Optional[str] base_url: the base URL of the API.  Used to build the
                                   default router; ignored if ``router`` is given.
    :param Optional[Router] router: defaults to :py:class:`JSONAPIRouter`.
    :param Optional[NetworkClient] network_client: defaults to :py:class:`HTTPXNetworkClient`.
    :param Optional[KeyFormatter] key_formatter: the key formatter shared by the router
                                                 and the serializer.  Defaults to the one of
                                                 the router.
    :param int max_concurrent_operations: the number of operations allowed to run at once.
    """

    router: Router
    serializer: Serializer
    network_client: NetworkClient
    operation_queue: OperationQueue

    @property
    def key_formatter(self) -> KeyFormatter:
        return self.serializer.key_formatter

    @key_formatter.setter
    def key_formatter(self, key_formatter: KeyFormatter) -> None:
        self.router.key_formatter = key_formatter
        self.serializer.key_formatter = key_formatter

    def register_resource(self, resource_type: ResourceType) -> None:
        self.serializer.register_resource(resource_type)

    def register_value_formatter(self, formatter: ValueFormatter) -> None:
        self.serializer.register_value_formatter(formatter)

    async def _perform(self, operation: ConcurrentOperation[T]) -> T:
        return await self.operation_queue.add_operation(operation)

    async def _fetch(
        self, query: Query, mapping_targets: typing.Iterable[Resource] = ()
    ) -> Document:
        return await self._perform(FetchOperation(self, query, mapping_targets))

    # fetching

    async def find(self, query: Query) -> CollectionResponse:
        """
        Fetches the resources described by ``query``.  An empty result is not an error.
        """
        document = await self._fetch(query)
        return CollectionResponse(
            ResourceCollection.from_document(document), document.meta, document.jsonapi
        )

    async def find_by_ids(
        self, ids: typing.Sequence[str], resource_type: ResourceType
    ) -> CollectionResponse:
        return await self.find(Query(resource_type, resource_ids=ids))

    async def find_all(self, resource_type: ResourceType) -> CollectionResponse:
        return await self.find(Query(resource_type))

    async def find_one(self, query: Query) -> ResourceResponse:
        """
        Fetches the first resource described by ``query``.

        :raises ResourceNotFound: if the server returned no resource.
        """
        document = await self._fetch(query)
        resource = document.resource
        if resource is None:
            raise ResourceNotFound()
        return ResourceResponse(resource, document.meta, document.jsonapi)

    async def find_one_by_id(self, id: str, resource_type: ResourceType) -> ResourceResponse:
        return await self.find_one(Query(resource_type, resource_ids=[id]))

    async def _load(
        self,
        resource: R,
        query_callback: typing.Optional[QueryCallback],
        skip_if_loaded: bool,
    ) -> R:
        if skip_if_loaded and resource.is_loaded:
            logger.debug("%r is already loaded", resource)
            return resource
        query: Query = Query.for_resource(resource)
        if query_callback is not None:
            query = query_callback(query)
        await self._fetch(query, [resource])
        return resource

    async def load(self, resource: R, query_callback: typing.Optional[QueryCallback] = None) -> R:
        """
        Populates a resource that is not loaded yet, such as one known only
        from a relationship.  The resource is returned as-is if it is loaded already.

        :param Callable[[Query], Query] query_callback: receives the query about to be used
                                                        and returns the one to use instead.
        """
        return await self._load(resource, query_callback, True)

    async def reload(
        self, resource: R, query_callback: typing.Optional[QueryCallback] = None
    ) -> R:
        """
        Like :py:meth:`load`, but fetches the resource even if it is loaded already.
        """
        return await self._load(resource, query_callback, False)

    async def load_collection(self, collection: ResourceCollection) -> ResourceCollection:
        """
        Fetches the members of a collection known only by its URL,
        such as an unloaded to-many relationship, and fills it in place.
        """
        if collection.resources_url is None:
            raise ValueError(f"{collection!r} has no resources URL")
        document = await self._fetch(Query(url=collection.resources_url))
        collection.resources = document.data or ()
        collection.next_url = document.links.get("next")
        collection.previous_url = document.links.get("prev")
        collection.is_loaded = True
        if isinstance(collection, LinkedResourceCollection):
            collection.mark_synced()
        return collection

    # paginating

    async def load_next_page(self, collection: ResourceCollection) -> ResourceCollection:
        """
        Appends the next page to ``collection``.

        :raises NextPageNotAvailable: if the collection has no link to a next page.
        """
        if collection.next_url is None:
            raise NextPageNotAvailable()
        page = ResourceCollection.from_document(await self._fetch(Query(url=collection.next_url)))
        collection.extend(page)
        collection.resources_url = page.resources_url
        collection.next_url = page.next_url
        collection.previous_url = page.previous_url
        return collection

    async def load_previous_page(self, collection: ResourceCollection) -> ResourceCollection:
        """
        Prepends the previous page to ``collection``.

        :raises PreviousPageNotAvailable: if the collection has no link to a previous page.
        """
        if collection.previous_url is None:
            raise PreviousPageNotAvailable()
        page = ResourceCollection.from_document(
            await self._fetch(Query(url=collection.previous_url))
        )
        collection.prepend(page)
        collection.resources_url = page.resources_url
        collection.next_url = page.next_url
        collection.previous_url = page.previous_url
        return collection

    # persisting

    async def save(self, resource: R) -> R:
        """
        Creates or updates ``resource``.  A created resource receives the id
        assigned by the server.
        """
        await self._perform(SaveOperation(self, resource))
        return resource

    async def save_all(self, resources: typing.Sequence[Resource]) -> CollectionResponse:
        """
        Creates or updates a batch of resources of the same type in a single request.

        :raises ValueError: if the batch mixes types, or new and persisted resources.
        """
        document = await self._perform(SaveOperation(self, resources))
        if document is None:
            return CollectionResponse(ResourceCollection(resources, is_loaded=True), {}, {})
        return CollectionResponse(
            ResourceCollection.from_document(document), document.meta, document.jsonapi
        )

    async def delete(self, resource: Resource) -> None:
        await self._perform(DeleteOperation(self, resource))

    def _relationship(self, resource: Resource, name: str) -> Relationship:
        field = resource.resource_type.field(name)
        if not isinstance(field, Relationship):
            raise TypeError(f'"{name}" is not a relationship of {resource.resource_type!r}')
        return field

    def _to_many_relationship(self, resource: Resource, name: str) -> ToManyRelationship:
        field = self._relationship(resource, name)
        if not isinstance(field, ToManyRelationship):
            raise TypeError(f'"{name}" is not a to-many relationship of {resource.resource_type!r}')
        return field

    async def replace_relationship(self, resource: Resource, name: str) -> None:
        """
        Replaces the contents of the relationship ``name`` on the server
        with its current value.
        """
        relationship = self._relationship(resource, name)
        await self._perform(RelationshipReplaceOperation(self, resource, relationship))

    async def add_to_relationship(self, resource: Resource, name: str) -> None:
        """
        Sends the resources linked to the to-many relationship ``name`` since it
        was last synchronized.
        """
        relationship = self._to_many_relationship(resource, name)
        await self._perform(
            RelationshipMutateOperation(self, resource, relationship, Mutation.ADD)
        )

    async def remove_from_relationship(self, resource: Resource, name: str) -> None:
        """
        Sends the resources unlinked from the to-many relationship ``name`` since it
        was last synchronized.
        """
        relationship = self._to_many_relationship(resource, name)
        await self._perform(
            RelationshipMutateOperation(self, resource, relationship, Mutation.REMOVE)
        )

    async def aclose(self) -> None:
        await self.operation_queue.join()
        await self.network_client.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.aclose()

    def __init__(
        self,
        base_url: typing.Optional[str] = None,
        router: typing.Optional[Router] = None,
        network_client: typing.Optional[NetworkClient] = None,
        key_formatter: typing.Optional[KeyFormatter] = None,
        max_concurrent_operations: int = 4,
    ):
        self.router = router if router is not None else JSONAPIRouter(base_url)
        self.network_client = network_client if network_client is not None else HTTPXNetworkClient()
        self.serializer = Serializer()
        self.operation_queue = OperationQueue(max_concurrent_operations)
        if key_formatter is not None:
            self.key_formatter = key_formatter
        else:
            self.serializer.key_formatter = self.router.key_formatter
