"""
Operations are the units of work of :py:class:`jsonapi_client.client.Client`.

Each operation goes through ``READY → EXECUTING → FINISHED`` exactly once
(or ``READY → FINISHED`` when it is cancelled before it starts), and resolves
its own :py:class:`asyncio.Future` with either its value or a
:py:class:`jsonapi_client.exceptions.ClientError`.
"""

import abc
import asyncio
import dataclasses
import enum
import logging
import typing

from .document import Document
from .exceptions import (
    ClientError,
    InvalidDocumentStructure,
    NetworkError,
    ServerError,
    promote_to_client_error,
)
from .models import (
    LinkedResourceCollection,
    Relationship,
    Resource,
    ToManyRelationship,
    ToOneRelationship,
)
from .networking import NetworkClient, TransportResponse
from .query import Query
from .router import Router
from .serde.types import Payload
from .serializer import SerializationOptions, Serializer

logger = logging.getLogger(__name__)

T = typing.TypeVar("T")


class OperationContext(typing.Protocol):
    router: Router
    serializer: Serializer
    network_client: NetworkClient


class OperationState(enum.Enum):
    READY = "ready"
    EXECUTING = "executing"
    FINISHED = "finished"


@dataclasses.dataclass
class OperationResult(typing.Generic[T]):
    value: typing.Optional[T] = None
    error: typing.Optional[ClientError] = None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return typing.cast(T, self.value)


def status_code_is_success(status_code: int) -> bool:
    return 200 <= status_code <= 299


class ConcurrentOperation(typing.Generic[T], metaclass=abc.ABCMeta):
    """
    The base class of operations.  Subclasses implement :py:meth:`execute`;
    whatever it returns becomes the value of the operation, whatever it raises
    becomes the error.
    """

    context: OperationContext
    completion_callback: typing.Optional[typing.Callable[["ConcurrentOperation[T]"], None]]
    is_cancelled: bool
    _state: OperationState
    _result: typing.Optional[OperationResult[T]]
    _future: typing.Optional["asyncio.Future[T]"]

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def router(self) -> Router:
        return self.context.router

    @property
    def serializer(self) -> Serializer:
        return self.context.serializer

    @property
    def network_client(self) -> NetworkClient:
        return self.context.network_client

    @property
    def future(self) -> "asyncio.Future[T]":
        """
        Resolved when the operation finishes.  Cancelled if the operation
        was cancelled before it started.
        """
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
            if self._state is OperationState.FINISHED:
                self._resolve_future()
        return self._future

    @property
    def result(self) -> typing.Optional[OperationResult[T]]:
        """
        The outcome of the operation, or :py:const:`None` if it was cancelled.

        :raises RuntimeError: if the operation has not finished yet.
        """
        if self._state is not OperationState.FINISHED:
            raise RuntimeError(f"{self!r} has not finished yet")
        return self._result

    def cancel(self) -> None:
        """
        Cancels the operation.  This has no effect once the operation has started.
        """
        if self._state is OperationState.READY:
            self.is_cancelled = True

    def _resolve_future(self) -> None:
        assert self._future is not None
        if self._future.done():
            # the awaiting caller gave up
            return
        if self._result is None:
            self._future.cancel()
        elif self._result.error is not None:
            self._future.set_exception(self._result.error)
        else:
            self._future.set_result(typing.cast(T, self._result.value))

    def _finish(self, result: typing.Optional[OperationResult[T]]) -> None:
        if self._state is OperationState.FINISHED:
            raise RuntimeError(f"{self!r} has already finished")
        self._state = OperationState.FINISHED
        self._result = result
        callback, self.completion_callback = self.completion_callback, None
        try:
            if self._future is not None:
                self._resolve_future()
        finally:
            if callback is not None:
                callback(self)

    async def start(self) -> None:
        if self._state is not OperationState.READY:
            raise RuntimeError(f"{self!r} cannot be started in state {self._state.name}")
        if self.is_cancelled:
            logger.debug("%r was cancelled before it started", self)
            self._finish(None)
            return
        self._state = OperationState.EXECUTING
        result: OperationResult[T]
        try:
            result = OperationResult(value=await self.execute())
        except Exception as e:
            result = OperationResult(error=promote_to_client_error(e))
        self._finish(result)

    @abc.abstractmethod
    async def execute(self) -> T:
        ...  # pragma: nocover

    async def _request(
        self, method: str, url: str, payload: typing.Optional[Payload] = None
    ) -> TransportResponse:
        try:
            return await self.network_client.request(method, url, payload)
        except ClientError:
            raise
        except Exception as e:
            raise NetworkError(e) from e

    def _error_for_response(self, response: TransportResponse) -> ClientError:
        """
        Builds the error for a non-2xx response.  A body that is not a
        valid JSON:API document results in a :py:class:`SerializerError`.
        """
        if not response.body:
            return ServerError(response.status_code)
        document = self.serializer.deserialize(response.body)
        return ServerError(response.status_code, document.errors)

    async def _request_expecting_no_content(
        self, method: str, url: str, payload: typing.Optional[Payload] = None
    ) -> None:
        response = await self._request(method, url, payload)
        if not status_code_is_success(response.status_code):
            raise self._error_for_response(response)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._state.name}>"

    def __init__(self, context: OperationContext):
        self.context = context
        self.completion_callback = None
        self.is_cancelled = False
        self._state = OperationState.READY
        self._result = None
        self._future = None


class FetchOperation(ConcurrentOperation[Document]):
    """
    Fetches a document using a :py:class:`Query`.

    :param Sequence[Resource] mapping_targets: existing resources onto which
                                               the fetched resources are mapped.
    """

    query: Query
    mapping_targets: typing.List[Resource]

    async def execute(self) -> Document:
        url = self.router.url_for_query(self.query)
        logger.info("Fetching document using URL: %s", url)
        response = await self._request("GET", url)
        if not status_code_is_success(response.status_code):
            raise self._error_for_response(response)
        if not response.body:
            raise InvalidDocumentStructure("the response has no body")
        return self.serializer.deserialize(response.body, self.mapping_targets)

    def __init__(
        self,
        context: OperationContext,
        query: Query,
        mapping_targets: typing.Iterable[Resource] = (),
    ):
        super().__init__(context)
        self.query = query
        self.mapping_targets = list(mapping_targets)


class DeleteOperation(ConcurrentOperation[None]):
    resource: Resource

    async def execute(self) -> None:
        url = self.router.url_for_resource(self.resource)
        logger.info("Deleting resource %r using URL: %s", self.resource, url)
        await self._request_expecting_no_content("DELETE", url)

    def __init__(self, context: OperationContext, resource: Resource):
        super().__init__(context)
        self.resource = resource


class RelationshipReplaceOperation(ConcurrentOperation[None]):
    """
    Replaces the entire contents of a relationship.
    """

    resource: Resource
    relationship: Relationship

    async def execute(self) -> None:
        url = self.router.url_for_relationship(self.relationship, self.resource)
        value = self.resource[self.relationship.name]
        if isinstance(self.relationship, ToOneRelationship):
            payload = self.serializer.serialize_link_data(value)
        else:
            payload = self.serializer.serialize_link_data(value.resources if value is not None else [])
        logger.info("Replacing relationship %r using URL: %s", self.relationship, url)
        await self._request_expecting_no_content("PATCH", url, payload)
        if isinstance(value, LinkedResourceCollection):
            value.mark_synced()

    def __init__(self, context: OperationContext, resource: Resource, relationship: Relationship):
        super().__init__(context)
        self.resource = resource
        self.relationship = relationship


class Mutation(enum.Enum):
    ADD = "add"
    REMOVE = "remove"


class RelationshipMutateOperation(ConcurrentOperation[None]):
    """
    Adds the resources linked to, or removes the resources unlinked from,
    a to-many relationship since it was last synchronized.
    """

    resource: Resource
    relationship: ToManyRelationship
    mutation: Mutation

    async def execute(self) -> None:
        collection: typing.Optional[LinkedResourceCollection] = self.resource[
            self.relationship.name
        ]
        if collection is None:
            return
        if self.mutation is Mutation.ADD:
            method, resources = "POST", collection.added_resources
        else:
            method, resources = "DELETE", collection.removed_resources
        if not resources:
            logger.debug("nothing to %s for %r", self.mutation.value, self.relationship)
            return

        url = self.router.url_for_relationship(self.relationship, self.resource)
        payload = self.serializer.serialize_link_data(resources)
        logger.info("Mutating relationship %r using URL: %s", self.relationship, url)
        await self._request_expecting_no_content(method, url, payload)
        if self.mutation is Mutation.ADD:
            collection.sync_added()
        else:
            collection.sync_removed()

    def __init__(
        self,
        context: OperationContext,
        resource: Resource,
        relationship: ToManyRelationship,
        mutation: Mutation,
    ):
        super().__init__(context)
        self.resource = resource
        self.relationship = relationship
        self.mutation = mutation


class SaveOperation(ConcurrentOperation[typing.Optional[Document]]):
    """
    Creates resources that have no id yet, or updates the ones that have.
    Updates carry attributes and to-one relationships; the to-many relationships
    of persisted resources are synchronized afterwards by adding and removing
    the members that changed.

    :param Union[Resource, Sequence[Resource]] resources: a resource, or a batch of
        resources of the same type that are either all new or all persisted.
    :raises ValueError: if the batch mixes resource types, or new and persisted resources.
    """

    resources: typing.List[Resource]
    is_batch: bool
    is_new: bool

    def _url(self) -> str:
        if self.is_new or self.is_batch:
            return self.router.url_for_resource_type(self.resources[0].resource_type)
        return self.router.url_for_resource(self.resources[0])

    def _to_many_collections(
        self, resource: Resource
    ) -> typing.List[typing.Tuple[ToManyRelationship, LinkedResourceCollection]]:
        retval = []
        for rel in resource.resource_type.relationships.values():
            if not isinstance(rel, ToManyRelationship) or rel.read_only:
                continue
            collection = resource.get(rel.name)
            if isinstance(collection, LinkedResourceCollection):
                retval.append((rel, collection))
        return retval

    async def execute(self) -> typing.Optional[Document]:
        if self.is_new:
            method = "POST"
            options = SerializationOptions.DEFAULT
        else:
            method = "PATCH"
            options = SerializationOptions.INCLUDE_ID | SerializationOptions.INCLUDE_TO_ONE
        payload = self.serializer.serialize_resources(
            self.resources if self.is_batch else self.resources[0], options
        )
        url = self._url()
        logger.info("Saving %d resource(s) using %s %s", len(self.resources), method, url)

        response = await self._request(method, url, payload)
        if not status_code_is_success(response.status_code):
            raise self._error_for_response(response)

        # the response does not reflect the to-many changes sent below
        pending = {
            id(resource): self._to_many_collections(resource) for resource in self.resources
        }
        document: typing.Optional[Document] = None
        if response.body:
            document = self.serializer.deserialize(response.body, self.resources)

        for resource in self.resources:
            for rel, collection in pending[id(resource)]:
                current = resource.get(rel.name)
                if current is not collection and isinstance(current, LinkedResourceCollection):
                    collection.link_url = current.link_url or collection.link_url
                    collection.resources_url = current.resources_url or collection.resources_url
                resource.set_value(rel, collection)
                if self.is_new:
                    collection.mark_synced()
                    continue
                for mutation in (Mutation.ADD, Mutation.REMOVE):
                    operation = RelationshipMutateOperation(self.context, resource, rel, mutation)
                    await operation.start()
                    assert operation.result is not None
                    operation.result.unwrap()
        return document

    def __init__(
        self,
        context: OperationContext,
        resources: typing.Union[Resource, typing.Sequence[Resource]],
    ):
        super().__init__(context)
        if isinstance(resources, Resource):
            self.resources = [resources]
            self.is_batch = False
        else:
            self.resources = list(resources)
            self.is_batch = True
        if not self.resources:
            raise ValueError("nothing to save")
        if len({r.type for r in self.resources}) > 1:
            raise ValueError("cannot save resources of different types at once")
        new = {r.is_new for r in self.resources}
        if len(new) > 1:
            raise ValueError("cannot save new and persisted resources at once")
        self.is_new = new.pop()


class OperationQueue:
    """
    Runs operations as :py:class:`asyncio.Task` objects, at most
    ``max_concurrent_operations`` of them at a time.
    """

    max_concurrent_operations: int
    _semaphore: typing.Optional[asyncio.Semaphore]
    _operations: typing.List[ConcurrentOperation]
    _tasks: typing.Set["asyncio.Task[None]"]

    @property
    def operations(self) -> typing.Sequence[ConcurrentOperation]:
        return list(self._operations)

    async def _run(self, operation: ConcurrentOperation) -> None:
        assert self._semaphore is not None
        try:
            async with self._semaphore:
                await operation.start()
        finally:
            self._operations.remove(operation)

    def add_operation(self, operation: ConcurrentOperation[T]) -> "asyncio.Future[T]":
        """
        Schedules ``operation`` and returns its future.
        Must be called from within a running event loop.
        """
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent_operations)
        future = operation.future
        self._operations.append(operation)
        task = asyncio.get_running_loop().create_task(self._run(operation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return future

    def cancel_all_operations(self) -> None:
        for operation in self._operations:
            operation.cancel()

    async def join(self) -> None:
        """
        Waits until every scheduled operation has finished.
        """
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def __init__(self, max_concurrent_operations: int = 4):
        if max_concurrent_operations < 1:
            raise ValueError("max_concurrent_operations must be at least 1")
        self.max_concurrent_operations = max_concurrent_operations
        self._semaphore = None
        self._operations = []
        self._tasks = set()
