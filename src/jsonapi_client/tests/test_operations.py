import asyncio
import typing

import pytest

from ..exceptions import (
    InvalidDocumentStructure,
    InvalidJSONPayload,
    NetworkError,
    ServerError,
    UnknownError,
)
from ..networking import NetworkClient, TransportResponse
from ..query import Query
from ..router import JSONAPIRouter
from ..serializer import Serializer
from .testing import COMPOUND_DOCUMENT, RecordingNetworkClient, article_document, build_resource_types


class Context:
    def __init__(self, network_client: NetworkClient, types):
        self.router = JSONAPIRouter("http://example.com")
        self.serializer = Serializer()
        for resource_type in types:
            self.serializer.register_resource(resource_type)
        self.network_client = network_client


@pytest.fixture
def types():
    return build_resource_types()


@pytest.fixture
def network():
    return RecordingNetworkClient()


@pytest.fixture
def context(network, types):
    return Context(network, types)


class TestConcurrentOperation:
    def test_result_before_finish(self, context, types):
        from ..operations import FetchOperation, OperationState

        target = FetchOperation(context, Query(types.articles))
        assert target.state is OperationState.READY
        with pytest.raises(RuntimeError):
            target.result

    @pytest.mark.asyncio
    async def test_finish(self, context, network, types):
        from ..operations import FetchOperation, OperationState

        network.respond(200, COMPOUND_DOCUMENT)
        calls = []
        target = FetchOperation(context, Query(types.articles))
        target.completion_callback = calls.append
        await target.start()

        assert target.state is OperationState.FINISHED
        document = target.result.unwrap()
        assert document.data[0]["title"] == "JSON:API paints my bikeshed!"
        assert calls == [target]
        assert await target.future is document

        with pytest.raises(RuntimeError):
            await target.start()
        target.cancel()
        assert not target.is_cancelled

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, context, network, types):
        from ..operations import DeleteOperation, OperationState

        calls = []
        target = DeleteOperation(context, types.articles("1"))
        target.completion_callback = calls.append
        future = target.future
        target.cancel()
        await target.start()

        assert target.state is OperationState.FINISHED
        assert target.result is None
        assert future.cancelled()
        assert calls == [target]
        assert network.requests == []

    @pytest.mark.asyncio
    async def test_future_carries_error(self, context, network, types):
        from ..operations import DeleteOperation

        network.respond(404)
        target = DeleteOperation(context, types.articles("1"))
        future = target.future
        await target.start()
        with pytest.raises(ServerError) as e:
            await future
        assert e.value.status_code == 404

    @pytest.mark.asyncio
    async def test_future_cancelled_while_executing(self, types):
        from ..operations import DeleteOperation, OperationState

        network = CountingNetworkClient(delay=0.02)
        calls = []
        target = DeleteOperation(Context(network, types), types.articles("1"))
        target.completion_callback = calls.append
        future = target.future
        task = asyncio.ensure_future(target.start())
        await asyncio.sleep(0)
        assert target.state is OperationState.EXECUTING
        future.cancel()
        target.cancel()
        await task

        assert target.state is OperationState.FINISHED
        assert not target.is_cancelled
        assert target.result.unwrap() is None
        assert calls == [target]
        assert network.requests == ["http://example.com/articles/1"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_promoted(self, context, types):
        from ..operations import ConcurrentOperation

        class Exploding(ConcurrentOperation[None]):
            async def execute(self):
                raise LookupError("boom")

        target = Exploding(context)
        await target.start()
        assert isinstance(target.result.error, UnknownError)
        assert isinstance(target.result.error.cause, LookupError)


class TestFetchOperation:
    @pytest.mark.asyncio
    async def test_url(self, context, network, types):
        from ..operations import FetchOperation

        network.respond(200, {"data": article_document()})
        target = FetchOperation(context, Query(types.articles, resource_ids=["1"]).include("author"))
        await target.start()
        [request] = network.requests
        assert request.method == "GET"
        assert request.url == "http://example.com/articles/1?include=author"
        assert request.payload is None
        assert target.result.unwrap().resource.id == "1"

    @pytest.mark.asyncio
    async def test_mapping_targets(self, context, network, types):
        from ..operations import FetchOperation

        article = types.articles("1")
        network.respond(200, {"data": article_document()})
        target = FetchOperation(context, Query.for_resource(article), [article])
        await target.start()
        assert target.result.unwrap().resource is article
        assert article.is_loaded

    @pytest.mark.asyncio
    async def test_server_error(self, context, network, types):
        from ..operations import FetchOperation

        network.respond(
            422,
            {"errors": [{"status": "422", "title": "Invalid Attribute", "detail": "too short"}]},
        )
        target = FetchOperation(context, Query(types.articles))
        await target.start()
        error = target.result.error
        assert isinstance(error, ServerError)
        assert error.status_code == 422
        assert [e.title for e in error.api_errors] == ["Invalid Attribute"]
        assert "Invalid Attribute" in error.message
        with pytest.raises(ServerError):
            target.result.unwrap()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "body", "error_class"),
        [
            (500, None, ServerError),
            (502, b"<html>Bad Gateway</html>", InvalidJSONPayload),
            (200, None, InvalidDocumentStructure),
            (200, b"", InvalidDocumentStructure),
            (200, b"{}", InvalidDocumentStructure),
        ],
    )
    async def test_bad_responses(self, context, network, types, status_code, body, error_class):
        from ..operations import FetchOperation

        network.respond(status_code, body)
        target = FetchOperation(context, Query(types.articles))
        await target.start()
        assert isinstance(target.result.error, error_class)

    @pytest.mark.asyncio
    async def test_empty_body_error_has_no_api_errors(self, context, network, types):
        from ..operations import FetchOperation

        network.respond(503)
        target = FetchOperation(context, Query(types.articles))
        await target.start()
        assert target.result.error.status_code == 503
        assert target.result.error.api_errors is None

    @pytest.mark.asyncio
    async def test_network_error(self, context, network, types):
        from ..operations import FetchOperation

        cause = ConnectionResetError("connection reset")
        network.fail(cause)
        target = FetchOperation(context, Query(types.articles))
        await target.start()
        assert isinstance(target.result.error, NetworkError)
        assert target.result.error.cause is cause


class TestRelationshipOperations:
    @pytest.mark.asyncio
    async def test_delete(self, context, network, types):
        from ..operations import DeleteOperation

        network.respond(204)
        target = DeleteOperation(context, types.articles("1"))
        await target.start()
        assert target.result.unwrap() is None
        assert [(r.method, r.url) for r in network.requests] == [
            ("DELETE", "http://example.com/articles/1")
        ]

    @pytest.mark.asyncio
    async def test_replace_to_one(self, context, network, types):
        from ..operations import RelationshipReplaceOperation

        network.respond(204)
        article = types.articles("1", author=types.people("9"))
        target = RelationshipReplaceOperation(context, article, types.articles.field("author"))
        await target.start()
        target.result.unwrap()
        [request] = network.requests
        assert request.method == "PATCH"
        assert request.url == "http://example.com/articles/1/relationships/author"
        assert request.json == {"data": {"type": "people", "id": "9"}}

    @pytest.mark.asyncio
    async def test_replace_to_many(self, context, network, types):
        from ..operations import RelationshipReplaceOperation

        network.respond(204)
        article = types.articles("1", comments=[types.comments("5")])
        target = RelationshipReplaceOperation(context, article, types.articles.field("comments"))
        await target.start()
        target.result.unwrap()
        assert network.requests[0].json == {"data": [{"type": "comments", "id": "5"}]}
        assert article["comments"].added_resources == []

    @pytest.mark.asyncio
    async def test_mutate(self, context, network, types):
        from ..operations import Mutation, RelationshipMutateOperation

        c5, c12, c13 = types.comments("5"), types.comments("12"), types.comments("13")
        article = types.articles("1", comments=[c5, c12])
        collection = article["comments"]
        collection.mark_synced()
        collection.link(c13)
        collection.unlink(c5)
        comments = types.articles.field("comments")

        network.respond(204).respond(204)
        add = RelationshipMutateOperation(context, article, comments, Mutation.ADD)
        await add.start()
        add.result.unwrap()
        assert collection.added_resources == []
        assert collection.removed_resources == [c5]

        remove = RelationshipMutateOperation(context, article, comments, Mutation.REMOVE)
        await remove.start()
        remove.result.unwrap()
        assert collection.removed_resources == []

        assert [(r.method, r.url, r.json) for r in network.requests] == [
            (
                "POST",
                "http://example.com/articles/1/relationships/comments",
                {"data": [{"type": "comments", "id": "13"}]},
            ),
            (
                "DELETE",
                "http://example.com/articles/1/relationships/comments",
                {"data": [{"type": "comments", "id": "5"}]},
            ),
        ]

    @pytest.mark.asyncio
    async def test_mutate_nothing(self, context, network, types):
        from ..operations import Mutation, RelationshipMutateOperation

        article = types.articles("1", comments=[types.comments("5")])
        article["comments"].mark_synced()
        for mutation in Mutation:
            target = RelationshipMutateOperation(
                context, article, types.articles.field("comments"), mutation
            )
            await target.start()
            target.result.unwrap()
        assert network.requests == []

    @pytest.mark.asyncio
    async def test_mutate_failure_keeps_diff(self, context, network, types):
        from ..operations import Mutation, RelationshipMutateOperation

        article = types.articles("1", comments=[types.comments("5")])
        network.respond(403)
        target = RelationshipMutateOperation(
            context, article, types.articles.field("comments"), Mutation.ADD
        )
        await target.start()
        assert isinstance(target.result.error, ServerError)
        assert [r.id for r in article["comments"].added_resources] == ["5"]


class TestSaveOperation:
    @pytest.mark.asyncio
    async def test_create(self, context, network, types):
        from ..operations import SaveOperation

        article = types.articles(
            title="foo", author=types.people("9"), comments=[types.comments("5")]
        )
        network.respond(201, {"data": article_document(title="foo", comment_ids=("5",))})
        target = SaveOperation(context, article)
        await target.start()
        document = target.result.unwrap()

        assert document.resource is article
        assert article.id == "1"
        assert article.is_loaded
        assert article["comments"].added_resources == []
        assert article["comments"].link_url == "http://example.com/articles/1/relationships/comments"

        [request] = network.requests
        assert request.method == "POST"
        assert request.url == "http://example.com/articles"
        assert request.json == {
            "data": {
                "type": "articles",
                "attributes": {"title": "foo"},
                "relationships": {
                    "author": {"data": {"type": "people", "id": "9"}},
                    "comments": {"data": [{"type": "comments", "id": "5"}]},
                },
            },
        }

    @pytest.mark.asyncio
    async def test_update(self, context, network, types):
        from ..operations import SaveOperation

        c5, c12 = types.comments("5"), types.comments("12")
        article = types.articles("1", title="foo", comments=[c5])
        collection = article["comments"]
        collection.mark_synced()
        collection.link(c12)
        collection.unlink(c5)

        network.respond(200, {"data": article_document(title="foo", comment_ids=("5",))})
        network.respond(204).respond(204)
        target = SaveOperation(context, article)
        await target.start()
        target.result.unwrap()

        assert article["comments"] is collection
        assert list(collection) == [c12]
        assert collection.added_resources == []
        assert collection.removed_resources == []

        assert [(r.method, r.url) for r in network.requests] == [
            ("PATCH", "http://example.com/articles/1"),
            ("POST", "http://example.com/articles/1/relationships/comments"),
            ("DELETE", "http://example.com/articles/1/relationships/comments"),
        ]
        assert network.requests[0].json == {
            "data": {"type": "articles", "id": "1", "attributes": {"title": "foo"}},
        }
        assert network.requests[1].json == {"data": [{"type": "comments", "id": "12"}]}
        assert network.requests[2].json == {"data": [{"type": "comments", "id": "5"}]}

    @pytest.mark.asyncio
    async def test_update_without_content(self, context, network, types):
        from ..operations import SaveOperation

        network.respond(204)
        target = SaveOperation(context, types.articles("1", title="foo"))
        await target.start()
        assert target.result.unwrap() is None

    @pytest.mark.asyncio
    async def test_relationship_failure(self, context, network, types):
        from ..operations import SaveOperation

        article = types.articles("1", comments=[])
        article["comments"].mark_synced()
        article["comments"].link(types.comments("5"))
        network.respond(204).respond(403)
        target = SaveOperation(context, article)
        await target.start()
        assert isinstance(target.result.error, ServerError)
        assert target.result.error.status_code == 403

    @pytest.mark.asyncio
    async def test_batch(self, context, network, types):
        from ..operations import SaveOperation

        first, second = types.comments(body="a"), types.comments(body="b")
        network.respond(
            201,
            {
                "data": [
                    {"type": "comments", "id": "1", "attributes": {"body": "a"}},
                    {"type": "comments", "id": "2", "attributes": {"body": "b"}},
                ],
            },
        )
        target = SaveOperation(context, [first, second])
        await target.start()
        assert target.result.unwrap().data == [first, second]
        assert (first.id, second.id) == ("1", "2")
        assert network.requests[0].url == "http://example.com/comments"
        assert len(network.requests[0].json["data"]) == 2

    def test_invalid_batches(self, context, types):
        from ..operations import SaveOperation

        with pytest.raises(ValueError):
            SaveOperation(context, [])
        with pytest.raises(ValueError):
            SaveOperation(context, [types.comments(), types.comments("1")])
        with pytest.raises(ValueError):
            SaveOperation(context, [types.comments(), types.people()])


class CountingNetworkClient(NetworkClient):
    delay: float
    in_flight: int
    max_in_flight: int
    requests: typing.List[str]

    async def request(self, method, url, payload=None):
        self.requests.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(self.delay)
        self.in_flight -= 1
        return TransportResponse(204, None)

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.requests = []


class TestOperationQueue:
    def test_invalid_concurrency(self):
        from ..operations import OperationQueue

        with pytest.raises(ValueError):
            OperationQueue(0)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, types):
        from ..operations import DeleteOperation, OperationQueue

        network = CountingNetworkClient()
        context = Context(network, types)
        target = OperationQueue(2)
        futures = [
            target.add_operation(DeleteOperation(context, types.articles(str(i))))
            for i in range(5)
        ]
        assert len(target.operations) == 5
        await asyncio.gather(*futures)
        await target.join()

        assert network.max_in_flight == 2
        assert len(network.requests) == 5
        assert target.operations == []

    @pytest.mark.asyncio
    async def test_cancel_all_operations(self, types):
        from ..operations import DeleteOperation, OperationQueue

        network = CountingNetworkClient()
        context = Context(network, types)
        target = OperationQueue(1)
        futures = [
            target.add_operation(DeleteOperation(context, types.articles(str(i))))
            for i in range(3)
        ]
        target.cancel_all_operations()
        await target.join()

        assert all(f.cancelled() for f in futures)
        assert network.requests == []

    @pytest.mark.asyncio
    async def test_caller_times_out_while_in_flight(self, types):
        from ..operations import DeleteOperation, OperationQueue, OperationState

        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda loop, context: reported.append(context))
        try:
            network = CountingNetworkClient(delay=0.05)
            target = OperationQueue()
            operation = DeleteOperation(Context(network, types), types.articles("1"))
            calls = []
            operation.completion_callback = calls.append
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(target.add_operation(operation), 0.01)

            tasks = list(target._tasks)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            assert results == [None]
            assert operation.state is OperationState.FINISHED
            assert operation.result.unwrap() is None
            assert calls == [operation]
            assert network.requests == ["http://example.com/articles/1"]
            assert target.operations == []
            assert reported == []
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_errors_are_delivered_through_futures(self, context, network, types):
        from ..operations import DeleteOperation, OperationQueue

        network.respond(500)
        target = OperationQueue()
        future = target.add_operation(DeleteOperation(context, types.articles("1")))
        with pytest.raises(ServerError):
            await future
        await target.join()
