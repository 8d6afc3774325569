import json
import typing

from ..deferred import Deferred
from ..models import (
    Attribute,
    BooleanAttribute,
    DateAttribute,
    ResourceType,
    ToManyRelationship,
    ToOneRelationship,
    URLAttribute,
)
from ..networking import NetworkClient, TransportResponse
from ..serde.types import Payload


class ResourceTypes(typing.NamedTuple):
    articles: ResourceType
    people: ResourceType
    comments: ResourceType


def build_resource_types() -> ResourceTypes:
    """
    Builds the article / person / comment trio the examples of
    https://jsonapi.org/ are written against.
    """
    articles: ResourceType
    comments: ResourceType

    people = ResourceType(
        "people",
        [
            Attribute("firstName"),
            Attribute("lastName"),
            Attribute("twitter", read_only=True),
            URLAttribute("homepage", base_url="https://example.com/"),
            ToManyRelationship(Deferred(lambda: articles), "articles"),
        ],
    )
    comments = ResourceType(
        "comments",
        [
            Attribute("body"),
            ToOneRelationship(people, "author"),
        ],
    )
    articles = ResourceType(
        "articles",
        [
            Attribute("title"),
            Attribute("body", serialized_name="content"),
            DateAttribute("createdAt"),
            BooleanAttribute("published"),
            Attribute("tags"),
            ToOneRelationship(people, "author"),
            ToManyRelationship(comments, "comments"),
            ToOneRelationship(people, "editor", read_only=True),
        ],
    )
    return ResourceTypes(articles, people, comments)


class RecordedRequest(typing.NamedTuple):
    method: str
    url: str
    payload: typing.Optional[Payload]

    @property
    def json(self) -> typing.Any:
        assert self.payload is not None
        return json.loads(self.payload)


class RecordingNetworkClient(NetworkClient):
    """
    Answers requests from a list of canned responses, in order, and records
    every request it receives.  A canned response that is an exception is raised.
    """

    requests: typing.List[RecordedRequest]
    _responses: typing.List[typing.Union[TransportResponse, BaseException]]
    closed: bool

    def respond(
        self, status_code: int, body: typing.Union[None, bytes, typing.Mapping[str, typing.Any]] = None
    ) -> "RecordingNetworkClient":
        if body is not None and not isinstance(body, bytes):
            body = json.dumps(body).encode("utf-8")
        self._responses.append(TransportResponse(status_code, body))
        return self

    def fail(self, error: BaseException) -> "RecordingNetworkClient":
        self._responses.append(error)
        return self

    async def request(
        self, method: str, url: str, payload: typing.Optional[Payload] = None
    ) -> TransportResponse:
        self.requests.append(RecordedRequest(method, url, payload))
        if not self._responses:
            raise AssertionError(f"unexpected request: {method} {url}")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def aclose(self) -> None:
        self.closed = True

    def __init__(self):
        self.requests = []
        self._responses = []
        self.closed = False


def article_document(
    id: str = "1",
    title: str = "JSON:API paints my bikeshed!",
    author_id: typing.Optional[str] = "9",
    comment_ids: typing.Sequence[str] = ("5", "12"),
) -> typing.Dict[str, typing.Any]:
    return {
        "type": "articles",
        "id": id,
        "attributes": {"title": title},
        "relationships": {
            "author": {
                "links": {
                    "self": f"http://example.com/articles/{id}/relationships/author",
                    "related": f"http://example.com/articles/{id}/author",
                },
                "data": {"type": "people", "id": author_id} if author_id is not None else None,
            },
            "comments": {
                "links": {
                    "self": f"http://example.com/articles/{id}/relationships/comments",
                    "related": f"http://example.com/articles/{id}/comments",
                },
                "data": [{"type": "comments", "id": i} for i in comment_ids],
            },
        },
        "links": {"self": f"http://example.com/articles/{id}"},
    }


COMPOUND_DOCUMENT: typing.Dict[str, typing.Any] = {
    "links": {
        "self": "http://example.com/articles",
        "next": "http://example.com/articles?page[offset]=2",
        "last": "http://example.com/articles?page[offset]=10",
    },
    "data": [article_document()],
    "included": [
        {
            "type": "people",
            "id": "9",
            "attributes": {
                "first-name": "Dan",
                "last-name": "Gebhardt",
                "twitter": "dgeb",
            },
            "relationships": {
                "articles": {
                    "data": [{"type": "articles", "id": "1"}],
                },
            },
            "links": {"self": "http://example.com/people/9"},
        },
        {
            "type": "comments",
            "id": "5",
            "attributes": {"body": "First!"},
            "relationships": {"author": {"data": {"type": "people", "id": "2"}}},
            "links": {"self": "http://example.com/comments/5"},
        },
        {
            "type": "comments",
            "id": "12",
            "attributes": {"body": "I like XML better"},
            "relationships": {"author": {"data": {"type": "people", "id": "9"}}},
            "links": {"self": "http://example.com/comments/12"},
        },
    ],
    "meta": {"total": 1},
    "jsonapi": {"version": "1.0"},
}
