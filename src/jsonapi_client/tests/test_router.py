import datetime

import pytest

from ..query import FilterOperator, OffsetBasedPagination, PageBasedPagination, Query
from .testing import build_resource_types


@pytest.fixture
def types():
    return build_resource_types()


@pytest.fixture
def target():
    from ..router import JSONAPIRouter

    return JSONAPIRouter("http://example.com/api/")


class TestURLForQuery:
    def test_resource_type(self, target, types):
        assert target.url_for_query(Query(types.articles)) == "http://example.com/api/articles"

    def test_single_id(self, target, types):
        assert (
            target.url_for_query(Query(types.articles, resource_ids=["1"]))
            == "http://example.com/api/articles/1"
        )

    def test_multiple_ids(self, target, types):
        assert (
            target.url_for_query(Query(types.articles, resource_ids=["1", "2", "3"]))
            == "http://example.com/api/articles?filter[id]=1,2,3"
        )

    def test_includes(self, target, types):
        query = Query(types.articles).include("author", "comments.author", "author.articles.foo")
        assert (
            target.url_for_query(query)
            == "http://example.com/api/articles?include=author,comments.author,author.articles.foo"
        )

    def test_include_keys_are_formatted(self, target):
        from ..models import ResourceType, ToManyRelationship, ToOneRelationship

        people = ResourceType("people")
        comments = ResourceType("comments", [ToOneRelationship(people, "originalPoster")])
        articles = ResourceType(
            "articles",
            [
                ToManyRelationship(comments, "readerComments"),
                ToOneRelationship(people, "author", serialized_name="writer"),
            ],
        )
        query = Query(articles).include("readerComments.originalPoster", "author", "unknownThing")
        assert (
            target.url_for_query(query)
            == "http://example.com/api/articles?include=reader-comments.original-poster,writer,unknownThing"
        )

    def test_filters(self, target, types):
        query = (
            Query(types.articles)
            .where("title", "a b&c")
            .where("createdAt", datetime.date(2020, 1, 2))
            .where("published", True)
            .where("tags", ["x", "y"])
            .where_relationship("author", types.people("9"))
            .where("computedScore", 5)
        )
        assert target.url_for_query(query) == (
            "http://example.com/api/articles"
            "?filter[title]=a%20b%26c"
            "&filter[created-at]=2020-01-02"
            "&filter[published]=true"
            "&filter[tags]=x,y"
            "&filter[author]=9"
            "&filter[computedScore]=5"
        )

    def test_later_filter_on_same_key_wins(self, target, types):
        query = Query(types.articles).where("title", "a").where("body", "b").where("title", "c")
        assert (
            target.url_for_query(query)
            == "http://example.com/api/articles?filter[content]=b&filter[title]=c"
        )

    def test_unsupported_operator(self, target, types):
        query = Query(types.articles).where("title", "a", FilterOperator.GREATER_THAN)
        with pytest.raises(ValueError):
            target.url_for_query(query)

    def test_fields(self, target, types):
        query = (
            Query(types.articles)
            .restrict_fields_to("title", "createdAt")
            .restrict_fields_of_resource_type(types.people, "firstName")
            .restrict_fields_of_resource_type("tags", "label")
        )
        assert target.url_for_query(query) == (
            "http://example.com/api/articles"
            "?fields[articles]=title,created-at"
            "&fields[people]=first-name"
            "&fields[tags]=label"
        )

    def test_sort(self, target, types):
        query = (
            Query(types.articles)
            .add_descending_order("createdAt")
            .add_ascending_order("title")
            .add_ascending_order("score")
        )
        assert (
            target.url_for_query(query)
            == "http://example.com/api/articles?sort=-created-at,title,score"
        )

    @pytest.mark.parametrize(
        ("pagination", "expected"),
        [
            (PageBasedPagination(page_number=2, page_size=20), "page[number]=2&page[size]=20"),
            (OffsetBasedPagination(offset=40, limit=20), "page[offset]=40&page[limit]=20"),
        ],
    )
    def test_pagination(self, target, types, pagination, expected):
        query = Query(types.articles).paginate(pagination)
        assert target.url_for_query(query) == "http://example.com/api/articles?" + expected

    def test_order_of_components(self, target, types):
        query = (
            Query(types.articles, resource_ids=["1", "2"])
            .paginate(PageBasedPagination(page_number=1, page_size=10))
            .add_ascending_order("title")
            .restrict_fields_to("title")
            .where("title", "x")
            .include("author")
        )
        assert target.url_for_query(query) == (
            "http://example.com/api/articles"
            "?filter[id]=1,2"
            "&include=author"
            "&filter[title]=x"
            "&fields[articles]=title"
            "&sort=title"
            "&page[number]=1&page[size]=10"
        )

    def test_deterministic(self, target, types):
        def build():
            return (
                Query(types.articles)
                .include("comments.author")
                .where("title", "x")
                .where("published", False)
                .restrict_fields_to("title", "body")
                .add_descending_order("createdAt")
            )

        assert target.url_for_query(build()) == target.url_for_query(build())

    def test_pre_built_url(self, target, types):
        query = Query(types.articles, resource_ids=["1"], url="articles?page[offset]=2&x=y")
        query.where("title", "a")
        assert (
            target.url_for_query(query)
            == "http://example.com/api/articles?page[offset]=2&x=y&filter[title]=a"
        )

    def test_pre_built_url_items_are_replaced(self, target, types):
        query = Query(url="http://example.org/articles?page[offset]=2&page[limit]=5")
        query.paginate(OffsetBasedPagination(offset=7, limit=5))
        assert (
            target.url_for_query(query)
            == "http://example.org/articles?page[offset]=7&page[limit]=5"
        )

    def test_neither_url_nor_type(self, target):
        with pytest.raises(AssertionError):
            target.url_for_query(Query())


class TestURLForResource:
    def test_url_for_resource_type(self, target, types):
        from ..models import ResourceType

        assert target.url_for_resource_type(types.people) == "http://example.com/api/people"
        assert (
            target.url_for_resource_type(ResourceType("blogPosts", path="blog-posts"))
            == "http://example.com/api/blog-posts"
        )

    def test_url_for_resource(self, target, types):
        article = types.articles("1")
        assert target.url_for_resource(article) == "http://example.com/api/articles/1"
        article.url = "http://example.com/articles/1"
        assert target.url_for_resource(article) == "http://example.com/articles/1"

    def test_url_for_relationship(self, target, types):
        from ..models import RelationshipData

        article = types.articles("1")
        author = types.articles.field("author")
        comments = types.articles.field("comments")
        assert (
            target.url_for_relationship(author, article)
            == "http://example.com/api/articles/1/relationships/author"
        )

        article["comments"] = []
        article["comments"].link_url = "http://example.com/articles/1/relationships/comments"
        assert (
            target.url_for_relationship(comments, article)
            == "http://example.com/articles/1/relationships/comments"
        )

        article.relationship_data["author"] = RelationshipData(
            self_url="http://example.com/articles/1/links/author"
        )
        assert (
            target.url_for_relationship(author, article)
            == "http://example.com/articles/1/links/author"
        )
