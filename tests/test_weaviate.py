import json

import httpx
import pytest

from campusnet.errors import IndexWriteFailure
from campusnet.search.weaviate import (
    WeaviateIndex,
    build_near_vector_query,
    class_name,
    class_schema,
)


def _index(handler) -> WeaviateIndex:
    client = httpx.AsyncClient(base_url="http://weaviate.test", transport=httpx.MockTransport(handler))
    return WeaviateIndex(client)


def test_class_schema_has_parent_link():
    schema = class_schema("comment")
    names = [p["name"] for p in schema["properties"]]
    assert schema["class"] == "Comment"
    assert schema["vectorizer"] == "none"
    assert names == ["content", "documentId", "postId"]

    forum_names = [p["name"] for p in class_schema("forum")["properties"]]
    assert forum_names == ["title", "description", "documentId"]


def test_near_vector_query():
    query = build_near_vector_query("thread", [0.5, 1], 3, 0.4)
    assert "Thread(nearVector: {vector: [0.5, 1.0], distance: 0.4}, limit: 3)" in query
    assert "_additional { id distance }" in query


async def test_ensure_schema_creates_missing_classes():
    created = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"classes": [{"class": "Forum"}, {"class": "Thread"}]})
        created.append(json.loads(request.content)["class"])
        return httpx.Response(200, json={})

    index = _index(handler)
    assert await index.ensure_schema() == ["Post", "Comment"]
    assert created == ["Post", "Comment"]
    await index.aclose()


async def test_upsert_falls_back_to_create():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == "PUT":
            return httpx.Response(404)
        body = json.loads(request.content)
        assert body["id"] == "abc"
        assert body["class"] == "Post"
        assert body["vector"] == [0.1, 0.2]
        assert body["properties"]["documentId"] == 7
        return httpx.Response(200, json=body)

    index = _index(handler)
    await index.upsert("post", "abc", {"content": "hi", "documentId": 7}, [0.1, 0.2])
    assert seen == [("PUT", "/v1/objects/Post/abc"), ("POST", "/v1/objects")]


async def test_delete_missing_object_is_not_an_error():
    index = _index(lambda request: httpx.Response(404))
    assert await index.delete("thread", "gone") is False

    index = _index(lambda request: httpx.Response(204))
    assert await index.delete("thread", "here") is True


async def test_server_errors_raise_index_failure():
    index = _index(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(IndexWriteFailure):
        await index.delete("post", "x")
    with pytest.raises(IndexWriteFailure):
        await index.upsert("post", "x", {"content": "hi", "documentId": 1}, [1.0])


async def test_transport_errors_raise_index_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(IndexWriteFailure):
        await _index(handler).ensure_schema()


async def test_near_vector_parses_hits():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/graphql"
        return httpx.Response(200, json={"data": {"Get": {"Post": [
            {"documentId": 3, "_additional": {"id": "w-3", "distance": 0.12}},
            {"documentId": None, "_additional": {"id": "w-x", "distance": 0.2}},
            {"documentId": 9, "_additional": {"id": "w-9", "distance": 0.3}},
        ]}}})

    hits = await _index(handler).near_vector("post", [1.0, 0.0], limit=5, max_distance=0.6)
    assert [(h.object_id, h.document_id, h.distance) for h in hits] == [("w-3", 3, 0.12), ("w-9", 9, 0.3)]


async def test_near_vector_graphql_errors():
    index = _index(lambda request: httpx.Response(200, json={"errors": [{"message": "no such class"}]}))
    with pytest.raises(IndexWriteFailure):
        await index.near_vector("post", [1.0])


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        class_name("poll")
