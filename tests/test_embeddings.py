import json

import httpx
import pytest

from campusnet.errors import EmbeddingFailure
from campusnet.search.embeddings import EmbeddingClient


def _client(handler, **kwargs) -> EmbeddingClient:
    http = httpx.AsyncClient(base_url="http://embed.test", transport=httpx.MockTransport(handler))
    return EmbeddingClient(http, model="test-model", **kwargs)


async def test_embed_returns_first_vector():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/embeddings"
        assert json.loads(request.content) == {"model": "test-model", "input": "When is midterm?"}
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

    client = _client(handler)
    assert await client.embed("  When is midterm?  ") == [0.1, 0.2, 0.3]
    await client.aclose()


async def test_empty_text_is_rejected_without_a_request():
    def handler(request):
        raise AssertionError("should not be called")

    with pytest.raises(EmbeddingFailure):
        await _client(handler).embed("   ")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="overloaded"),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, json={"data": [{"embedding": []}]}),
    ],
)
async def test_bad_responses_raise(response):
    with pytest.raises(EmbeddingFailure):
        await _client(lambda request: response).embed("hello")


async def test_dimension_mismatch():
    client = _client(lambda request: httpx.Response(200, json={"data": [{"embedding": [1.0, 2.0]}]}), dimensions=3)
    with pytest.raises(EmbeddingFailure):
        await client.embed("hello")


async def test_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(EmbeddingFailure):
        await _client(handler).embed("hello")
