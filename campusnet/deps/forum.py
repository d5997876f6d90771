# campusnet/deps/forum.py
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from campusnet.database import get_async_session
from campusnet.forum.service import ForumService
from campusnet.forum.store import ForumStore
from campusnet.search.embeddings import EmbeddingClient
from campusnet.search.weaviate import WeaviateIndex


def get_vector_index(request: Request) -> WeaviateIndex:
    return request.app.state.vector_index


def get_embedder(request: Request) -> EmbeddingClient:
    return request.app.state.embedder


async def get_forum_service(
    session: AsyncSession = Depends(get_async_session),
    index: WeaviateIndex = Depends(get_vector_index),
    embedder: EmbeddingClient = Depends(get_embedder),
) -> ForumService:
    """
    One engine per request, bound to the request's session and the shared
    index/embedding clients created at startup.
    """
    return ForumService(ForumStore(session), index, embedder)
