"""
Shared fixtures: in-memory SQLite document store, fake vector index and
embedder, and an HTTP client wired to the app through dependency overrides.
"""

import hashlib
import math
import os
from typing import Any, AsyncGenerator, Optional

os.environ["SECRET_KEY"] = "unit-test-secret-key-0123456789-abcdef"
os.environ["FORUM_RATELIMIT_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import httpx
import pytest
from sqlalchemy.pool import StaticPool

from campusnet.database import Base, get_async_session, make_engine, make_sessionmaker
from campusnet.deps.forum import get_embedder, get_vector_index
from campusnet.errors import EmbeddingFailure, IndexWriteFailure
from campusnet.forum.service import ForumService
from campusnet.forum.store import ForumStore
from campusnet.limiter import limiter
from campusnet.main import app
from campusnet.models.user_model import User
from campusnet.search.weaviate import IndexHit
from campusnet.utils.token_utils import create_access_token

DIMENSIONS = 32


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


class FakeEmbedder:
    """Deterministic bag-of-words vectors; similar words give similar vectors."""

    def __init__(self):
        self.fail = False
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingFailure()
        vec = [0.0] * DIMENSIONS
        for word in text.lower().split():
            word = word.strip("?!.,\"'")
            if not word:
                continue
            h = int(hashlib.md5(word.encode()).hexdigest(), 16)
            vec[h % DIMENSIONS] += 1.0
        if not any(vec):
            vec[0] = 1.0
        return vec


def _cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if not na or not nb:
        return 1.0
    return 1.0 - dot / (na * nb)


class FakeVectorIndex:
    """In-memory stand-in for WeaviateIndex with switchable failures."""

    def __init__(self):
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.fail_writes = False
        self.fail_deletes = False

    async def upsert(self, kind: str, object_id: str, properties: dict, vector: list[float]) -> None:
        if self.fail_writes:
            raise IndexWriteFailure()
        self.objects[(kind, object_id)] = {"properties": dict(properties), "vector": list(vector)}

    async def delete(self, kind: str, object_id: str) -> bool:
        if self.fail_deletes:
            raise IndexWriteFailure()
        return self.objects.pop((kind, object_id), None) is not None

    async def near_vector(
        self, kind: str, vector: list[float], limit: int = 10, max_distance: Optional[float] = None
    ) -> list[IndexHit]:
        hits = []
        for (k, object_id), obj in self.objects.items():
            if k != kind:
                continue
            distance = _cosine_distance(vector, obj["vector"])
            if max_distance is not None and distance > max_distance:
                continue
            hits.append(IndexHit(kind, object_id, obj["properties"]["documentId"], distance))
        hits.sort(key=lambda h: h.distance)
        return hits[:limit]

    def has(self, kind: str, object_id: str) -> bool:
        return (kind, object_id) in self.objects

    def count(self, kind: Optional[str] = None) -> int:
        return sum(1 for (k, _id) in self.objects if kind is None or k == kind)


@pytest.fixture
async def engine():
    eng = make_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator:
    async with session_factory() as s:
        yield s


@pytest.fixture
def index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def service(session, index, embedder) -> ForumService:
    return ForumService(ForumStore(session), index, embedder)


async def _create_user(factory, username: str, role: str = "GENERAL") -> User:
    async with factory() as s:
        user = User(username=username, password="not-a-real-hash", email=f"{username}@campus.edu", role=role)
        s.add(user)
        await s.commit()
        await s.refresh(user)
        return user


@pytest.fixture
def make_user(session_factory):
    async def _make(username: str, role: str = "GENERAL") -> User:
        return await _create_user(session_factory, username, role)
    return _make


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("admin", "ADMIN")


@pytest.fixture
async def alice(make_user) -> User:
    return await make_user("alice")


@pytest.fixture
async def bob(make_user) -> User:
    return await make_user("bob")


@pytest.fixture
async def carol(make_user) -> User:
    return await make_user("carol")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
async def client(session_factory, index, embedder) -> AsyncGenerator:
    async def override_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_vector_index] = lambda: index
    app.dependency_overrides[get_embedder] = lambda: embedder

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
