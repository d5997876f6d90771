"""
Weaviate backend for the semantic-search mirror of forum content.

Each content kind lives in its own class with ``vectorizer: none``; vectors
are computed by the embedding client and sent with every write. Object ids
are assigned by us (uuid4) so the document row can hold its mirror id before
the mirror exists.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from campusnet.config import WEAVIATE_API_KEY, WEAVIATE_TIMEOUT, WEAVIATE_URL
from campusnet.errors import IndexWriteFailure

logger = logging.getLogger(__name__)

CLASS_NAMES = {
    "forum": "Forum",
    "thread": "Thread",
    "post": "Post",
    "comment": "Comment",
}

# Parent link property per kind, holding the parent's weaviate id.
PARENT_PROPERTY = {
    "thread": "forumId",
    "post": "threadId",
    "comment": "postId",
}


def class_name(kind: str) -> str:
    try:
        return CLASS_NAMES[kind]
    except KeyError:
        raise ValueError(f"unknown content kind: {kind}")


def class_schema(kind: str) -> dict[str, Any]:
    """
    The class definition to create for a content kind.
    """
    if kind in ("forum", "thread"):
        props = [
            {"name": "title", "dataType": ["text"]},
            {"name": "description", "dataType": ["text"]},
        ]
    else:
        props = [{"name": "content", "dataType": ["text"]}]

    props.append({"name": "documentId", "dataType": ["int"]})
    if kind in PARENT_PROPERTY:
        props.append({"name": PARENT_PROPERTY[kind], "dataType": ["text"]})

    return {
        "class": class_name(kind),
        "vectorizer": "none",  # We provide vectors manually
        "vectorIndexConfig": {"distance": "cosine"},
        "properties": props,
    }


@dataclass
class IndexHit:
    kind: str
    object_id: str
    document_id: int
    distance: Optional[float]


def build_near_vector_query(kind: str, vector: list[float], limit: int, max_distance: Optional[float]) -> str:
    """
    Build the GraphQL ``Get`` query for a nearest-vector search on one class.
    """
    args = [f"vector: {json.dumps([float(v) for v in vector])}"]
    if max_distance is not None:
        args.append(f"distance: {float(max_distance)}")
    return (
        "{ Get { %s(nearVector: {%s}, limit: %d) "
        "{ documentId _additional { id distance } } } }"
        % (class_name(kind), ", ".join(args), int(limit))
    )


class WeaviateIndex:
    """
    Vector index adapter over the Weaviate REST and GraphQL API.

    Every transport or server error is raised as ``IndexWriteFailure``; the
    caller decides whether that is fatal.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @classmethod
    def from_settings(cls) -> "WeaviateIndex":
        headers = {}
        if WEAVIATE_API_KEY:
            headers["Authorization"] = f"Bearer {WEAVIATE_API_KEY}"
        client = httpx.AsyncClient(base_url=WEAVIATE_URL, timeout=WEAVIATE_TIMEOUT, headers=headers)
        return cls(client)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, url: str, allow: tuple[int, ...] = (), **kwargs) -> httpx.Response:
        try:
            res = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("weaviate %s %s failed: %r", method, url, e)
            raise IndexWriteFailure()

        if res.status_code >= 400 and res.status_code not in allow:
            logger.error("weaviate %s %s returned %s: %s", method, url, res.status_code, res.text[:500])
            raise IndexWriteFailure()
        return res

    async def ensure_schema(self) -> list[str]:
        """
        Create any missing content class. Returns the names of created classes.
        """
        res = await self._request("GET", "/v1/schema")
        existing = {c.get("class") for c in (res.json().get("classes") or [])}

        created = []
        for kind in CLASS_NAMES:
            name = class_name(kind)
            if name in existing:
                continue
            await self._request("POST", "/v1/schema", json=class_schema(kind))
            created.append(name)

        if created:
            logger.info("weaviate schema created classes: %s", ", ".join(created))
        return created

    async def upsert(self, kind: str, object_id: str, properties: dict[str, Any], vector: list[float]) -> None:
        """
        Replace the object in place, creating it when it does not exist yet.
        """
        body = {
            "class": class_name(kind),
            "id": object_id,
            "properties": properties,
            "vector": vector,
        }
        res = await self._request(
            "PUT", f"/v1/objects/{class_name(kind)}/{object_id}", allow=(404,), json=body
        )
        if res.status_code == 404:
            await self._request("POST", "/v1/objects", json=body)

    async def delete(self, kind: str, object_id: str) -> bool:
        """
        Delete the object. Returns False when it was already gone.
        """
        res = await self._request(
            "DELETE", f"/v1/objects/{class_name(kind)}/{object_id}", allow=(404,)
        )
        return res.status_code != 404

    async def near_vector(
        self,
        kind: str,
        vector: list[float],
        limit: int = 10,
        max_distance: Optional[float] = None,
    ) -> list[IndexHit]:
        query = build_near_vector_query(kind, vector, limit, max_distance)
        res = await self._request("POST", "/v1/graphql", json={"query": query})
        payload = res.json()
        if payload.get("errors"):
            logger.error("weaviate graphql errors: %s", payload["errors"])
            raise IndexWriteFailure()

        rows = ((payload.get("data") or {}).get("Get") or {}).get(class_name(kind)) or []
        hits = []
        for row in rows:
            extra = row.get("_additional") or {}
            if row.get("documentId") is None:
                continue
            hits.append(
                IndexHit(
                    kind=kind,
                    object_id=extra.get("id", ""),
                    document_id=int(row["documentId"]),
                    distance=extra.get("distance"),
                )
            )
        return hits
