# campusnet/forum/service.py
"""
Forum content engine.

Orchestrates every content mutation across the document store, the vector
index and the embedding generator:

- create / edit: commit the document first, then embed and mirror it. A failed
  mirror leaves the document in place and is reported as a warning; the next
  edit rewrites the mirror under the same id.
- delete: walk the containment tree bottom-up and, for every record, delete
  the mirror before the document. Index failures are collected, never retried.
- like / dislike / report: single-record read-modify-write toggles.
- watch / unwatch: idempotent membership in the thread's watcher set.

Store clients are passed in, never imported as globals.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from campusnet.config import SEARCH_LIMIT, SEARCH_MAX_DISTANCE
from campusnet.errors import (
    ForumError,
    Forbidden,
    InvalidOperation,
    NotFound,
    Unauthorized,
)
from campusnet.forum.dual_write import mirror_then_delete, write_then_mirror
from campusnet.forum.notifications import NEW_COMMENT, NEW_POST, NotificationFanout
from campusnet.forum.store import PARENTS, ContentRef, ForumStore
from campusnet.moderation.profanity import ensure_clean
from campusnet.moderation.reactions import DISLIKE, LIKE, REPORT, TOGGLES, ReactionSets, diff
from campusnet.search.weaviate import PARENT_PROPERTY

logger = logging.getLogger(__name__)

KINDS = ("forum", "thread", "post", "comment")
TITLED = ("forum", "thread")
REACTABLE = ("post", "comment")

MIRROR_WARNING = "Saved, but search indexing failed. Edit the content again to retry."
DELETE_WARNING = "Deleted, but some search index entries could not be removed."
NOTIFY_WARNING = "Saved, but watchers could not be notified."


def is_admin(user: Any) -> bool:
    return (getattr(user, "role", "") or "").upper() == "ADMIN"


@dataclass
class ContentResult:
    kind: str
    record: Any
    mirrored: bool = True
    warning: Optional[str] = None


@dataclass
class DeleteResult:
    kind: str
    id: int
    deleted: dict[str, int] = field(default_factory=lambda: {k: 0 for k in KINDS})
    failed_mirrors: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failed_mirrors)

    @property
    def warning(self) -> Optional[str]:
        return DELETE_WARNING if self.degraded else None


@dataclass
class ReactionResult:
    kind: str
    record: Any
    reactions: ReactionSets


@dataclass
class SearchHit:
    kind: str
    record: Any
    distance: Optional[float]


def _embedding_text(kind: str, record: Any) -> str:
    if kind in TITLED:
        return f"{record.title}\n{record.description or ''}".strip()
    return record.content


def _mirror_properties(kind: str, record: Any, parent_weaviate_id: Optional[str]) -> dict[str, Any]:
    if kind in TITLED:
        props = {"title": record.title, "description": record.description or ""}
    else:
        props = {"content": record.content}
    props["documentId"] = record.id
    if kind in PARENT_PROPERTY and parent_weaviate_id:
        props[PARENT_PROPERTY[kind]] = parent_weaviate_id
    return props


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip()


class ForumService:
    def __init__(self, store: ForumStore, index: Any, embedder: Any):
        self.store = store
        self.index = index
        self.embedder = embedder
        self.notifications = NotificationFanout(store)

    # ------------------------------
    # helpers
    # ------------------------------
    @staticmethod
    def _require_actor(actor: Any) -> None:
        if actor is None or getattr(actor, "id", None) is None:
            raise Unauthorized()

    @staticmethod
    def _require_owner_or_admin(record: Any, actor: Any, op: str) -> None:
        if not (is_admin(actor) or record.author_id == actor.id):
            logger.warning("op=%s actor=%s denied on %s %s", op, actor.id, type(record).__name__, record.id)
            raise Forbidden("Only the owner or an admin may do this")

    async def _get_or_404(self, kind: str, doc_id: int, weaviate_id: Optional[str] = None) -> Any:
        record = await self.store.get(kind, doc_id)
        if record is None or (weaviate_id is not None and record.weaviate_id != weaviate_id):
            raise NotFound(f"{kind.capitalize()} not found")
        return record

    async def _parent_weaviate_id(self, kind: str, record: Any) -> Optional[str]:
        if kind not in PARENTS:
            return None
        parent_kind, fk = PARENTS[kind]
        parent = await self.store.get(parent_kind, getattr(record, fk))
        return parent.weaviate_id if parent else None

    async def _mirror(self, kind: str, record: Any, parent_weaviate_id: Optional[str]) -> None:
        vector = await self.embedder.embed(_embedding_text(kind, record))
        await self.index.upsert(
            kind,
            record.weaviate_id,
            _mirror_properties(kind, record, parent_weaviate_id),
            vector,
        )

    @staticmethod
    def _validate_fields(kind: str, title: Optional[str], description: Optional[str], content: Optional[str]) -> dict:
        if kind in TITLED:
            if not title:
                raise InvalidOperation("Title is required")
            ensure_clean(title, field="Title")
            ensure_clean(description, field="Description")
            return {"title": title, "description": description or ""}
        if not content:
            raise InvalidOperation("Content is required")
        ensure_clean(content)
        return {"content": content}

    # ------------------------------
    # create / edit
    # ------------------------------
    async def create_content(
        self,
        kind: str,
        parent_id: Optional[int],
        parent_weaviate_id: Optional[str],
        actor: Any,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        content: Optional[str] = None,
    ) -> ContentResult:
        self._require_actor(actor)
        actor_id = actor.id
        op = f"create-{kind}"
        try:
            fields = self._validate_fields(kind, _clean_text(title), _clean_text(description), _clean_text(content))

            parent = None
            if kind == "forum":
                if not is_admin(actor):
                    raise Forbidden("Only admins can create forums")
            else:
                parent_kind, fk = PARENTS[kind]
                parent = await self._get_or_404(parent_kind, parent_id, parent_weaviate_id)
                fields[fk] = parent.id

            fields["author_id"] = actor.id
            fields["weaviate_id"] = str(uuid.uuid4())

            async def primary():
                record = await self.store.insert(kind, **fields)
                if kind == "comment":
                    await self.store.refresh_comments_count(parent.id)
                await self.store.commit(record)
                return record

            async def mirror(record):
                await self._mirror(kind, record, parent.weaviate_id if parent else None)

            result = await write_then_mirror(primary, mirror)
            result.raise_for_primary()
        except ForumError as e:
            logger.warning("op=%s actor=%s failed: %s", op, actor_id, e.msg)
            raise

        record = result.value
        record_id = record.id
        out = ContentResult(kind=kind, record=record, mirrored=not result.degraded)
        if result.degraded:
            logger.warning(
                "op=%s actor=%s %s %s saved without mirror %s: %s",
                op, actor_id, kind, record_id, record.weaviate_id, result.mirror.error.msg,
            )
            out.warning = MIRROR_WARNING

        if kind in REACTABLE:
            if not await self._fan_out(kind, record, parent, actor):
                out.warning = out.warning or NOTIFY_WARNING
                # the failed notification write rolled the session back
                await self.store.reload(record, actor)

        logger.info("op=%s actor=%s created %s %s", op, actor_id, kind, record_id)
        return out

    async def _fan_out(self, kind: str, record: Any, parent: Any, actor: Any) -> bool:
        actor_id = actor.id
        thread_id = parent.id if kind == "post" else parent.thread_id
        try:
            if kind == "post":
                thread, event, post_id = parent, NEW_POST, record.id
            else:
                thread, event, post_id = await self.store.get("thread", thread_id), NEW_COMMENT, parent.id
            if thread is None:
                return True
            await self.notifications.notify(
                event,
                thread_id,
                post_id,
                actor_id,
                actor=getattr(actor, "username", "Someone"),
                thread=thread.title,
            )
        except ForumError as e:
            logger.error("op=notify actor=%s thread=%s failed: %s", actor_id, thread_id, e.msg)
            return False
        return True

    async def edit_content(
        self,
        kind: str,
        doc_id: int,
        weaviate_id: str,
        actor: Any,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        content: Optional[str] = None,
    ) -> ContentResult:
        self._require_actor(actor)
        actor_id = actor.id
        op = f"edit-{kind}"
        try:
            record = await self._get_or_404(kind, doc_id, weaviate_id)
            self._require_owner_or_admin(record, actor, op)

            title, description, content = _clean_text(title), _clean_text(description), _clean_text(content)
            if kind in TITLED:
                if title is None and description is None:
                    raise InvalidOperation("Nothing to update")
                changes = self._validate_fields(
                    kind,
                    record.title if title is None else title,
                    record.description if description is None else description,
                    None,
                )
            else:
                changes = self._validate_fields(kind, None, None, content)

            parent_weaviate_id = await self._parent_weaviate_id(kind, record)

            async def primary():
                await self.store.update(record, **changes)
                await self.store.commit(record)
                return record

            async def mirror(updated):
                await self._mirror(kind, updated, parent_weaviate_id)

            result = await write_then_mirror(primary, mirror)
            result.raise_for_primary()
        except ForumError as e:
            logger.warning("op=%s actor=%s id=%s failed: %s", op, actor_id, doc_id, e.msg)
            raise

        out = ContentResult(kind=kind, record=record, mirrored=not result.degraded)
        if result.degraded:
            logger.warning(
                "op=%s actor=%s %s %s mirror %s not updated: %s",
                op, actor_id, kind, record.id, record.weaviate_id, result.mirror.error.msg,
            )
            out.warning = MIRROR_WARNING
        return out

    # ------------------------------
    # delete (cascade)
    # ------------------------------
    async def delete_content(self, kind: str, doc_id: int, weaviate_id: str, actor: Any) -> DeleteResult:
        self._require_actor(actor)
        actor_id = actor.id
        op = f"delete-{kind}"
        try:
            record = await self._get_or_404(kind, doc_id, weaviate_id)
            self._require_owner_or_admin(record, actor, op)
            parent_post_id = record.post_id if kind == "comment" else None

            out = DeleteResult(kind=kind, id=doc_id)
            levels = await self.store.descendants(kind, doc_id)
            levels.append((kind, [ContentRef(record.id, record.weaviate_id)]))

            for level_kind, refs in levels:
                for ref in refs:
                    result = await mirror_then_delete(
                        lambda: self.index.delete(level_kind, ref.weaviate_id),
                        lambda: self.store.delete_rows(level_kind, [ref.id]),
                    )
                    result.raise_for_primary()
                    out.deleted[level_kind] += result.value
                    if not result.mirror.ok:
                        out.failed_mirrors.append(ref.weaviate_id)
                        logger.warning(
                            "op=%s actor=%s mirror %s of %s %s not deleted: %s",
                            op, actor_id, ref.weaviate_id, level_kind, ref.id, result.mirror.error.msg,
                        )

            if parent_post_id is not None:
                await self.store.refresh_comments_count(parent_post_id)
            await self.store.commit()
        except ForumError as e:
            logger.warning("op=%s actor=%s id=%s failed: %s", op, actor_id, doc_id, e.msg)
            raise

        logger.info("op=%s actor=%s deleted %s %s (%s)", op, actor_id, kind, doc_id, out.deleted)
        return out

    # ------------------------------
    # like / dislike / report
    # ------------------------------
    async def toggle_reaction(self, kind: str, doc_id: int, actor: Any, reaction: str) -> ReactionResult:
        self._require_actor(actor)
        actor_id = actor.id
        op = f"{reaction.lower()}-{kind}"
        try:
            if kind not in REACTABLE or reaction not in TOGGLES:
                raise InvalidOperation()
            record = await self._get_or_404(kind, doc_id)
            if reaction == REPORT and record.author_id == actor_id:
                raise InvalidOperation("You cannot report your own content")

            before = await self.store.reactions(kind, doc_id)
            after = TOGGLES[reaction](before, actor_id)
            added, removed = diff(before, after)
            if await self.store.apply_reactions(kind, doc_id, added, removed):
                await self.store.commit()
            else:
                # a concurrent toggle by the same user won; report what it stored
                logger.info("op=%s actor=%s id=%s lost a concurrent toggle", op, actor_id, doc_id)
                await self.store.reload(record, actor)
                after = await self.store.reactions(kind, doc_id)
        except ForumError as e:
            logger.warning("op=%s actor=%s id=%s failed: %s", op, actor_id, doc_id, e.msg)
            raise
        return ReactionResult(kind=kind, record=record, reactions=after)

    async def like(self, kind: str, doc_id: int, actor: Any) -> ReactionResult:
        return await self.toggle_reaction(kind, doc_id, actor, LIKE)

    async def dislike(self, kind: str, doc_id: int, actor: Any) -> ReactionResult:
        return await self.toggle_reaction(kind, doc_id, actor, DISLIKE)

    async def report(self, kind: str, doc_id: int, actor: Any) -> ReactionResult:
        return await self.toggle_reaction(kind, doc_id, actor, REPORT)

    # ------------------------------
    # watchers
    # ------------------------------
    async def watch_thread(self, thread_id: int, actor: Any) -> bool:
        self._require_actor(actor)
        actor_id = actor.id
        try:
            await self._get_or_404("thread", thread_id)
            await self.store.add_watcher(thread_id, actor_id)
            await self.store.commit()
        except ForumError as e:
            logger.warning("op=watch-thread actor=%s id=%s failed: %s", actor_id, thread_id, e.msg)
            raise
        return True

    async def unwatch_thread(self, thread_id: int, actor: Any) -> bool:
        self._require_actor(actor)
        actor_id = actor.id
        try:
            await self._get_or_404("thread", thread_id)
            await self.store.remove_watcher(thread_id, actor_id)
            await self.store.commit()
        except ForumError as e:
            logger.warning("op=unwatch-thread actor=%s id=%s failed: %s", actor_id, thread_id, e.msg)
            raise
        return False

    async def is_watching(self, thread_id: int, actor: Any) -> bool:
        self._require_actor(actor)
        actor_id = actor.id
        try:
            await self._get_or_404("thread", thread_id)
            return actor_id in await self.store.watchers(thread_id)
        except ForumError as e:
            logger.warning("op=watch-status actor=%s id=%s failed: %s", actor_id, thread_id, e.msg)
            raise

    # ------------------------------
    # reads
    # ------------------------------
    async def list_forums(self) -> list[tuple[Any, int]]:
        forums = await self.store.list_forums()
        counts = await self.store.child_counts("thread", [f.id for f in forums])
        return [(f, counts.get(f.id, 0)) for f in forums]

    async def list_threads(self, forum_id: int, viewer: Any) -> tuple[Any, list[tuple[Any, int, bool]]]:
        forum = await self._get_or_404("forum", forum_id)
        threads = await self.store.list_children("thread", forum_id)
        ids = [t.id for t in threads]
        counts = await self.store.child_counts("post", ids)
        watched = await self.store.watched_thread_ids(viewer.id, ids) if viewer else set()
        return forum, [(t, counts.get(t.id, 0), t.id in watched) for t in threads]

    async def get_posts(self, thread_id: int) -> tuple[Any, list[tuple[Any, ReactionSets]]]:
        thread = await self._get_or_404("thread", thread_id)
        posts = await self.store.list_children("post", thread_id)
        reactions = await self.store.reactions_for("post", [p.id for p in posts])
        return thread, [(p, reactions[p.id]) for p in posts]

    async def get_comments(self, post_id: int) -> tuple[Any, list[tuple[Any, ReactionSets]]]:
        post = await self._get_or_404("post", post_id)
        comments = await self.store.list_children("comment", post_id)
        reactions = await self.store.reactions_for("comment", [c.id for c in comments])
        return post, [(c, reactions[c.id]) for c in comments]

    async def reported(self, kind: str, actor: Any) -> list[tuple[Any, int]]:
        self._require_actor(actor)
        if not is_admin(actor):
            raise Forbidden("Admin access required")
        if kind not in REACTABLE:
            raise InvalidOperation()
        return await self.store.reported(kind)

    async def search(self, query: str, actor: Any = None, limit: int = SEARCH_LIMIT) -> dict[str, list[SearchHit]]:
        """
        Nearest-vector search across every content kind. Hits whose document no
        longer exists, or whose document points at a different mirror, are
        dropped.
        """
        actor_id = getattr(actor, "id", None)
        try:
            query = (query or "").strip()
            if not query:
                raise InvalidOperation("Search query is required")

            vector = await self.embedder.embed(query)
            out: dict[str, list[SearchHit]] = {}
            for kind in KINDS:
                hits = await self.index.near_vector(kind, vector, limit=limit, max_distance=SEARCH_MAX_DISTANCE)
                records = await self.store.get_many(kind, [h.document_id for h in hits])
                out[kind] = [
                    SearchHit(kind=kind, record=records[h.document_id], distance=h.distance)
                    for h in hits
                    if h.document_id in records and records[h.document_id].weaviate_id == h.object_id
                ]
        except ForumError as e:
            logger.warning("op=search actor=%s failed: %s", actor_id, e.msg)
            raise
        return out
