# campusnet/forum/store.py
"""
Document store adapter for forum content.

Wraps one ``AsyncSession``. Reads and writes are plain queries; nothing here
talks to the vector index. Database errors come out as ``StoreFailure`` after
the session has been rolled back.
"""
from __future__ import annotations

import functools
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, NamedTuple, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campusnet.errors import StoreFailure
from campusnet.models.forum_model import (
    Forum,
    ForumComment,
    ForumPost,
    ForumReaction,
    ForumThread,
    ThreadWatcher,
)
from campusnet.models.notification_model import Notification, NotificationRecipient
from campusnet.models.user_model import User
from campusnet.moderation.reactions import ReactionSets

logger = logging.getLogger(__name__)

MODELS = {
    "forum": Forum,
    "thread": ForumThread,
    "post": ForumPost,
    "comment": ForumComment,
}

# kind -> (parent kind, foreign key column name)
PARENTS = {
    "thread": ("forum", "forum_id"),
    "post": ("thread", "thread_id"),
    "comment": ("post", "post_id"),
}

CHILD_KIND = {parent: kind for kind, (parent, _col) in PARENTS.items()}


class ContentRef(NamedTuple):
    id: int
    weaviate_id: str


def _store_op(fn):
    @functools.wraps(fn)
    async def wrapper(self: "ForumStore", *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error("store op %s failed: %r", fn.__name__, e)
            await self.session.rollback()
            raise StoreFailure()
    return wrapper


def _reaction_column(target_kind: str):
    if target_kind == "post":
        return ForumReaction.post_id
    if target_kind == "comment":
        return ForumReaction.comment_id
    raise ValueError(f"reactions are not supported on {target_kind}")


class ForumStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------
    # generic content access
    # ------------------------------
    @_store_op
    async def get(self, kind: str, doc_id: int) -> Optional[Any]:
        return await self.session.get(MODELS[kind], doc_id)

    @_store_op
    async def get_many(self, kind: str, ids: Iterable[int]) -> dict[int, Any]:
        ids = list(set(ids))
        if not ids:
            return {}
        model = MODELS[kind]
        rows = (await self.session.execute(select(model).where(model.id.in_(ids)))).scalars().all()
        return {r.id: r for r in rows}

    @_store_op
    async def insert(self, kind: str, **fields) -> Any:
        obj = MODELS[kind](**fields)
        self.session.add(obj)
        await self.session.flush()  # get obj.id
        return obj

    @_store_op
    async def update(self, obj: Any, **fields) -> Any:
        for key, value in fields.items():
            setattr(obj, key, value)
        await self.session.flush()
        return obj

    @_store_op
    async def commit(self, *refresh: Any) -> None:
        await self.session.commit()
        for obj in refresh:
            await self.session.refresh(obj)

    @_store_op
    async def reload(self, *objs: Any) -> None:
        """
        Re-read objects of this session that a rollback has expired. Objects
        loaded by another session are left alone.
        """
        for obj in objs:
            if obj is not None and obj in self.session:
                await self.session.refresh(obj)

    @_store_op
    async def list_children(self, kind: str, parent_id: int) -> list[Any]:
        """Live children of a container, oldest first."""
        model = MODELS[kind]
        fk = getattr(model, PARENTS[kind][1])
        stmt = select(model).where(fk == parent_id).order_by(model.created_at.asc(), model.id.asc())
        return list((await self.session.execute(stmt)).scalars().all())

    @_store_op
    async def list_forums(self) -> list[Forum]:
        stmt = select(Forum).order_by(Forum.created_at.desc(), Forum.id.desc())
        return list((await self.session.execute(stmt)).scalars().all())

    @_store_op
    async def child_counts(self, kind: str, parent_ids: Iterable[int]) -> dict[int, int]:
        """Number of live children of ``kind`` per parent id."""
        parent_ids = list(set(parent_ids))
        if not parent_ids:
            return {}
        model = MODELS[kind]
        fk = getattr(model, PARENTS[kind][1])
        stmt = select(fk, func.count(model.id)).where(fk.in_(parent_ids)).group_by(fk)
        return {pid: int(n) for pid, n in (await self.session.execute(stmt)).all()}

    @_store_op
    async def usernames(self, user_ids: Iterable[Optional[int]]) -> dict[int, str]:
        ids = {u for u in user_ids if u is not None}
        if not ids:
            return {}
        rows = (await self.session.execute(select(User.id, User.username).where(User.id.in_(ids)))).all()
        return {uid: name for uid, name in rows}

    # ------------------------------
    # cascade support
    # ------------------------------
    @_store_op
    async def child_refs(self, kind: str, parent_ids: list[int]) -> list[ContentRef]:
        if not parent_ids:
            return []
        model = MODELS[kind]
        fk = getattr(model, PARENTS[kind][1])
        rows = (await self.session.execute(select(model.id, model.weaviate_id).where(fk.in_(parent_ids)))).all()
        return [ContentRef(i, w) for i, w in rows]

    async def descendants(self, kind: str, doc_id: int) -> list[tuple[str, list[ContentRef]]]:
        """
        Every descendant of a container grouped by kind, deepest level first
        (comments, then posts, then threads).
        """
        levels: list[tuple[str, list[ContentRef]]] = []
        ids = [doc_id]
        while kind in CHILD_KIND and ids:
            kind = CHILD_KIND[kind]
            refs = await self.child_refs(kind, ids)
            levels.append((kind, refs))
            ids = [r.id for r in refs]
        levels.reverse()
        return levels

    async def count_descendants(self, kind: str, doc_id: int) -> int:
        return sum(len(refs) for _kind, refs in await self.descendants(kind, doc_id))

    @_store_op
    async def delete_rows(self, kind: str, ids: list[int]) -> int:
        """
        Delete content rows plus the rows that hang off them (reactions,
        watchers, notifications). Does not touch child content.
        """
        if not ids:
            return 0

        if kind == "comment":
            await self.session.execute(delete(ForumReaction).where(ForumReaction.comment_id.in_(ids)))
        elif kind == "post":
            await self.session.execute(delete(ForumReaction).where(ForumReaction.post_id.in_(ids)))
            await self._delete_notifications(Notification.post_id.in_(ids))
        elif kind == "thread":
            await self.session.execute(delete(ThreadWatcher).where(ThreadWatcher.thread_id.in_(ids)))
            await self._delete_notifications(Notification.thread_id.in_(ids))

        model = MODELS[kind]
        res = await self.session.execute(delete(model).where(model.id.in_(ids)))
        return int(res.rowcount or 0)

    async def _delete_notifications(self, where) -> None:
        notification_ids = select(Notification.id).where(where)
        await self.session.execute(
            delete(NotificationRecipient).where(NotificationRecipient.notification_id.in_(notification_ids))
        )
        await self.session.execute(delete(Notification).where(where))

    @_store_op
    async def refresh_comments_count(self, post_id: int) -> int:
        count = int((await self.session.execute(
            select(func.count(ForumComment.id)).where(ForumComment.post_id == post_id)
        )).scalar_one() or 0)
        post = await self.session.get(ForumPost, post_id)
        if post is not None:
            post.comments_count = count
            await self.session.flush()
        return count

    # ------------------------------
    # reactions (likedBy / disLikedBy / reportedBy)
    # ------------------------------
    @_store_op
    async def reactions(self, target_kind: str, doc_id: int) -> ReactionSets:
        col = _reaction_column(target_kind)
        rows = (await self.session.execute(
            select(ForumReaction.user_id, ForumReaction.kind).where(col == doc_id)
        )).all()
        return ReactionSets.from_rows(rows)

    @_store_op
    async def reactions_for(self, target_kind: str, ids: Iterable[int]) -> dict[int, ReactionSets]:
        ids = list(set(ids))
        out = {i: ReactionSets() for i in ids}
        if not ids:
            return out
        col = _reaction_column(target_kind)
        rows = (await self.session.execute(
            select(col, ForumReaction.user_id, ForumReaction.kind).where(col.in_(ids))
        )).all()
        grouped: dict[int, list[tuple[int, str]]] = {}
        for target_id, user_id, kind in rows:
            grouped.setdefault(target_id, []).append((user_id, kind))
        for target_id, pairs in grouped.items():
            out[target_id] = ReactionSets.from_rows(pairs)
        return out

    @_store_op
    async def apply_reactions(
        self,
        target_kind: str,
        doc_id: int,
        added: set[tuple[int, str]],
        removed: set[tuple[int, str]],
    ) -> bool:
        """
        Persist a toggle. Returns False, with the transaction rolled back, when
        a concurrent toggle by the same user already wrote one of the rows.
        """
        col = _reaction_column(target_kind)
        for user_id, kind in removed:
            await self.session.execute(
                delete(ForumReaction).where(
                    col == doc_id,
                    ForumReaction.user_id == user_id,
                    ForumReaction.kind == kind,
                )
            )
        for user_id, kind in added:
            self.session.add(ForumReaction(**{col.key: doc_id, "user_id": user_id, "kind": kind}))
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.info("reaction on %s %s already written concurrently: %r", target_kind, doc_id, e.orig)
            await self.session.rollback()
            return False
        return True

    @_store_op
    async def reported(self, target_kind: str) -> list[tuple[Any, int]]:
        """Content with at least one report, most reported first."""
        model = MODELS[target_kind]
        col = _reaction_column(target_kind)
        report_count = func.count(func.distinct(ForumReaction.user_id)).label("report_count")
        stmt = (
            select(model, report_count)
            .join(ForumReaction, col == model.id)
            .where(ForumReaction.kind == "REPORT")
            .group_by(model.id)
            .order_by(report_count.desc(), model.id.desc())
        )
        return [(obj, int(n)) for obj, n in (await self.session.execute(stmt)).all()]

    # ------------------------------
    # watchers
    # ------------------------------
    @_store_op
    async def watchers(self, thread_id: int) -> set[int]:
        rows = (await self.session.execute(
            select(ThreadWatcher.user_id).where(ThreadWatcher.thread_id == thread_id)
        )).scalars().all()
        return set(rows)

    @_store_op
    async def watched_thread_ids(self, user_id: int, thread_ids: Iterable[int]) -> set[int]:
        thread_ids = list(set(thread_ids))
        if not thread_ids:
            return set()
        rows = (await self.session.execute(
            select(ThreadWatcher.thread_id).where(
                ThreadWatcher.user_id == user_id,
                ThreadWatcher.thread_id.in_(thread_ids),
            )
        )).scalars().all()
        return set(rows)

    @_store_op
    async def add_watcher(self, thread_id: int, user_id: int) -> bool:
        existing = (await self.session.execute(
            select(ThreadWatcher.id).where(
                ThreadWatcher.thread_id == thread_id, ThreadWatcher.user_id == user_id
            )
        )).first()
        if existing:
            return False
        self.session.add(ThreadWatcher(thread_id=thread_id, user_id=user_id))
        await self.session.flush()
        return True

    @_store_op
    async def remove_watcher(self, thread_id: int, user_id: int) -> bool:
        res = await self.session.execute(
            delete(ThreadWatcher).where(
                ThreadWatcher.thread_id == thread_id, ThreadWatcher.user_id == user_id
            )
        )
        return bool(res.rowcount)

    # ------------------------------
    # notifications
    # ------------------------------
    @_store_op
    async def insert_notification(
        self,
        *,
        created_by: int,
        thread_id: int,
        post_id: Optional[int],
        event: str,
        message: str,
        recipients: Iterable[int],
    ) -> Notification:
        n = Notification(
            created_by=created_by,
            thread_id=thread_id,
            post_id=post_id,
            event=event,
            message=message,
        )
        self.session.add(n)
        await self.session.flush()
        for user_id in sorted(set(recipients)):
            self.session.add(NotificationRecipient(notification_id=n.id, user_id=user_id))
        await self.session.flush()
        return n

    @_store_op
    async def notifications_for(self, user_id: int, unread_only: bool = False) -> list[tuple[Notification, bool]]:
        stmt = (
            select(Notification, NotificationRecipient.seen_at)
            .join(NotificationRecipient, NotificationRecipient.notification_id == Notification.id)
            .where(NotificationRecipient.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        if unread_only:
            stmt = stmt.where(NotificationRecipient.seen_at.is_(None))
        return [(n, seen_at is not None) for n, seen_at in (await self.session.execute(stmt)).all()]

    @_store_op
    async def mark_seen(self, notification_id: int, user_id: int) -> bool:
        """Returns False when the user is not a recipient of the notification."""
        recipient = (await self.session.execute(
            select(NotificationRecipient).where(
                NotificationRecipient.notification_id == notification_id,
                NotificationRecipient.user_id == user_id,
            )
        )).scalars().first()
        if not recipient:
            return False
        if recipient.seen_at is None:
            recipient.seen_at = datetime.now(timezone.utc)
            await self.session.flush()
        return True

    @_store_op
    async def seen_by(self, notification_id: int) -> set[int]:
        rows = (await self.session.execute(
            select(NotificationRecipient.user_id).where(
                NotificationRecipient.notification_id == notification_id,
                NotificationRecipient.seen_at.is_not(None),
            )
        )).scalars().all()
        return set(rows)
