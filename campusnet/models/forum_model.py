from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    func,
    text,
    Index,
    UniqueConstraint,
)
from campusnet.database import Base


class Forum(Base):
    __tablename__ = "forums"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False, server_default="")

    # mirrored object id in the vector index
    weaviate_id = Column(String(36), nullable=False, unique=True, index=True)

    author_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ForumThread(Base):
    __tablename__ = "forum_threads"

    id = Column(Integer, primary_key=True, index=True)
    forum_id = Column(
        Integer,
        ForeignKey("forums.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False, server_default="")
    weaviate_id = Column(String(36), nullable=False, unique=True, index=True)

    author_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ThreadWatcher(Base):
    __tablename__ = "forum_thread_watchers"
    __table_args__ = (
        UniqueConstraint("thread_id", "user_id", name="uq_thread_watcher"),
    )

    id = Column(Integer, primary_key=True, index=True)
    thread_id = Column(
        Integer,
        ForeignKey("forum_threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ForumPost(Base):
    __tablename__ = "forum_posts"

    id = Column(Integer, primary_key=True, index=True)

    thread_id = Column(
        Integer,
        ForeignKey("forum_threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    content = Column(Text, nullable=False)
    weaviate_id = Column(String(36), nullable=False, unique=True, index=True)

    # denormalized, recomputed from live comments on every comment create/delete
    comments_count = Column(Integer, nullable=False, server_default="0", default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ForumComment(Base):
    __tablename__ = "forum_comments"

    id = Column(Integer, primary_key=True, index=True)

    post_id = Column(
        Integer,
        ForeignKey("forum_posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    content = Column(Text, nullable=False)
    weaviate_id = Column(String(36), nullable=False, unique=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ForumReaction(Base):
    """
    One row per (target, user, kind). Exactly one of post_id / comment_id is set.
    kind is LIKE, DISLIKE or REPORT.

    Uniqueness is enforced per target type with partial indexes, since the
    unused target column is always NULL.
    """
    __tablename__ = "forum_reactions"
    __table_args__ = (
        Index(
            "uq_forum_reaction_post",
            "post_id", "user_id", "kind",
            unique=True,
            postgresql_where=text("comment_id IS NULL"),
            sqlite_where=text("comment_id IS NULL"),
        ),
        Index(
            "uq_forum_reaction_comment",
            "comment_id", "user_id", "kind",
            unique=True,
            postgresql_where=text("post_id IS NULL"),
            sqlite_where=text("post_id IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Can be null when the reaction targets a comment
    post_id = Column(
        Integer,
        ForeignKey("forum_posts.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    comment_id = Column(
        Integer,
        ForeignKey("forum_comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind = Column(String(16), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
