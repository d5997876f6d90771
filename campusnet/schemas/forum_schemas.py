from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Dict, List, Optional


# ------------------------------
# requests
# ------------------------------
class CreateForumIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""


class CreateThreadIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""


class CreatePostIn(BaseModel):
    content: str = Field(min_length=1)


class CreateCommentIn(BaseModel):
    content: str = Field(min_length=1)


class EditContentIn(BaseModel):
    # All optional so the client can send only what changed
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    content: Optional[str] = None


# ------------------------------
# records
# ------------------------------
class MirrorBits(BaseModel):
    weaviate_id: str
    mirrored: bool = True
    warning: Optional[str] = None


class ForumOut(MirrorBits):
    id: int
    title: str
    description: str
    author_id: Optional[int] = None
    author_username: Optional[str] = None
    created_at: str
    updated_at: str
    thread_count: int = 0


class ThreadOut(MirrorBits):
    id: int
    forum_id: int
    title: str
    description: str
    author_id: Optional[int] = None
    author_username: Optional[str] = None
    created_at: str
    updated_at: str
    post_count: int = 0
    is_watching: bool = False


class ReactionBits(BaseModel):
    liked_by: List[int] = []
    disliked_by: List[int] = []
    reported_by: List[int] = []
    like_count: int = 0
    dislike_count: int = 0
    report_count: int = 0
    is_liked: bool = False
    is_disliked: bool = False
    is_reported: bool = False


class PostOut(MirrorBits, ReactionBits):
    id: int
    thread_id: int
    content: str
    author_id: Optional[int] = None
    author_username: Optional[str] = None
    comments_count: int = 0
    created_at: str
    updated_at: str


class CommentOut(MirrorBits, ReactionBits):
    id: int
    post_id: int
    content: str
    author_id: Optional[int] = None
    author_username: Optional[str] = None
    created_at: str
    updated_at: str


# ------------------------------
# composite responses
# ------------------------------
class ThreadListOut(BaseModel):
    forum: ForumOut
    threads: List[ThreadOut]


class ThreadPostsOut(BaseModel):
    thread: ThreadOut
    posts: List[PostOut]


class PostCommentsOut(BaseModel):
    post: PostOut
    comments: List[CommentOut]


class ReactionOut(ReactionBits):
    id: int
    kind: str


class DeleteOut(BaseModel):
    msg: str
    deleted: Dict[str, int]
    degraded: bool = False
    warning: Optional[str] = None
    failed_mirrors: List[str] = []


class WatchOut(BaseModel):
    thread_id: int
    is_watching: bool


class SearchOut(BaseModel):
    query: str
    forums: List[dict] = []
    threads: List[dict] = []
    posts: List[dict] = []
    comments: List[dict] = []


class ReportedOut(BaseModel):
    id: int
    kind: str
    content: str
    author_id: Optional[int] = None
    author_username: Optional[str] = None
    report_count: int
    created_at: str
