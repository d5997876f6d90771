from typing import Any, List, Literal, Optional

from fastapi import APIRouter, Depends, Request, status

from campusnet.deps.admin import require_admin
from campusnet.deps.forum import get_forum_service
from campusnet.forum.service import ContentResult, ForumService
from campusnet.limiter import limiter
from campusnet.models.user_model import User
from campusnet.moderation.reactions import ReactionSets
from campusnet.schemas.forum_schemas import (
    CommentOut,
    CreateCommentIn,
    CreateForumIn,
    CreatePostIn,
    CreateThreadIn,
    DeleteOut,
    EditContentIn,
    ForumOut,
    PostCommentsOut,
    PostOut,
    ReactionOut,
    ReportedOut,
    SearchOut,
    ThreadListOut,
    ThreadOut,
    ThreadPostsOut,
    WatchOut,
)
from campusnet.utils.token_utils import get_current_user

router = APIRouter(prefix="/forums", tags=["forums"])

AnyKind = Literal["forum", "thread", "post", "comment"]
ReactableKind = Literal["post", "comment"]


# ------------------------------
# Mappers
# ------------------------------
def _mirror_bits(result: Optional[ContentResult]) -> dict:
    if result is None:
        return {}
    return {"mirrored": result.mirrored, "warning": result.warning}


def _reaction_bits(sets: ReactionSets, viewer_id: Optional[int]) -> dict:
    return {
        "liked_by": sorted(sets.liked_by),
        "disliked_by": sorted(sets.disliked_by),
        "reported_by": sorted(sets.reported_by),
        "like_count": len(sets.liked_by),
        "dislike_count": len(sets.disliked_by),
        "report_count": len(sets.reported_by),
        "is_liked": viewer_id in sets.liked_by,
        "is_disliked": viewer_id in sets.disliked_by,
        "is_reported": viewer_id in sets.reported_by,
    }


def _forum_to_out(f: Any, names: dict, thread_count: int = 0, result: Optional[ContentResult] = None) -> ForumOut:
    return ForumOut(
        id=f.id,
        weaviate_id=f.weaviate_id,
        title=f.title,
        description=f.description or "",
        author_id=f.author_id,
        author_username=names.get(f.author_id),
        created_at=str(f.created_at),
        updated_at=str(f.updated_at),
        thread_count=thread_count,
        **_mirror_bits(result),
    )


def _thread_to_out(
    t: Any,
    names: dict,
    post_count: int = 0,
    is_watching: bool = False,
    result: Optional[ContentResult] = None,
) -> ThreadOut:
    return ThreadOut(
        id=t.id,
        forum_id=t.forum_id,
        weaviate_id=t.weaviate_id,
        title=t.title,
        description=t.description or "",
        author_id=t.author_id,
        author_username=names.get(t.author_id),
        created_at=str(t.created_at),
        updated_at=str(t.updated_at),
        post_count=post_count,
        is_watching=is_watching,
        **_mirror_bits(result),
    )


def _post_to_out(
    p: Any,
    names: dict,
    viewer_id: Optional[int] = None,
    sets: Optional[ReactionSets] = None,
    result: Optional[ContentResult] = None,
) -> PostOut:
    return PostOut(
        id=p.id,
        thread_id=p.thread_id,
        weaviate_id=p.weaviate_id,
        content=p.content,
        author_id=p.author_id,
        author_username=names.get(p.author_id),
        comments_count=p.comments_count or 0,
        created_at=str(p.created_at),
        updated_at=str(p.updated_at),
        **_reaction_bits(sets or ReactionSets(), viewer_id),
        **_mirror_bits(result),
    )


def _comment_to_out(
    c: Any,
    names: dict,
    viewer_id: Optional[int] = None,
    sets: Optional[ReactionSets] = None,
    result: Optional[ContentResult] = None,
) -> CommentOut:
    return CommentOut(
        id=c.id,
        post_id=c.post_id,
        weaviate_id=c.weaviate_id,
        content=c.content,
        author_id=c.author_id,
        author_username=names.get(c.author_id),
        created_at=str(c.created_at),
        updated_at=str(c.updated_at),
        **_reaction_bits(sets or ReactionSets(), viewer_id),
        **_mirror_bits(result),
    )


async def _result_to_out(svc: ForumService, result: ContentResult, user: User):
    names = {user.id: user.username}
    record = result.record
    names.update(await svc.store.usernames([record.author_id]))
    if result.kind == "forum":
        return _forum_to_out(record, names, result=result)
    if result.kind == "thread":
        return _thread_to_out(record, names, result=result)
    reactions = await svc.store.reactions(result.kind, record.id)
    if result.kind == "post":
        return _post_to_out(record, names, user.id, reactions, result=result)
    return _comment_to_out(record, names, user.id, reactions, result=result)


def _hit_to_dict(hit: Any) -> dict:
    r = hit.record
    out = {"id": r.id, "kind": hit.kind, "weaviate_id": r.weaviate_id, "distance": hit.distance}
    if hit.kind in ("forum", "thread"):
        out.update(title=r.title, description=r.description or "")
    else:
        out["content"] = r.content
    for fk in ("forum_id", "thread_id", "post_id"):
        if hasattr(r, fk):
            out[fk] = getattr(r, fk)
    return out


# ------------------------------
# Forums
# ------------------------------
@router.get("/get-forums", response_model=List[ForumOut])
async def get_forums(
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    rows = await svc.list_forums()
    names = await svc.store.usernames(f.author_id for f, _n in rows)
    return [_forum_to_out(f, names, n) for f, n in rows]


@router.post("/create-forum", response_model=ForumOut, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute;50/day")
async def create_forum(
    request: Request,
    payload: CreateForumIn,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    result = await svc.create_content(
        "forum", None, None, user, title=payload.title, description=payload.description
    )
    return await _result_to_out(svc, result, user)


# ------------------------------
# Threads
# ------------------------------
@router.get("/get-threads/{forum_id}", response_model=ThreadListOut)
async def get_threads(
    forum_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    forum, rows = await svc.list_threads(forum_id, user)
    names = await svc.store.usernames([forum.author_id] + [t.author_id for t, _n, _w in rows])
    return ThreadListOut(
        forum=_forum_to_out(forum, names, len(rows)),
        threads=[_thread_to_out(t, names, n, watching) for t, n, watching in rows],
    )


@router.post(
    "/create-thread/{forum_id}/{forum_weaviate_id}",
    response_model=ThreadOut,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("3/minute;20/hour;60/day")
async def create_thread(
    request: Request,
    forum_id: int,
    forum_weaviate_id: str,
    payload: CreateThreadIn,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    result = await svc.create_content(
        "thread", forum_id, forum_weaviate_id, user,
        title=payload.title, description=payload.description,
    )
    return await _result_to_out(svc, result, user)


@router.put("/watch-thread/{thread_id}", response_model=WatchOut)
async def watch_thread(
    thread_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    return WatchOut(thread_id=thread_id, is_watching=await svc.watch_thread(thread_id, user))


@router.delete("/watch-thread/{thread_id}", response_model=WatchOut)
async def unwatch_thread(
    thread_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    return WatchOut(thread_id=thread_id, is_watching=await svc.unwatch_thread(thread_id, user))


@router.get("/watch-status/{thread_id}", response_model=WatchOut)
async def watch_status(
    thread_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    return WatchOut(thread_id=thread_id, is_watching=await svc.is_watching(thread_id, user))


# ------------------------------
# Posts
# ------------------------------
@router.get("/get-posts/{thread_id}", response_model=ThreadPostsOut)
async def get_posts(
    thread_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    thread, rows = await svc.get_posts(thread_id)
    names = await svc.store.usernames([thread.author_id] + [p.author_id for p, _s in rows])
    watching = await svc.is_watching(thread_id, user)
    return ThreadPostsOut(
        thread=_thread_to_out(thread, names, len(rows), watching),
        posts=[_post_to_out(p, names, user.id, sets) for p, sets in rows],
    )


@router.post(
    "/create-post/{thread_id}/{thread_weaviate_id}",
    response_model=PostOut,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("6/minute;40/hour;150/day")
async def create_post(
    request: Request,
    thread_id: int,
    thread_weaviate_id: str,
    payload: CreatePostIn,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    result = await svc.create_content("post", thread_id, thread_weaviate_id, user, content=payload.content)
    return await _result_to_out(svc, result, user)


# ------------------------------
# Comments
# ------------------------------
@router.get("/get-comments/{post_id}", response_model=PostCommentsOut)
async def get_comments(
    post_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    post, rows = await svc.get_comments(post_id)
    names = await svc.store.usernames([post.author_id] + [c.author_id for c, _s in rows])
    post_sets = await svc.store.reactions("post", post.id)
    return PostCommentsOut(
        post=_post_to_out(post, names, user.id, post_sets),
        comments=[_comment_to_out(c, names, user.id, sets) for c, sets in rows],
    )


@router.post(
    "/create-comment/{post_id}/{post_weaviate_id}",
    response_model=CommentOut,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("12/minute;80/hour;300/day")
async def create_comment(
    request: Request,
    post_id: int,
    post_weaviate_id: str,
    payload: CreateCommentIn,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    result = await svc.create_content("comment", post_id, post_weaviate_id, user, content=payload.content)
    return await _result_to_out(svc, result, user)


# ------------------------------
# Edits / deletes (owner-or-admin)
# ------------------------------
@router.put("/edit-{kind}/{doc_id}/{weaviate_id}")
@limiter.limit("12/minute;80/hour;300/day")
async def edit_content(
    request: Request,
    kind: AnyKind,
    doc_id: int,
    weaviate_id: str,
    payload: EditContentIn,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    result = await svc.edit_content(
        kind, doc_id, weaviate_id, user,
        title=payload.title, description=payload.description, content=payload.content,
    )
    return await _result_to_out(svc, result, user)


@router.delete("/delete-{kind}/{doc_id}/{weaviate_id}", response_model=DeleteOut)
async def delete_content(
    kind: AnyKind,
    doc_id: int,
    weaviate_id: str,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    result = await svc.delete_content(kind, doc_id, weaviate_id, user)
    return DeleteOut(
        msg=f"{kind.capitalize()} deleted successfully",
        deleted={f"{k}s": n for k, n in result.deleted.items()},
        degraded=result.degraded,
        warning=result.warning,
        failed_mirrors=result.failed_mirrors,
    )


# ------------------------------
# Like / dislike / report
# ------------------------------
def _reaction_to_out(result: Any, user: User) -> ReactionOut:
    return ReactionOut(id=result.record.id, kind=result.kind, **_reaction_bits(result.reactions, user.id))


@router.put("/like-{kind}/{doc_id}", response_model=ReactionOut)
@limiter.limit("30/minute;1000/day")
async def like_content(
    request: Request,
    kind: ReactableKind,
    doc_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    return _reaction_to_out(await svc.like(kind, doc_id, user), user)


@router.put("/dislike-{kind}/{doc_id}", response_model=ReactionOut)
@limiter.limit("30/minute;1000/day")
async def dislike_content(
    request: Request,
    kind: ReactableKind,
    doc_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    return _reaction_to_out(await svc.dislike(kind, doc_id, user), user)


@router.put("/report-{kind}/{doc_id}", response_model=ReactionOut)
@limiter.limit("10/minute;100/day")
async def report_content(
    request: Request,
    kind: ReactableKind,
    doc_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    return _reaction_to_out(await svc.report(kind, doc_id, user), user)


# ------------------------------
# Search
# ------------------------------
@router.get("/search-forums/{query}", response_model=SearchOut)
@limiter.limit("30/minute;1000/day")
async def search_forums(
    request: Request,
    query: str,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    hits = await svc.search(query, user)
    return SearchOut(
        query=query,
        forums=[_hit_to_dict(h) for h in hits["forum"]],
        threads=[_hit_to_dict(h) for h in hits["thread"]],
        posts=[_hit_to_dict(h) for h in hits["post"]],
        comments=[_hit_to_dict(h) for h in hits["comment"]],
    )


# ------------------------------
# Moderation review (admin)
# ------------------------------
@router.get("/admin/reported-{kind}s", response_model=List[ReportedOut])
async def reported_content(
    kind: ReactableKind,
    user: User = Depends(require_admin),
    svc: ForumService = Depends(get_forum_service),
):
    rows = await svc.reported(kind, user)
    names = await svc.store.usernames(r.author_id for r, _n in rows)
    return [
        ReportedOut(
            id=r.id,
            kind=kind,
            content=r.content,
            author_id=r.author_id,
            author_username=names.get(r.author_id),
            report_count=n,
            created_at=str(r.created_at),
        )
        for r, n in rows
    ]
