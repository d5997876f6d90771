import pytest

from campusnet.errors import Forbidden, NotFound
from campusnet.forum.service import DELETE_WARNING


async def _build_tree(service, admin, author, reactor):
    """One forum, two threads, two posts per thread, two comments per post."""
    forum = (await service.create_content("forum", None, None, admin, title="Exams")).record
    for t in range(2):
        thread = (await service.create_content(
            "thread", forum.id, forum.weaviate_id, author, title=f"Thread {t}"
        )).record
        await service.watch_thread(thread.id, reactor)
        for p in range(2):
            post = (await service.create_content(
                "post", thread.id, thread.weaviate_id, author, content=f"Post {t}.{p}"
            )).record
            await service.like("post", post.id, reactor)
            for c in range(2):
                comment = (await service.create_content(
                    "comment", post.id, post.weaviate_id, author, content=f"Comment {t}.{p}.{c}"
                )).record
                await service.report("comment", comment.id, reactor)
    return forum


async def test_forum_delete_cascades_through_both_stores(service, index, admin, alice, bob):
    forum = await _build_tree(service, admin, alice, bob)
    assert index.count() == 1 + 2 + 4 + 8
    assert await service.store.count_descendants("forum", forum.id) == 14

    result = await service.delete_content("forum", forum.id, forum.weaviate_id, admin)

    assert result.deleted == {"forum": 1, "thread": 2, "post": 4, "comment": 8}
    assert not result.degraded
    assert result.warning is None
    assert index.count() == 0
    assert await service.store.get("forum", forum.id) is None
    assert await service.store.count_descendants("forum", forum.id) == 0
    assert await service.store.reported("comment") == []
    assert await service.notifications.list_for(bob.id) == []


async def test_thread_delete_leaves_siblings(service, index, admin, alice, bob):
    forum = await _build_tree(service, admin, alice, bob)
    threads = await service.store.list_children("thread", forum.id)
    doomed, survivor = threads

    result = await service.delete_content("thread", doomed.id, doomed.weaviate_id, alice)

    assert result.deleted == {"forum": 0, "thread": 1, "post": 2, "comment": 4}
    assert index.count() == 1 + 1 + 2 + 4
    assert await service.store.count_descendants("thread", survivor.id) == 6
    assert await service.store.watchers(doomed.id) == set()
    assert await service.store.watchers(survivor.id) == {bob.id}


async def test_delete_degrades_when_index_is_down(service, index, admin, alice, bob):
    forum = await _build_tree(service, admin, alice, bob)
    index.fail_deletes = True

    result = await service.delete_content("forum", forum.id, forum.weaviate_id, admin)

    assert result.degraded
    assert result.warning == DELETE_WARNING
    assert len(result.failed_mirrors) == 15
    assert forum.weaviate_id in result.failed_mirrors
    # the documents are gone even though their mirrors survived
    assert await service.store.get("forum", forum.id) is None
    assert await service.store.count_descendants("forum", forum.id) == 0
    assert index.count() == 15


async def test_delete_tolerates_missing_mirror(service, index, embedder, admin, alice):
    forum = (await service.create_content("forum", None, None, admin, title="Exams")).record
    embedder.fail = True
    thread = (await service.create_content(
        "thread", forum.id, forum.weaviate_id, alice, title="Unindexed"
    )).record
    assert not index.has("thread", thread.weaviate_id)

    result = await service.delete_content("thread", thread.id, thread.weaviate_id, alice)
    assert result.deleted["thread"] == 1
    assert not result.degraded


async def test_delete_by_stranger_is_forbidden(service, index, admin, alice, bob):
    forum = (await service.create_content("forum", None, None, admin, title="Exams")).record
    thread = (await service.create_content(
        "thread", forum.id, forum.weaviate_id, alice, title="Mine"
    )).record

    with pytest.raises(Forbidden):
        await service.delete_content("thread", thread.id, thread.weaviate_id, bob)
    assert await service.store.get("thread", thread.id) is not None
    assert index.has("thread", thread.weaviate_id)


async def test_delete_with_wrong_weaviate_id(service, admin):
    forum = (await service.create_content("forum", None, None, admin, title="Exams")).record
    with pytest.raises(NotFound):
        await service.delete_content("forum", forum.id, "another-id", admin)
    assert await service.store.get("forum", forum.id) is not None
