import pytest

from campusnet.errors import EmbeddingFailure, IndexWriteFailure, StoreFailure
from campusnet.forum.dual_write import mirror_then_delete, write_then_mirror


async def test_write_then_mirror_success():
    calls = []

    async def primary():
        calls.append("primary")
        return 42

    async def mirror(value):
        calls.append(("mirror", value))

    result = await write_then_mirror(primary, mirror)
    assert calls == ["primary", ("mirror", 42)]
    assert result.primary.ok and result.mirror.ok
    assert result.value == 42
    assert not result.degraded


async def test_failed_mirror_keeps_primary():
    async def primary():
        return "doc"

    async def mirror(value):
        raise EmbeddingFailure()

    result = await write_then_mirror(primary, mirror)
    assert result.primary.ok
    assert not result.mirror.ok
    assert isinstance(result.mirror.error, EmbeddingFailure)
    assert result.degraded
    assert result.value == "doc"
    result.raise_for_primary()


async def test_failed_primary_skips_mirror():
    mirrored = []

    async def primary():
        raise StoreFailure()

    async def mirror(value):
        mirrored.append(value)

    result = await write_then_mirror(primary, mirror)
    assert mirrored == []
    assert result.mirror.skipped
    assert not result.degraded
    with pytest.raises(StoreFailure):
        result.raise_for_primary()


async def test_unexpected_mirror_error_propagates():
    async def primary():
        return 1

    async def mirror(value):
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        await write_then_mirror(primary, mirror)


async def test_mirror_then_delete_runs_primary_after_mirror_failure():
    order = []

    async def mirror():
        order.append("mirror")
        raise IndexWriteFailure()

    async def primary():
        order.append("primary")
        return 1

    result = await mirror_then_delete(mirror, primary)
    assert order == ["mirror", "primary"]
    assert result.primary.ok
    assert result.degraded
    assert result.value == 1


async def test_mirror_then_delete_reports_primary_failure():
    async def mirror():
        return True

    async def primary():
        raise StoreFailure()

    result = await mirror_then_delete(mirror, primary)
    assert result.mirror.ok
    assert not result.primary.ok
    with pytest.raises(StoreFailure):
        result.raise_for_primary()
