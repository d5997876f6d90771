# campusnet/forum/dual_write.py
"""
Writes that touch both the document store and the vector index.

There is no transaction spanning the two stores, so each helper runs the two
steps in a fixed order and reports both outcomes instead of raising. The
caller decides what a failed mirror means (usually: degraded success).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from campusnet.errors import EmbeddingFailure, ForumError, IndexWriteFailure

T = TypeVar("T")

# Failures of the secondary store. Anything else from the mirror step is a bug.
MIRROR_ERRORS = (EmbeddingFailure, IndexWriteFailure)


@dataclass
class StepResult:
    ok: bool
    error: Optional[ForumError] = None
    skipped: bool = False


@dataclass
class DualWriteResult(Generic[T]):
    primary: StepResult
    mirror: StepResult
    value: Optional[T] = None

    @property
    def degraded(self) -> bool:
        return self.primary.ok and not self.mirror.ok

    def raise_for_primary(self) -> None:
        if not self.primary.ok and self.primary.error is not None:
            raise self.primary.error


SKIPPED = StepResult(ok=False, skipped=True)


async def write_then_mirror(
    primary: Callable[[], Awaitable[T]],
    mirror: Callable[[T], Awaitable[None]],
) -> DualWriteResult[T]:
    """
    Commit the document write, then push the mirror. The mirror is skipped when
    the primary fails; a failed mirror never undoes the primary.
    """
    try:
        value = await primary()
    except ForumError as e:
        return DualWriteResult(primary=StepResult(False, e), mirror=SKIPPED)

    try:
        await mirror(value)
    except MIRROR_ERRORS as e:
        return DualWriteResult(primary=StepResult(True), mirror=StepResult(False, e), value=value)

    return DualWriteResult(primary=StepResult(True), mirror=StepResult(True), value=value)


async def mirror_then_delete(
    mirror: Callable[[], Awaitable[object]],
    primary: Callable[[], Awaitable[T]],
) -> DualWriteResult[T]:
    """
    Delete the mirror first, then the document. The document delete runs even
    when the mirror delete failed.
    """
    try:
        await mirror()
        mirror_result = StepResult(True)
    except MIRROR_ERRORS as e:
        mirror_result = StepResult(False, e)

    try:
        value = await primary()
    except ForumError as e:
        return DualWriteResult(primary=StepResult(False, e), mirror=mirror_result)

    return DualWriteResult(primary=StepResult(True), mirror=mirror_result, value=value)
