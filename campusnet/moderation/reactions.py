# campusnet/moderation/reactions.py
"""
Like / dislike / report state for a single post or comment.

Per (content, user) the like state is one of neutral, liked, disliked. Both
actions toggle: liking twice returns to neutral, and liking a disliked item
moves the user across. Reporting is an independent on/off flag.

The functions here are pure; they take the freshly read sets and return the
new ones, and the store persists the difference.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Set, Tuple

LIKE = "LIKE"
DISLIKE = "DISLIKE"
REPORT = "REPORT"

NEUTRAL = "neutral"
LIKED = "liked"
DISLIKED = "disliked"


@dataclass
class ReactionSets:
    liked_by: Set[int] = field(default_factory=set)
    disliked_by: Set[int] = field(default_factory=set)
    reported_by: Set[int] = field(default_factory=set)

    @classmethod
    def from_rows(cls, rows: Iterable[Tuple[int, str]]) -> "ReactionSets":
        sets = cls()
        for user_id, kind in rows:
            sets._bucket(kind).add(int(user_id))
        return sets

    def rows(self) -> Set[Tuple[int, str]]:
        return (
            {(u, LIKE) for u in self.liked_by}
            | {(u, DISLIKE) for u in self.disliked_by}
            | {(u, REPORT) for u in self.reported_by}
        )

    def copy(self) -> "ReactionSets":
        return ReactionSets(set(self.liked_by), set(self.disliked_by), set(self.reported_by))

    def state_of(self, user_id: int) -> str:
        if user_id in self.liked_by:
            return LIKED
        if user_id in self.disliked_by:
            return DISLIKED
        return NEUTRAL

    def _bucket(self, kind: str) -> Set[int]:
        if kind == LIKE:
            return self.liked_by
        if kind == DISLIKE:
            return self.disliked_by
        if kind == REPORT:
            return self.reported_by
        raise ValueError(f"unknown reaction kind: {kind}")


def toggle_like(current: ReactionSets, user_id: int) -> ReactionSets:
    nxt = current.copy()
    if user_id in nxt.liked_by:
        nxt.liked_by.discard(user_id)
    else:
        nxt.liked_by.add(user_id)
        nxt.disliked_by.discard(user_id)
    return nxt


def toggle_dislike(current: ReactionSets, user_id: int) -> ReactionSets:
    nxt = current.copy()
    if user_id in nxt.disliked_by:
        nxt.disliked_by.discard(user_id)
    else:
        nxt.disliked_by.add(user_id)
        nxt.liked_by.discard(user_id)
    return nxt


def toggle_report(current: ReactionSets, user_id: int) -> ReactionSets:
    nxt = current.copy()
    if user_id in nxt.reported_by:
        nxt.reported_by.discard(user_id)
    else:
        nxt.reported_by.add(user_id)
    return nxt


TOGGLES = {
    LIKE: toggle_like,
    DISLIKE: toggle_dislike,
    REPORT: toggle_report,
}


def diff(before: ReactionSets, after: ReactionSets) -> Tuple[Set[Tuple[int, str]], Set[Tuple[int, str]]]:
    """Return (rows to insert, rows to delete)."""
    old, new = before.rows(), after.rows()
    return new - old, old - new
