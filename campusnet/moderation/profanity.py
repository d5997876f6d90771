# campusnet/moderation/profanity.py
from __future__ import annotations

import re

from campusnet.errors import InvalidOperation

BAD_WORDS = {
    # keep lowercase; single tokens only here
    "ass",
    "fuck",
    "shit",
    "bitch",
    "bastard",
}

_patterns = [
    re.compile(rf"(?i)(?:^|(?<=\W))({re.escape(w)})(?=$|\W)", re.UNICODE)
    for w in BAD_WORDS
]


def contains_profanity(text: str) -> str | None:
    t = text or ""
    for pat in _patterns:
        m = pat.search(t)
        if m:
            return m.group(1)
    return None


def ensure_clean(*texts: str | None, field: str = "Content") -> None:
    for text in texts:
        if text and contains_profanity(text):
            raise InvalidOperation(f"{field} contains inappropriate language.")
