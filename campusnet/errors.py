"""
Error taxonomy for the forum engine.

Every error carries the HTTP status it maps to and a short message that is safe
to show to the client. Internal details go to the log, never into ``msg``.
"""
from typing import Optional


class ForumError(Exception):
    status_code = 500
    default_msg = "Something went wrong"

    def __init__(self, msg: Optional[str] = None):
        self.msg = msg or self.default_msg
        super().__init__(self.msg)


class Unauthorized(ForumError):
    status_code = 401
    default_msg = "Not authenticated"


class Forbidden(ForumError):
    status_code = 403
    default_msg = "Not allowed"


class NotFound(ForumError):
    status_code = 404
    default_msg = "Not found"


class InvalidOperation(ForumError):
    status_code = 400
    default_msg = "Invalid operation"


class EmbeddingFailure(ForumError):
    status_code = 502
    default_msg = "Could not compute embedding"


class IndexWriteFailure(ForumError):
    status_code = 502
    default_msg = "Search index is unavailable"


class StoreFailure(ForumError):
    status_code = 503
    default_msg = "Database is unavailable"
