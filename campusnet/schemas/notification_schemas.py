from pydantic import BaseModel
from typing import Optional


class NotificationOut(BaseModel):
    id: int
    event: str
    message: str
    thread_id: int
    post_id: Optional[int] = None
    created_by: Optional[int] = None
    created_by_username: Optional[str] = None
    created_at: str
    seen: bool = False


class MarkReadOut(BaseModel):
    id: int
    seen: bool = True
