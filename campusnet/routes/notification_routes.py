from typing import List

from fastapi import APIRouter, Depends, Query

from campusnet.deps.forum import get_forum_service
from campusnet.forum.service import ForumService
from campusnet.models.user_model import User
from campusnet.schemas.notification_schemas import MarkReadOut, NotificationOut
from campusnet.utils.token_utils import get_current_user

router = APIRouter(prefix="/forums/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationOut])
async def list_notifications(
    unread: bool = Query(False),
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    rows = await svc.notifications.list_for(user.id, unread_only=unread)
    names = await svc.store.usernames(n.created_by for n, _seen in rows)
    return [
        NotificationOut(
            id=n.id,
            event=n.event,
            message=n.message,
            thread_id=n.thread_id,
            post_id=n.post_id,
            created_by=n.created_by,
            created_by_username=names.get(n.created_by),
            created_at=str(n.created_at),
            seen=seen,
        )
        for n, seen in rows
    ]


@router.put("/{notification_id}/read", response_model=MarkReadOut)
async def mark_notification_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    svc: ForumService = Depends(get_forum_service),
):
    await svc.notifications.mark_read(notification_id, user.id)
    return MarkReadOut(id=notification_id)
