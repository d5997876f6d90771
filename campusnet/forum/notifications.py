# campusnet/forum/notifications.py
"""
Notification fan-out for thread watchers.

One Notification row per event, addressed to every watcher of the thread
except the actor. Read state is per recipient, so marking a notification read
for one user leaves it unread for everybody else.
"""
import logging
from typing import Optional

from campusnet.errors import ForumError, NotFound
from campusnet.forum.store import ForumStore
from campusnet.models.notification_model import Notification

logger = logging.getLogger(__name__)

NEW_POST = "new_post"
NEW_COMMENT = "new_comment"

MESSAGES = {
    NEW_POST: "{actor} posted in \"{thread}\"",
    NEW_COMMENT: "{actor} commented on a post in \"{thread}\"",
}


class NotificationFanout:
    def __init__(self, store: ForumStore):
        self.store = store

    async def notify(
        self,
        event: str,
        thread_id: int,
        post_id: Optional[int],
        actor_id: int,
        message_template: Optional[str] = None,
        **context,
    ) -> Optional[Notification]:
        """
        Write one notification for the watchers of ``thread_id`` other than the
        actor. Returns None when there is nobody to tell.
        """
        recipients = await self.store.watchers(thread_id) - {actor_id}
        if not recipients:
            return None

        template = message_template or MESSAGES[event]
        n = await self.store.insert_notification(
            created_by=actor_id,
            thread_id=thread_id,
            post_id=post_id,
            event=event,
            message=template.format(**context),
            recipients=recipients,
        )
        await self.store.commit(n)
        logger.info("notification %s (%s) sent to %d watchers of thread %s", n.id, event, len(recipients), thread_id)
        return n

    async def mark_read(self, notification_id: int, user_id: int) -> None:
        try:
            if not await self.store.mark_seen(notification_id, user_id):
                raise NotFound("Notification not found")
            await self.store.commit()
        except ForumError as e:
            logger.warning("op=mark-read actor=%s id=%s failed: %s", user_id, notification_id, e.msg)
            raise

    async def list_for(self, user_id: int, unread_only: bool = False) -> list[tuple[Notification, bool]]:
        return await self.store.notifications_for(user_id, unread_only=unread_only)

    async def seen_by(self, notification_id: int) -> set[int]:
        return await self.store.seen_by(notification_id)
