# campusnet/deps/admin.py
import logging

from fastapi import Depends

from campusnet.errors import Forbidden
from campusnet.forum.service import is_admin
from campusnet.models.user_model import User
from campusnet.utils.token_utils import get_current_user

logger = logging.getLogger(__name__)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """
    Moderator-only routes. Raises Forbidden (403) for everyone else.
    """
    if not is_admin(user):
        logger.warning("op=admin-route actor=%s denied (role=%s)", user.id, user.role)
        raise Forbidden("Admin access required")
    return user
