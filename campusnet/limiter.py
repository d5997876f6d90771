from slowapi import Limiter
from slowapi.util import get_remote_address

from campusnet.config import RATELIMIT_ENABLED

limiter = Limiter(key_func=get_remote_address, enabled=RATELIMIT_ENABLED)
# slowapi re-reads its own RATELIMIT_ENABLED setting as a raw string on init
limiter.enabled = RATELIMIT_ENABLED
