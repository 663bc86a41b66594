from slowapi import Limiter
from slowapi.util import get_remote_address

from smartbudget.core.config import settings

# Backed by Redis so limits are shared between workers
limiter = Limiter(key_func=get_remote_address, storage_uri=settings.redis_url)
