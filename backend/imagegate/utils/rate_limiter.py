"""Rate limiting utilities using slowapi."""
from slowapi import Limiter
from slowapi.util import get_remote_address

from imagegate.config import get_settings

# Create limiter instance
limiter = Limiter(key_func=get_remote_address)


def rate_limit_default():
    """Default rate limit decorator."""
    return limiter.limit(lambda: get_settings().rate_limit_default)


def rate_limit_generate():
    """Rate limit for the paid generation endpoint."""
    return limiter.limit(lambda: get_settings().rate_limit_generate)
