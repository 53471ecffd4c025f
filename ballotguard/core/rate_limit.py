"""Rate limiting configuration."""
import os
from slowapi import Limiter
from slowapi.util import get_remote_address


def get_client_ip(request):
    """Get client IP for rate limiting, considering proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded.split(",")[0].strip()

    return get_remote_address(request)


# Uses Redis if REDIS_URL is set (multi-instance deployments), memory otherwise
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["300/minute"],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window"
)

# Polling stations often sit behind one NAT address, so the ballot limit is
# sized for a full room submitting at once.
RATE_LIMITS = {
    "ballot": "300/minute",
    "status": "600/minute",
    "admin_login": "10/minute",
}
