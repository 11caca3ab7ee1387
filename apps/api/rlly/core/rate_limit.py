"""Per-caller rate limit for the trigger endpoint.

Triggers come from Rlly's own backend services, so callers are told apart by
address. X-Forwarded-For is only honoured for the hops our proxies add;
anything further left is client supplied and ignored.
"""

from slowapi import Limiter
from starlette.requests import Request

from rlly.core.config import settings


def trigger_caller_key(request: Request) -> str:
    peer = request.client.host if request.client else "127.0.0.1"
    hops = settings.trusted_proxy_hops
    if hops <= 0:
        return peer
    header = request.headers.get("X-Forwarded-For", "")
    forwarded = [part.strip() for part in header.split(",") if part.strip()]
    if not forwarded:
        return peer
    return forwarded[-min(hops, len(forwarded))]


limiter = Limiter(key_func=trigger_caller_key)
