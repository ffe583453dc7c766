"""
api/limiter.py -- Fixed-window rate limiting per client address and route class.

RateLimiter is built once in create_app() from Settings and stored on
app.state.rate_limiter. Every request that hits a limited route shares that
one instance, so all routes see the same counters. A per-module instance
would give each module an isolated counter and limits would never trigger.

Counters live in a `limits` storage backend (memory:// by default, any
limits storage URI such as redis:// in a multi-process deployment). The
fixed-window strategy's hit() is one atomic increment-and-compare per key,
so two concurrent requests cannot both slip under the limit on a stale read.

Keys are (route class, client address), so the login budget and the general
API budget are counted independently for the same client. The client
address comes from slowapi's get_remote_address().

The RateLimit dependency leaves the last RateLimitStatus on
request.state.rate_limit; api/main.py turns it into RateLimit-Limit,
RateLimit-Remaining and RateLimit-Reset response headers. A 429 carries the
same headers, built from the RateLimited error, plus Retry-After.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum

from fastapi import Request
from limits import RateLimitItem, parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address

from auth.errors import RateLimited

logger = logging.getLogger("marketplace.ratelimit")


class RouteClass(str, Enum):
    general = "general"
    login = "login"
    register = "register"


_LIMIT_MESSAGES = {
    RouteClass.general: "Too many requests, please try again later",
    RouteClass.login: "Too many authentication attempts, try again later",
    RouteClass.register: "Too many registration attempts, try again later",
}


@dataclass(frozen=True)
class RateLimitStatus:
    """Counter state after a successful hit."""

    limit: int
    remaining: int
    reset_at: float


def seconds_until(reset_at: float) -> int:
    return max(0, math.ceil(reset_at - time.time()))


def rate_limit_headers(limit: int, remaining: int, reset_at: float) -> dict[str, str]:
    """Standard RateLimit-* headers; RateLimit-Reset is seconds until the window rolls over."""
    return {
        "RateLimit-Limit": str(limit),
        "RateLimit-Remaining": str(remaining),
        "RateLimit-Reset": str(seconds_until(reset_at)),
    }


class RateLimiter:
    """Fixed-window counters keyed by (route class, client).

    Usage:
        limiter = RateLimiter({RouteClass.login: "5/15minutes"})
        limiter.hit(RouteClass.login, "203.0.113.7")   # raises RateLimited when exhausted
    """

    def __init__(self, limits_by_class: dict[RouteClass, str], storage_uri: str = "memory://") -> None:
        self._items: dict[RouteClass, RateLimitItem] = {
            RouteClass(route_class): parse(rate) for route_class, rate in limits_by_class.items()
        }
        self._storage = storage_from_string(storage_uri)
        self._strategy = FixedWindowRateLimiter(self._storage)
        # Serializes increment-and-compare within this process. Shared
        # backends (redis://) are atomic on the server side as well.
        self._lock = threading.Lock()

    def hit(self, route_class: RouteClass, client: str) -> RateLimitStatus:
        """Count one request. Raise RateLimited if it exceeds the window's budget.

        A rejected request still increments the counter; the window reset is
        the only thing that clears it.
        """
        item = self._items[route_class]
        with self._lock:
            allowed = self._strategy.hit(item, route_class.value, client)
            reset_at, remaining = self._strategy.get_window_stats(item, route_class.value, client)
        if not allowed:
            retry_after = seconds_until(reset_at)
            logger.warning(
                "Rate limit exceeded: class=%s client=%s limit=%s retry_after=%ds",
                route_class.value,
                client,
                item,
                retry_after,
            )
            raise RateLimited(
                _LIMIT_MESSAGES[route_class],
                limit=item.amount,
                reset_at=reset_at,
                retry_after=retry_after,
            )
        return RateLimitStatus(limit=item.amount, remaining=remaining, reset_at=reset_at)

    def reset(self) -> None:
        """Clear all counters."""
        self._storage.reset()


class RateLimit:
    """FastAPI dependency that gates a route (or router) on one route class.

    Use as:
        router = APIRouter(dependencies=[Depends(RateLimit(RouteClass.general))])
        @router.post("/auth/login", dependencies=[Depends(RateLimit(RouteClass.login))])
    """

    def __init__(self, route_class: RouteClass) -> None:
        self.route_class = route_class

    def __call__(self, request: Request) -> None:
        limiter: RateLimiter = request.app.state.rate_limiter
        status = limiter.hit(self.route_class, get_remote_address(request))
        request.state.rate_limit = status
