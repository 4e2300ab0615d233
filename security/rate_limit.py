"""Per-client fixed-window request throttle.

Buckets live in process memory and are lost on restart; this is a
defense-in-depth layer, separate from any limiter at the perimeter and from
the per-account lockout.
"""

import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from flask import current_app, request

from utils.audit import RATE_LIMITED, client_ip, log_event
from utils.errors import RateExceeded

logger = logging.getLogger(__name__)


@dataclass
class Bucket:
    count: int
    window_reset_at: float


class ThrottleCache:
    """
    Fixed-window counters keyed by client, bounded in size.

    Every window has the same length, so buckets ordered by creation are
    also ordered by expiry; expired ones are swept from the front on access
    and the oldest is evicted once ``max_keys`` is reached.
    """

    def __init__(self, max_requests: int = 100, window_seconds: float = 15 * 60, max_keys: int = 10000):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self._buckets: "OrderedDict[str, Bucket]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._buckets)

    def admit(self, key: str, now: Optional[float] = None) -> tuple[bool, int]:
        """
        Returns (allowed, retry_after_seconds).
        """
        now = time.monotonic() if now is None else now
        with self._lock:
            self._sweep(now)

            bucket = self._buckets.get(key)
            if bucket is None or now >= bucket.window_reset_at:
                self._buckets.pop(key, None)
                if len(self._buckets) >= self.max_keys:
                    self._buckets.popitem(last=False)
                self._buckets[key] = Bucket(count=1, window_reset_at=now + self.window_seconds)
                return True, 0

            bucket.count += 1
            if bucket.count > self.max_requests:
                retry_after = math.ceil(bucket.window_reset_at - now)
                return False, max(retry_after, 1)
            return True, 0

    def _sweep(self, now: float) -> None:
        # called under lock
        while self._buckets:
            key, bucket = next(iter(self._buckets.items()))
            if bucket.window_reset_at > now:
                break
            del self._buckets[key]

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)


class NullThrottle:
    """Installed when throttling is disabled: admits everything."""

    def admit(self, key: str, now: Optional[float] = None) -> tuple[bool, int]:
        return True, 0

    def reset(self, key: Optional[str] = None) -> None:
        pass

    def __len__(self) -> int:
        return 0


def build_throttle(config):
    if not config.get("THROTTLE_ENABLED", True):
        return NullThrottle()
    return ThrottleCache(
        max_requests=config.get("THROTTLE_MAX_REQUESTS", 100),
        window_seconds=config.get("THROTTLE_WINDOW_SECONDS", 15 * 60),
        max_keys=config.get("THROTTLE_MAX_KEYS", 10000),
    )


def throttle_request():
    """before_request hook: rejects the request once its client is over the limit."""
    throttle = current_app.extensions["throttle"]
    key = client_ip() or "unknown"

    allowed, retry_after = throttle.admit(key)
    if allowed:
        return None

    logger.info("Throttled %s %s from %s", request.method, request.path, key)
    log_event(RATE_LIMITED, description=f"{request.method} {request.path} retry_after={retry_after}s")
    return RateExceeded(retry_after).to_response()
