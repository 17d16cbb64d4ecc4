"""
Request signing and rate limiting for the HTTP surface.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import math
import threading
import time
from typing import Any, Dict, Optional, Tuple

# Signed requests older (or newer) than this are rejected as replays.
MAX_CLOCK_SKEW_MS = 5 * 60 * 1000


def stable_json(payload: Any) -> str:
    """
    Serialize with sorted keys and compact separators so client and server
    sign byte-identical text.
    """

    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sign(secret: str, timestamp: str, payload: Any) -> str:
    message = f"{timestamp}.{stable_json(payload)}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    payload: Any,
    timestamp: Optional[str],
    signature: Optional[str],
    now_ms: Optional[float] = None,
) -> bool:
    """
    Check an ``x-ttc-signature`` header against the body.

    An empty secret disables signing and every request passes.
    """

    if not secret:
        return True
    if not timestamp or not signature:
        return False
    try:
        sent_ms = float(timestamp)
    except ValueError:
        return False
    now_ms = time.time() * 1000 if now_ms is None else now_ms
    if not math.isfinite(sent_ms) or abs(now_ms - sent_ms) > MAX_CLOCK_SKEW_MS:
        return False
    expected = sign(secret, timestamp, payload)
    return hmac.compare_digest(expected, signature.strip().lower())


class TokenBucketLimiter:
    """
    Per-client token bucket refilled linearly over one minute.
    """

    def __init__(self, *, requests_per_minute: int, refill_seconds: float = 60.0) -> None:
        self._capacity = float(max(1, requests_per_minute))
        self._refill_seconds = refill_seconds
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._lock = threading.Lock()

    def acquire(self, key: str, now: Optional[float] = None) -> Tuple[bool, int]:
        """
        Take one token for ``key``.

        Buckets that have refilled to capacity are dropped first, so idle
        clients are not tracked.

        Returns:
            ``(allowed, retry_after_seconds)``; retry_after is 0 when allowed.
        """

        with self._lock:
            now = time.monotonic() if now is None else now
            self._prune(now)
            tokens, updated = self._buckets.get(key, (self._capacity, now))
            tokens = self._refill(tokens, updated, now)

            if tokens >= 1:
                self._buckets[key] = (tokens - 1, now)
                return True, 0

            self._buckets[key] = (tokens, now)
            retry_after = math.ceil((1 - tokens) / self._capacity * self._refill_seconds)
            return False, max(1, retry_after)

    def _refill(self, tokens: float, updated: float, now: float) -> float:
        elapsed = max(0.0, now - updated)
        return min(self._capacity, tokens + elapsed / self._refill_seconds * self._capacity)

    def _prune(self, now: float) -> None:
        full = [
            key for key, (tokens, updated) in self._buckets.items()
            if self._refill(tokens, updated, now) >= self._capacity
        ]
        for key in full:
            del self._buckets[key]

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._buckets)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
