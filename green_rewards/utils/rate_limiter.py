"""
Rolling-window rate limiter for oracle providers.
Spaces out requests so bursts of submissions stay under the provider's RPM quota.
"""
import os
import time
import threading
import random
from collections import deque
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)

# Provider defaults, overridable with <PROVIDER>_RPM_LIMIT
DEFAULT_RPM = {
    "gemini": 60,
    "groq": 25,
}


class TokenBucketRateLimiter:
    """
    Tracks requests in a 60 second rolling window and computes the delay
    needed to stay under the limit. Jitter keeps concurrent workers from
    waking up in lockstep.
    """

    def __init__(
        self,
        requests_per_minute: int = 15,
        safety_factor: float = 0.9,
        jitter_enabled: bool = True,
        jitter_min: float = 0.9,
        jitter_max: float = 1.6,
        name: str = "default"
    ):
        effective_safety = min(safety_factor, 0.95)
        self.requests_per_minute = max(1, int(requests_per_minute * effective_safety))
        self.safety_factor = safety_factor
        self.jitter_enabled = jitter_enabled
        self.jitter_min = jitter_min
        self.jitter_max = jitter_max
        self.name = name

        self._request_times: deque = deque(maxlen=self.requests_per_minute * 2)
        self._lock = threading.Lock()
        self._last_request_time: float = 0.0

        jitter_str = f"jitter: {jitter_min}-{jitter_max}x" if jitter_enabled else "no jitter"
        logger.info(
            f"Rate limiter '{name}' initialized: {self.requests_per_minute} RPM "
            f"(safety: {safety_factor*100:.0f}%), {jitter_str}"
        )

    def compute_delay(self, now: Optional[float] = None) -> float:
        """Delay in seconds the next request would need. Does not record anything."""
        with self._lock:
            return self._compute_delay_locked(time.monotonic() if now is None else now)

    def _compute_delay_locked(self, now: float) -> float:
        cutoff_time = now - 60.0
        while self._request_times and self._request_times[0] < cutoff_time:
            self._request_times.popleft()

        if len(self._request_times) >= self.requests_per_minute:
            oldest_request = self._request_times[0]
            delay = max(0.0, (oldest_request + 60.0) - now + 0.1)
            logger.debug(
                f"Rate limit '{self.name}' reached "
                f"({len(self._request_times)}/{self.requests_per_minute}), waiting {delay:.2f}s"
            )
            return delay

        min_interval = 60.0 / self.requests_per_minute
        time_since_last = now - self._last_request_time
        if time_since_last < min_interval:
            return min_interval - time_since_last
        return 0.0

    def acquire(self, wait: bool = True, max_wait: Optional[float] = None) -> float:
        """
        Acquire permission to make a request.

        Args:
            wait: Sleep for the computed delay before returning
            max_wait: Give up (TimeoutError) if the delay would exceed this many seconds

        Returns:
            Delay that was applied (or would be applied) in seconds
        """
        with self._lock:
            now = time.monotonic()
            delay = self._compute_delay_locked(now)

            if self.jitter_enabled and delay > 0:
                delay = delay * random.uniform(self.jitter_min, self.jitter_max)

            if max_wait is not None and delay > max_wait:
                raise TimeoutError(
                    f"Rate limiter '{self.name}' needs {delay:.2f}s, exceeds remaining budget {max_wait:.2f}s"
                )

            # Reserve the slot at the time the request will actually go out
            request_time = now + delay
            self._request_times.append(request_time)
            self._last_request_time = request_time

        if wait and delay > 0:
            time.sleep(delay)
        return delay

    def get_available_quota(self) -> int:
        """Number of requests available in the current window."""
        with self._lock:
            return max(0, self.requests_per_minute - len(self._request_times))

    def reset(self):
        """Clear request history."""
        with self._lock:
            self._request_times.clear()
            self._last_request_time = 0.0
            logger.info(f"Rate limiter '{self.name}' reset")


_rate_limiters: Dict[str, TokenBucketRateLimiter] = {}
_rate_limiter_lock = threading.Lock()


def get_rate_limiter(provider: str) -> TokenBucketRateLimiter:
    """Get or create the process-wide rate limiter for an oracle provider."""
    with _rate_limiter_lock:
        limiter = _rate_limiters.get(provider)
        if limiter is None:
            prefix = provider.upper()
            limiter = TokenBucketRateLimiter(
                requests_per_minute=int(os.getenv(f'{prefix}_RPM_LIMIT', str(DEFAULT_RPM.get(provider, 15)))),
                safety_factor=float(os.getenv(f'{prefix}_RATE_LIMIT_SAFETY_FACTOR', '0.9')),
                jitter_enabled=os.getenv(f'{prefix}_JITTER_ENABLED', 'true').lower() == 'true',
                name=provider,
            )
            _rate_limiters[provider] = limiter
        return limiter


def reset_rate_limiters():
    """Reset all rate limiters (for testing)."""
    with _rate_limiter_lock:
        for limiter in _rate_limiters.values():
            limiter.reset()
