"""
Circuit breaker for oracle providers.
Stops calling a provider that keeps failing so submissions degrade fast instead of waiting on timeouts.
"""
import os
import time
import threading
import logging
from typing import Dict, Optional
from enum import Enum

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking requests
    HALF_OPEN = "half_open"  # Probing whether the provider recovered


class CircuitBreaker:
    """
    Circuit breaker that opens when the failure rate in a window exceeds a threshold.

    Timeouts and transport errors count as failures, not only rate limits.
    """

    def __init__(
        self,
        error_threshold: float = 0.5,
        window_duration: float = 60.0,
        cooldown_duration: float = 30.0,
        half_open_max_attempts: int = 1,
        min_errors_to_open: int = 5,
        min_requests: int = 5,
        name: str = "default"
    ):
        """
        Initialize circuit breaker.

        Args:
            error_threshold: Failure rate that opens the circuit (0.5 = 50%)
            window_duration: Time window in seconds for failure rate calculation
            cooldown_duration: How long to stay open before probing
            half_open_max_attempts: Successful probes needed to close again
            min_errors_to_open: Minimum absolute failures required before opening
            min_requests: Minimum requests in window before the rate is trusted
            name: Name for logging
        """
        self.error_threshold = error_threshold
        self.window_duration = window_duration
        self.cooldown_duration = cooldown_duration
        self.half_open_max_attempts = half_open_max_attempts
        self.min_errors_to_open = min_errors_to_open
        self.min_requests = min_requests
        self.name = name

        self.state = CircuitState.CLOSED
        self.error_count = 0
        self.success_count = 0
        self.total_requests = 0
        self.window_start = time.monotonic()
        self.open_until: Optional[float] = None
        self.half_open_successes = 0

        self._lock = threading.Lock()

        logger.info(
            f"Circuit breaker '{name}' initialized: "
            f"threshold={error_threshold*100:.1f}%, "
            f"min_errors={min_errors_to_open}, "
            f"window={window_duration}s, "
            f"cooldown={cooldown_duration}s"
        )

    def record_success(self):
        """Record a successful call."""
        with self._lock:
            self._check_window_reset()
            self.total_requests += 1
            self.success_count += 1

            if self.state == CircuitState.HALF_OPEN:
                self.half_open_successes += 1
                if self.half_open_successes >= self.half_open_max_attempts:
                    self._close()

    def record_error(self):
        """Record a failed call."""
        with self._lock:
            self._check_window_reset()
            self.total_requests += 1
            self.error_count += 1

            if self.state == CircuitState.HALF_OPEN:
                self._open("failure while half-open")
                return

            self._check_threshold()

    def can_proceed(self) -> bool:
        """
        Check if a call can proceed.

        Returns:
            True if the call can proceed, False if the circuit is open
        """
        with self._lock:
            if self.state == CircuitState.OPEN:
                if self.open_until is not None and time.monotonic() >= self.open_until:
                    self.state = CircuitState.HALF_OPEN
                    self.half_open_successes = 0
                    logger.info(f"Circuit breaker '{self.name}' HALF_OPEN: probing provider")
                    return True
                return False
            return True

    def _open(self, reason: str):
        self.state = CircuitState.OPEN
        self.open_until = time.monotonic() + self.cooldown_duration
        self.half_open_successes = 0
        logger.warning(f"Circuit breaker '{self.name}' OPEN: {reason}")

    def _close(self):
        self.state = CircuitState.CLOSED
        self.half_open_successes = 0
        self.error_count = 0
        self.success_count = 0
        self.total_requests = 0
        self.window_start = time.monotonic()
        logger.info(f"Circuit breaker '{self.name}' CLOSED: provider recovered")

    def _check_threshold(self):
        """Open the circuit if the failure rate in the window is too high."""
        if self.state != CircuitState.CLOSED or self.total_requests < self.min_requests:
            return

        error_rate = self.error_count / self.total_requests
        if error_rate >= self.error_threshold and self.error_count >= self.min_errors_to_open:
            self._open(
                f"error rate {error_rate*100:.1f}% >= threshold {self.error_threshold*100:.1f}% "
                f"({self.error_count}/{self.total_requests} failures)"
            )

    def _check_window_reset(self):
        """Reset counters once the window has expired."""
        if time.monotonic() - self.window_start > self.window_duration:
            self.error_count = 0
            self.success_count = 0
            self.total_requests = 0
            self.window_start = time.monotonic()

    def get_state(self) -> CircuitState:
        """Get current circuit state."""
        with self._lock:
            return self.state

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        with self._lock:
            error_rate = self.error_count / self.total_requests if self.total_requests else 0.0
            return {
                "state": self.state.value,
                "error_count": self.error_count,
                "success_count": self.success_count,
                "total_requests": self.total_requests,
                "error_rate": error_rate,
            }

    def reset(self):
        """Manually reset circuit breaker to CLOSED state."""
        with self._lock:
            self._close()
            self.open_until = None


_circuit_breakers: Dict[str, CircuitBreaker] = {}
_circuit_breaker_lock = threading.Lock()


def get_circuit_breaker(provider: str) -> CircuitBreaker:
    """Get or create the process-wide breaker for an oracle provider ("gemini" or "groq")."""
    with _circuit_breaker_lock:
        breaker = _circuit_breakers.get(provider)
        if breaker is None:
            prefix = provider.upper()
            breaker = CircuitBreaker(
                error_threshold=float(os.getenv(f'{prefix}_CIRCUIT_BREAKER_THRESHOLD', '0.5')),
                window_duration=float(os.getenv(f'{prefix}_CIRCUIT_BREAKER_WINDOW', '60')),
                cooldown_duration=float(os.getenv(f'{prefix}_CIRCUIT_BREAKER_COOLDOWN', '30')),
                min_errors_to_open=int(os.getenv(f'{prefix}_CIRCUIT_BREAKER_MIN_ERRORS', '5')),
                name=provider,
            )
            _circuit_breakers[provider] = breaker
        return breaker


def reset_circuit_breakers():
    """Reset all breakers (for testing)."""
    with _circuit_breaker_lock:
        for breaker in _circuit_breakers.values():
            breaker.reset()
