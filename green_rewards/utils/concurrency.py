"""
Provider-level concurrency control using semaphores.
Caps in-flight oracle calls per provider; never held across database work.
"""
import threading
import logging
import os
from typing import Dict
from contextlib import contextmanager

logger = logging.getLogger(__name__)

# Defaults per provider; overridable with <PROVIDER>_MAX_CONCURRENT
DEFAULT_MAX_CONCURRENT = {
    "gemini": 6,
    "groq": 1,
}

_semaphores: Dict[str, threading.BoundedSemaphore] = {}
_semaphore_lock = threading.Lock()


def _get_semaphore(provider: str) -> threading.BoundedSemaphore:
    """Get or create the semaphore for a provider."""
    with _semaphore_lock:
        semaphore = _semaphores.get(provider)
        if semaphore is None:
            default = DEFAULT_MAX_CONCURRENT.get(provider, 2)
            limit = int(os.getenv(f'{provider.upper()}_MAX_CONCURRENT', str(default)))
            semaphore = threading.BoundedSemaphore(limit)
            _semaphores[provider] = semaphore
            logger.info(f"{provider} concurrency semaphore initialized: max {limit} concurrent calls")
        return semaphore


@contextmanager
def oracle_concurrency_guard(provider: str, timeout: float = None):
    """
    Context manager limiting concurrent calls to one oracle provider.

    Usage:
        with oracle_concurrency_guard("gemini", timeout=30):
            response = client.models.generate_content(...)

    Raises TimeoutError if a slot does not free up within `timeout` seconds.
    """
    semaphore = _get_semaphore(provider)
    acquired = semaphore.acquire(timeout=timeout) if timeout is not None else semaphore.acquire()
    if not acquired:
        raise TimeoutError(f"Timed out waiting for a {provider} concurrency slot")
    try:
        yield
    finally:
        semaphore.release()


def reset_semaphores():
    """Reset semaphores (for testing)."""
    with _semaphore_lock:
        _semaphores.clear()
        logger.info("Concurrency semaphores reset")
