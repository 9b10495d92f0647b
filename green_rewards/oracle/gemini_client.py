"""Gemini API client for multimodal scoring of green action evidence."""
import logging
import re
import time
from typing import Optional

from google import genai
from google.genai import types

from green_rewards.utils.circuit_breaker import get_circuit_breaker
from green_rewards.utils.concurrency import oracle_concurrency_guard
from green_rewards.utils.rate_limiter import get_rate_limiter

logger = logging.getLogger(__name__)

PROVIDER = "gemini"


def is_rate_limit_error(error_str: str) -> bool:
    """True for 429 / quota style errors."""
    lowered = error_str.lower()
    return (
        '429' in error_str or
        'quota' in lowered or
        'rate limit' in lowered or
        'resource_exhausted' in lowered
    )


def extract_retry_delay(error_str: str) -> Optional[float]:
    """Extract retry delay from error message."""
    # Patterns like "retry_delay { seconds: 49 }" or "retry in 49.42s"
    patterns = [
        r'retry_delay\s*\{\s*seconds:\s*(\d+)',
        r'retry in (\d+\.?\d*)\s*s',
        r'try again in (\d+\.?\d*)\s*s',
        r'retry after (\d+\.?\d*)\s*s',
    ]

    for pattern in patterns:
        match = re.search(pattern, error_str, re.IGNORECASE)
        if match:
            try:
                return float(match.group(1))
            except (ValueError, IndexError):
                continue

    return None


class GeminiClient:
    """
    Thin wrapper around google-genai with the resilience the scoring path needs.

    Every call is bounded: a per-request HTTP timeout, an overall deadline that
    covers retries and backoff, the shared circuit breaker, the rate limiter
    and the concurrency semaphore. `generate` returns text or None; it never raises.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        deadline_seconds: Optional[float] = None,
        client=None,
    ):
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        # Overall budget across attempts, including backoff sleeps
        self.deadline_seconds = deadline_seconds or timeout_seconds * self.max_retries

        if client is not None:
            self.client = client
        elif not api_key:
            logger.warning("Gemini API key not provided. Set GEMINI_API_KEY environment variable.")
            self.client = None
        else:
            try:
                self.client = genai.Client(
                    api_key=api_key,
                    http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
                )
                logger.info(f"Gemini client initialized. Model: {self.model}")
            except Exception as e:
                logger.error(f"Failed to initialize Gemini client: {e}")
                self.client = None

    @property
    def available(self) -> bool:
        return self.client is not None

    def _build_contents(self, prompt: str, media_bytes: bytes, mime_type: str):
        parts = [
            types.Part.from_bytes(data=media_bytes, mime_type=mime_type),
            types.Part.from_text(text=prompt),
        ]
        return [types.Content(role="user", parts=parts)]

    @staticmethod
    def _response_text(response) -> str:
        text = getattr(response, 'text', None)
        if text:
            return text
        candidates = getattr(response, 'candidates', None)
        if candidates:
            content = getattr(candidates[0], 'content', None)
            parts = getattr(content, 'parts', None)
            if parts and getattr(parts[0], 'text', None):
                return parts[0].text
        return ""

    def generate(self, prompt: str, media_bytes: bytes, mime_type: str) -> Optional[str]:
        """
        Send prompt + media to Gemini.

        Returns:
            Response text, or None if every attempt failed or the budget ran out
        """
        if not self.client:
            logger.warning("Gemini client not available")
            return None

        circuit_breaker = get_circuit_breaker(PROVIDER)
        rate_limiter = get_rate_limiter(PROVIDER)
        deadline = time.monotonic() + self.deadline_seconds
        contents = self._build_contents(prompt, media_bytes, mime_type)

        for attempt in range(self.max_retries):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(f"Gemini deadline of {self.deadline_seconds:.0f}s exhausted after {attempt} attempts")
                return None

            if not circuit_breaker.can_proceed():
                logger.warning("Circuit breaker OPEN: Gemini API temporarily unavailable")
                return None

            try:
                rate_limiter.acquire(wait=True, max_wait=remaining)
                with oracle_concurrency_guard(PROVIDER, timeout=max(0.0, deadline - time.monotonic())):
                    response = self.client.models.generate_content(
                        model=self.model,
                        contents=contents,
                    )

                # Extract text outside the semaphore
                response_text = self._response_text(response).strip()
                if response_text:
                    circuit_breaker.record_success()
                    return response_text

                logger.warning(f"Gemini returned an empty response (attempt {attempt + 1}/{self.max_retries})")
                circuit_breaker.record_error()

            except TimeoutError as e:
                # Local budget exhausted while waiting for a slot; provider is not at fault
                logger.warning(f"Gemini call skipped: {e}")
                return None

            except Exception as e:
                error_str = str(e)
                circuit_breaker.record_error()

                if is_rate_limit_error(error_str):
                    retry_delay = extract_retry_delay(error_str)
                    # Exponential backoff: 2s, 4s, 8s ... capped at 60s
                    delay = retry_delay if retry_delay else min(2.0 * (2 ** attempt), 60)
                    logger.warning(
                        f"Gemini rate limit hit. Waiting {delay:.1f}s before retry "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                else:
                    delay = 1.0
                    logger.warning(f"Gemini API call failed (attempt {attempt + 1}/{self.max_retries}): {e}")

                if attempt < self.max_retries - 1:
                    sleep_for = min(delay, deadline - time.monotonic())
                    if sleep_for <= 0:
                        logger.warning("Gemini deadline exhausted before retry")
                        return None
                    time.sleep(sleep_for)

        logger.error("All Gemini API retry attempts failed")
        return None
