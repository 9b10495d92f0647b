"""Groq Cloud vision client, used as a last resort when Gemini cannot score an image."""
import base64
import logging
from typing import Optional

from groq import Groq

from green_rewards.utils.circuit_breaker import get_circuit_breaker
from green_rewards.utils.concurrency import oracle_concurrency_guard
from green_rewards.utils.rate_limiter import get_rate_limiter

logger = logging.getLogger(__name__)

PROVIDER = "groq"


class GroqClient:
    """Client for the Groq vision model. Single attempt, bounded by the same timeout as Gemini."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
        image_model: str = "meta-llama/llama-4-scout-17b-16e-instruct",
        client=None,
    ):
        self.image_model = image_model
        self.timeout_seconds = timeout_seconds

        if client is not None:
            self.client = client
            return

        if not api_key:
            logger.debug("Groq API key not provided; image fallback disabled")
            self.client = None
            return

        try:
            self.client = Groq(api_key=api_key, timeout=timeout_seconds, max_retries=0)
            logger.info(f"Groq fallback client initialized. Image model: {self.image_model}")
        except Exception as e:
            logger.error(f"Failed to initialize Groq client: {e}")
            self.client = None

    @property
    def available(self) -> bool:
        return self.client is not None

    def analyze_image(self, prompt: str, media_bytes: bytes, mime_type: str) -> Optional[str]:
        """Send prompt + image as a data URL. Returns response text or None."""
        if not self.client:
            return None

        circuit_breaker = get_circuit_breaker(PROVIDER)
        if not circuit_breaker.can_proceed():
            logger.warning("Circuit breaker OPEN: Groq API temporarily unavailable")
            return None

        data_url = f"data:{mime_type};base64,{base64.b64encode(media_bytes).decode('ascii')}"

        try:
            get_rate_limiter(PROVIDER).acquire(wait=True, max_wait=self.timeout_seconds)
            with oracle_concurrency_guard(PROVIDER, timeout=self.timeout_seconds):
                completion = self.client.chat.completions.create(
                    model=self.image_model,
                    messages=[
                        {
                            "role": "user",
                            "content": [
                                {"type": "text", "text": prompt},
                                {"type": "image_url", "image_url": {"url": data_url}},
                            ],
                        }
                    ],
                    temperature=0.2,
                    max_completion_tokens=1024,
                    stream=False,
                )
        except TimeoutError as e:
            logger.warning(f"Groq call skipped: {e}")
            return None
        except Exception as e:
            circuit_breaker.record_error()
            logger.warning(f"Groq API call failed: {e}")
            return None

        if completion.choices:
            content = getattr(completion.choices[0].message, 'content', None)
            if content and content.strip():
                circuit_breaker.record_success()
                return content.strip()

        circuit_breaker.record_error()
        logger.warning("Groq returned an empty response")
        return None
