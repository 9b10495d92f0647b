"""
Scoring oracle: turns a media asset plus category context into an AnalysisResult.
Gemini is the primary provider; Groq vision is a one-shot fallback for images.
"""
import logging
from typing import Optional

from green_rewards.config.prompts import build_prompt
from green_rewards.config.rules import IMAGE_MIME_TYPES, VIDEO_MIME_TYPES
from green_rewards.errors import InvalidSubmission
from green_rewards.oracle.gemini_client import GeminiClient
from green_rewards.oracle.groq_client import GroqClient
from green_rewards.oracle.response_parser import PARSE_FAILURE_FEEDBACK, parse_analysis
from green_rewards.types import ActionCategory, AnalysisOutcome, EngineConfig, MediaType, OracleFailure

logger = logging.getLogger(__name__)


def media_type_for(mime_type: str) -> MediaType:
    """Classify a MIME type, raising InvalidSubmission if it is not accepted."""
    normalized = (mime_type or "").lower()
    if normalized in IMAGE_MIME_TYPES:
        return MediaType.IMAGE
    if normalized in VIDEO_MIME_TYPES:
        return MediaType.VIDEO
    raise InvalidSubmission(
        f"Unsupported media type: {mime_type}. Allowed: images (png, jpeg, webp, heic, heif) "
        f"and videos (mp4, mpeg, mov, avi, flv, mpg, webm, wmv, 3gpp)"
    )


def validate_submission(media_bytes: bytes, mime_type: str, category) -> MediaType:
    """Check oracle preconditions. Raises InvalidSubmission; no network involved."""
    if not media_bytes:
        raise InvalidSubmission("Media file is required")
    try:
        ActionCategory(category)
    except ValueError:
        raise InvalidSubmission(f"Unknown category: {category}")
    return media_type_for(mime_type)


class ScoringOracle:
    """Stateless adapter over the AI providers."""

    def __init__(self, gemini_client: GeminiClient, groq_client: Optional[GroqClient] = None):
        self.gemini_client = gemini_client
        self.groq_client = groq_client

    def analyze(
        self,
        media_bytes: bytes,
        mime_type: str,
        category: ActionCategory,
        subcategory: str,
        user_note: Optional[str] = None,
    ) -> AnalysisOutcome:
        """
        Score a media asset.

        Raises InvalidSubmission for caller errors. Every provider problem
        (transport, timeout, open breaker, empty or unparsable output) comes
        back as OracleFailure instead.
        """
        media_type = validate_submission(media_bytes, mime_type, category)
        category = ActionCategory(category)
        mime_type = mime_type.lower()

        try:
            prompt = build_prompt(category, subcategory, user_note)

            response_text = self.gemini_client.generate(prompt, media_bytes, mime_type)

            if response_text is None and media_type == MediaType.IMAGE and self.groq_client is not None:
                logger.warning("Gemini could not score image, trying Groq fallback")
                response_text = self.groq_client.analyze_image(prompt, media_bytes, mime_type)
                if response_text is not None:
                    logger.info("Groq fallback succeeded for image analysis")

            if response_text is None:
                return OracleFailure(reason="oracle unavailable")

            result = parse_analysis(response_text)
            if result is None:
                return OracleFailure(reason="unparsable response", feedback=PARSE_FAILURE_FEEDBACK)

            logger.info(
                f"Oracle scored {category.value}/{subcategory}: score={result.score}, "
                f"category_match={result.category_match}, labels={result.labels}"
            )
            return result

        except Exception as e:
            logger.error(f"Unexpected error during media analysis: {e}", exc_info=True)
            return OracleFailure(reason=f"unexpected error: {e}")


def build_oracle(config: EngineConfig) -> ScoringOracle:
    """Create the oracle from configuration."""
    gemini_client = GeminiClient(
        api_key=config.gemini_api_key,
        model=config.gemini_model,
        timeout_seconds=config.oracle_timeout_seconds,
        max_retries=config.oracle_max_retries,
    )
    groq_client = GroqClient(api_key=config.groq_api_key, timeout_seconds=config.oracle_timeout_seconds)
    return ScoringOracle(gemini_client, groq_client if groq_client.available else None)
