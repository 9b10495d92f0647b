"""Defensive JSON extraction from model responses."""
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from green_rewards.types import AnalysisResult
from green_rewards.validators.decision import clamp_score

logger = logging.getLogger(__name__)

DEFAULT_FEEDBACK = "Verification completed."
PARSE_FAILURE_FEEDBACK = "Could not parse verification result. Please try again."

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Pull a JSON object out of free-form model output.

    Tries, in order: a fenced ```json block, the bare text, and the span from
    the first '{' to the last '}'. Returns None if none of them is an object.
    """
    if not text:
        return None

    candidates = []
    fence = _FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1).strip())
    candidates.append(text.strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _coerce_score(value: Any) -> int:
    # bool is an int subclass; a boolean score is not a score
    if isinstance(value, bool) or value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    return clamp_score(number)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _coerce_labels(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def parse_analysis(text: str) -> Optional[AnalysisResult]:
    """Normalize a model response into an AnalysisResult, or None if no JSON object was found."""
    parsed = extract_json(text)
    if parsed is None:
        logger.warning(f"Could not extract JSON from oracle response: {text[:200]!r}")
        return None

    feedback = parsed.get("feedback")
    details = parsed.get("detectedItems")
    return AnalysisResult(
        score=_coerce_score(parsed.get("score")),
        category_match=_coerce_bool(parsed.get("categoryMatch")),
        labels=_coerce_labels(parsed.get("labels")),
        feedback=feedback.strip() if isinstance(feedback, str) and feedback.strip() else DEFAULT_FEEDBACK,
        details=details if isinstance(details, dict) else {},
        raw_response=text,
    )
