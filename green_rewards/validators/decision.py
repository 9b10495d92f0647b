"""Verification decision ladder: AI score -> (points, status)."""
import logging
import math
from typing import Mapping, Optional

from green_rewards.config.rules import (
    POINTS_CRITERIA,
    FULL_CREDIT_SCORE,
    NEEDS_IMPROVEMENT_SCORE,
    PARTIAL_CREDIT_MULTIPLIER,
    get_criteria,
)
from green_rewards.types import (
    ActionCategory,
    ActionStatus,
    AnalysisOutcome,
    AnalysisResult,
    Decision,
    PointsCriteria,
)

logger = logging.getLogger(__name__)


def clamp_score(score: float) -> int:
    """Clamp a raw score into [0, 100]."""
    return int(min(100, max(0, score)))


def decide(
    score: Optional[float],
    category: ActionCategory,
    subcategory: str,
    rules: Mapping[ActionCategory, Mapping[str, PointsCriteria]] = POINTS_CRITERIA,
) -> Decision:
    """
    Map an AI score to points and status.

    A score of None means the oracle failed. Rungs are evaluated top-down and
    the first match wins:

    1. oracle failed            -> 0 points, NEEDS_IMPROVEMENT
    2. score >= 80              -> base points, VERIFIED
    3. score >= min_score       -> floor(base * 0.6), VERIFIED
    4. score >= 40              -> 0 points, NEEDS_IMPROVEMENT
    5. otherwise                -> 0 points, REJECTED
    """
    if score is None:
        return Decision(points=0, status=ActionStatus.NEEDS_IMPROVEMENT)

    criteria = get_criteria(category, subcategory, rules)
    score = clamp_score(score)

    if score >= FULL_CREDIT_SCORE:
        return Decision(points=criteria.base_points, status=ActionStatus.VERIFIED)
    if score >= criteria.min_score:
        points = math.floor(criteria.base_points * PARTIAL_CREDIT_MULTIPLIER)
        return Decision(points=points, status=ActionStatus.VERIFIED)
    if score >= NEEDS_IMPROVEMENT_SCORE:
        return Decision(points=0, status=ActionStatus.NEEDS_IMPROVEMENT)
    return Decision(points=0, status=ActionStatus.REJECTED)


def decide_outcome(
    outcome: AnalysisOutcome,
    category: ActionCategory,
    subcategory: str,
    rules: Mapping[ActionCategory, Mapping[str, PointsCriteria]] = POINTS_CRITERIA,
) -> Decision:
    """Apply the ladder to an oracle outcome."""
    score = outcome.score if isinstance(outcome, AnalysisResult) else None
    decision = decide(score, category, subcategory, rules)
    logger.info(
        f"Decision for {ActionCategory(category).value}/{subcategory}: score={score if score is not None else 'FAILED'} "
        f"-> {decision.status.value} ({decision.points} points)"
    )
    return decision
