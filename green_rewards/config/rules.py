"""Hardcoded point rules and scoring thresholds."""
from types import MappingProxyType
from typing import Dict, Mapping

from green_rewards.types import ActionCategory, PointsCriteria


# Category -> subcategory -> base points and minimum AI score for partial credit
_POINTS_CRITERIA: Dict[ActionCategory, Dict[str, PointsCriteria]] = {
    ActionCategory.GREEN_WASTE: {
        "ORGANIC_WASTE": PointsCriteria(base_points=50, min_score=60),
        "INORGANIC_RECYCLE": PointsCriteria(base_points=50, min_score=60),
        "HAZARDOUS_WASTE": PointsCriteria(base_points=70, min_score=75),
    },
    ActionCategory.GREEN_HOME: {
        "PLANT_TREE": PointsCriteria(base_points=60, min_score=70),
        "URBAN_FARMING": PointsCriteria(base_points=50, min_score=65),
        "GREEN_CORNER": PointsCriteria(base_points=40, min_score=60),
    },
    ActionCategory.GREEN_CONSUMPTION: {
        "ORGANIC_PRODUCT": PointsCriteria(base_points=30, min_score=60),
        "REFILL_STATION": PointsCriteria(base_points=35, min_score=60),
        "REUSABLE_ITEMS": PointsCriteria(base_points=25, min_score=55),
    },
    ActionCategory.GREEN_COMMUNITY: {
        "COMMUNITY_CLEANUP": PointsCriteria(base_points=80, min_score=70),
        "RIVER_CLEANUP": PointsCriteria(base_points=90, min_score=70),
        "CAR_FREE_DAY": PointsCriteria(base_points=60, min_score=65),
        "OTHER_COLLECTIVE": PointsCriteria(base_points=50, min_score=60),
    },
}

# Read-only view loaded once per process
POINTS_CRITERIA: Mapping[ActionCategory, Mapping[str, PointsCriteria]] = MappingProxyType(
    {category: MappingProxyType(subs) for category, subs in _POINTS_CRITERIA.items()}
)

# Used when a subcategory is not in the table
DEFAULT_CRITERIA = PointsCriteria(base_points=30, min_score=60)

# Decision ladder cut lines
FULL_CREDIT_SCORE = 80
NEEDS_IMPROVEMENT_SCORE = 40
PARTIAL_CREDIT_MULTIPLIER = 0.6

# Daily leaderboard bonus by rank
DAILY_BONUS_POINTS: Mapping[int, int] = MappingProxyType({1: 15, 2: 10, 3: 5})
TOP_USERS_COUNT = 3

# MIME types the oracle accepts
IMAGE_MIME_TYPES = frozenset({
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/heic",
    "image/heif",
})
VIDEO_MIME_TYPES = frozenset({
    "video/mp4",
    "video/mpeg",
    "video/mov",
    "video/avi",
    "video/x-flv",
    "video/mpg",
    "video/webm",
    "video/wmv",
    "video/3gpp",
})


def get_criteria(
    category: ActionCategory,
    subcategory: str,
    rules: Mapping[ActionCategory, Mapping[str, PointsCriteria]] = POINTS_CRITERIA,
) -> PointsCriteria:
    """Get criteria for a subcategory, falling back to the default entry."""
    return rules.get(category, {}).get(subcategory, DEFAULT_CRITERIA)


def get_subcategories(category: ActionCategory) -> list:
    """List known subcategories for a category."""
    return list(POINTS_CRITERIA.get(category, {}).keys())
