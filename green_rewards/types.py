"""Type definitions for the verification and rewards engine."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any, Union


class ActionCategory(str, Enum):
    """Main categories of green actions."""
    GREEN_WASTE = "GREEN_WASTE"
    GREEN_HOME = "GREEN_HOME"
    GREEN_CONSUMPTION = "GREEN_CONSUMPTION"
    GREEN_COMMUNITY = "GREEN_COMMUNITY"


class ActionStatus(str, Enum):
    """Verification status of a green action."""
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    NEEDS_IMPROVEMENT = "NEEDS_IMPROVEMENT"


class MediaType(str, Enum):
    """Kind of media uploaded as proof."""
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class UserRole(str, Enum):
    """User roles. Only WARGA (ordinary participants) are ranked."""
    WARGA = "WARGA"
    DLH = "DLH"
    ADMIN = "ADMIN"


class DistributionState(str, Enum):
    """Lifecycle states of a reward distribution run."""
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class DistributionStatus(str, Enum):
    """How a distribution call resolved."""
    DISTRIBUTED = "DISTRIBUTED"
    ALREADY_DISTRIBUTED = "ALREADY_DISTRIBUTED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


@dataclass
class AnalysisResult:
    """Normalized oracle analysis of a media asset."""
    score: int
    category_match: bool
    labels: List[str]
    feedback: str
    details: Dict[str, Any] = field(default_factory=dict)
    raw_response: Optional[str] = None


@dataclass
class OracleFailure:
    """The oracle did not produce a usable result."""
    reason: str
    feedback: str = "AI verification failed. Please try again."


AnalysisOutcome = Union[AnalysisResult, OracleFailure]


@dataclass(frozen=True)
class PointsCriteria:
    """Rule table entry for one subcategory."""
    base_points: int
    min_score: int


@dataclass(frozen=True)
class Decision:
    """Result of the verification decision ladder."""
    points: int
    status: ActionStatus


@dataclass
class Action:
    """A scored green action as seen by callers."""
    id: str
    user_id: str
    category: ActionCategory
    subcategory: str
    status: ActionStatus
    points: int
    media_ref: str
    media_type: MediaType
    ai_score: Optional[int] = None
    ai_labels: List[str] = field(default_factory=list)
    ai_feedback: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ActionQuery:
    """Pagination and filter options for action listings."""
    page: int = 1
    limit: int = 10
    category: Optional[ActionCategory] = None
    subcategory: Optional[str] = None
    status: Optional[ActionStatus] = None


@dataclass
class PageMeta:
    """Pagination metadata."""
    total: int
    page: int
    limit: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "PageMeta":
        total_pages = -(-total // limit) if limit > 0 else 0
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_previous_page=page > 1,
            has_next_page=page < total_pages,
        )


@dataclass
class Page:
    """A page of results with its metadata."""
    data: List[Any]
    meta: PageMeta


@dataclass
class CategoryStats:
    count: int = 0
    points: int = 0


@dataclass
class UserActionStats:
    """Aggregate statistics of one user's actions."""
    total_actions: int
    total_points: int
    verified_actions: int
    pending_actions: int
    by_category: Dict[str, CategoryStats] = field(default_factory=dict)


@dataclass
class LeaderboardEntry:
    """One ranked user."""
    rank: int
    user_id: str
    name: Optional[str]
    email: Optional[str]
    avatar_url: Optional[str]
    role: UserRole
    total_points: int
    total_actions: int


@dataclass
class UserRank:
    rank: int
    total_points: int
    total_actions: int
    percentile: int


@dataclass
class RewardWinner:
    """A bonus credited to one ranked user."""
    user_id: str
    email: Optional[str]
    name: Optional[str]
    rank: int
    previous_total: int
    bonus_points: int
    new_total: int


@dataclass
class RewardDistributionRecord:
    """Persisted outcome of one period's distribution."""
    period_key: str
    winners: List[RewardWinner]
    total_bonus_distributed: int
    distributed_at: datetime


@dataclass
class DistributionOutcome:
    """What a distribution call did."""
    state: DistributionState
    status: DistributionStatus
    period_key: str
    record: Optional[RewardDistributionRecord] = None
    message: str = ""


@dataclass
class EngineConfig:
    """Runtime configuration for the engine."""
    database_url: str = "sqlite:///./green_rewards.db"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    groq_api_key: Optional[str] = None
    oracle_timeout_seconds: float = 30.0
    oracle_max_retries: int = 3
    webhook_secret: Optional[str] = None
    reward_timezone: str = "Asia/Jakarta"
    media_dir: Path = Path("./media")
    output_dir: Path = Path("./outputs")
    log_level: str = "INFO"
