"""Orchestration: wiring of engine services and the submission pipeline."""
import logging
import time
from dataclasses import dataclass
from typing import Optional

from green_rewards.db.database import Database
from green_rewards.leaderboard.distribution import NotificationSender, RewardDistributionJob
from green_rewards.leaderboard.ranking import RankingService
from green_rewards.ledger.action_ledger import ActionLedger
from green_rewards.oracle.scoring_oracle import ScoringOracle, build_oracle, validate_submission
from green_rewards.types import Action, ActionCategory, AnalysisResult, EngineConfig
from green_rewards.utils.file_operations import LocalMediaStore, MediaStore

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """All engine services sharing one database."""
    config: EngineConfig
    database: Database
    ledger: ActionLedger
    ranking: RankingService
    distribution: RewardDistributionJob
    oracle: ScoringOracle
    media_store: MediaStore

    def close(self) -> None:
        self.distribution.shutdown()
        self.database.dispose()


def build_engine(
    config: EngineConfig,
    oracle: Optional[ScoringOracle] = None,
    media_store: Optional[MediaStore] = None,
    notifier: Optional[NotificationSender] = None,
) -> Engine:
    """Create and initialize every service from configuration."""
    database = Database(config.database_url)
    database.init()
    ledger = ActionLedger(database)
    ranking = RankingService(database)
    distribution = RewardDistributionJob(
        database,
        ledger,
        ranking,
        notifier=notifier,
        reward_timezone=config.reward_timezone,
    )
    return Engine(
        config=config,
        database=database,
        ledger=ledger,
        ranking=ranking,
        distribution=distribution,
        oracle=oracle or build_oracle(config),
        media_store=media_store or LocalMediaStore(config.media_dir),
    )


def process_submission(
    engine: Engine,
    user_id: str,
    media_bytes: bytes,
    mime_type: str,
    category: ActionCategory,
    subcategory: str,
    description: Optional[str] = None,
) -> Action:
    """
    Run one submission through the pipeline: store media, score it, decide, record.

    The oracle call happens before any transaction opens, so a slow provider
    never holds a database connection.
    """
    start_time = time.time()
    logger.info("=" * 80)
    logger.info(f"Processing submission from user {user_id}: {category}/{subcategory}")
    logger.info("=" * 80)

    media_type = validate_submission(media_bytes, mime_type, category)
    engine.ledger.require_user(user_id)

    media_ref = engine.media_store.save(media_bytes, mime_type)

    try:
        outcome = engine.oracle.analyze(media_bytes, mime_type, category, subcategory, user_note=description)
        if not isinstance(outcome, AnalysisResult):
            logger.warning(f"Oracle failure for user {user_id}: {outcome.reason}")

        action = engine.ledger.submit(
            user_id=user_id,
            category=category,
            subcategory=subcategory,
            media_ref=media_ref,
            outcome=outcome,
            media_type=media_type,
            description=description,
        )
    except Exception as e:
        # No action references the upload
        logger.error(f"Submission from user {user_id} failed, discarding media {media_ref}: {e}")
        engine.media_store.delete(media_ref)
        raise

    elapsed = time.time() - start_time
    logger.info(f"Submission {action.id} finished in {elapsed:.2f}s: {action.status.value}, {action.points} points")
    return action


def retry_verification(engine: Engine, action_id: str, requester_id: str) -> Action:
    """Re-verification entry point. Currently validates and returns the action unchanged."""
    action = engine.ledger.retry(action_id, requester_id)
    logger.info(f"Retry requested for action {action_id} ({action.status.value}); returned unchanged")
    return action
