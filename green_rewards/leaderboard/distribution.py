"""
Periodic leaderboard reward distribution.

The period row is inserted first, inside the same transaction that credits the
winners. The unique period_key makes that insert the cross-process claim: a
second worker fails the insert, rolls back, and reports the first worker's record.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from green_rewards.config.rules import DAILY_BONUS_POINTS, TOP_USERS_COUNT
from green_rewards.db.database import Database
from green_rewards.db.models import RewardDistributionModel
from green_rewards.errors import DistributionConflict, InvalidSubmission
from green_rewards.leaderboard.ranking import RankingService
from green_rewards.ledger.action_ledger import ActionLedger
from green_rewards.types import (
    DistributionOutcome,
    DistributionState,
    DistributionStatus,
    RewardDistributionRecord,
    RewardWinner,
)

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    def send(self, recipient: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationSender:
    """Default sender: writes the reward e-mail payload to the log."""

    def send(self, recipient: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Reward notification for {recipient}: {payload}")


def to_record(model: RewardDistributionModel) -> RewardDistributionRecord:
    return RewardDistributionRecord(
        period_key=model.period_key,
        winners=[RewardWinner(**winner) for winner in (model.winners or [])],
        total_bonus_distributed=model.total_bonus_distributed,
        distributed_at=model.distributed_at,
    )


def validate_period_key(period_key: str) -> str:
    """Period keys are ISO dates (YYYY-MM-DD)."""
    try:
        return date.fromisoformat(period_key).isoformat()
    except (TypeError, ValueError):
        raise InvalidSubmission(f"Invalid period key: {period_key!r} (expected YYYY-MM-DD)")


class RewardDistributionJob:
    """Pays the daily bonus to the top ranked users, at most once per period."""

    def __init__(
        self,
        database: Database,
        ledger: ActionLedger,
        ranking: RankingService,
        notifier: Optional[NotificationSender] = None,
        reward_timezone: str = "Asia/Jakarta",
        bonus_table: Mapping[int, int] = DAILY_BONUS_POINTS,
        top_n: int = TOP_USERS_COUNT,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.database = database
        self.ledger = ledger
        self.ranking = ranking
        self.notifier = notifier or LoggingNotificationSender()
        self.tz = ZoneInfo(reward_timezone)
        self.bonus_table = bonus_table
        self.top_n = top_n
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="reward-notify")
        self._pending: List[Future] = []

    def current_period_key(self, now: Optional[datetime] = None) -> str:
        """Today's date in the reward timezone."""
        now = now or datetime.now(timezone.utc)
        return now.astimezone(self.tz).date().isoformat()

    def get_record(self, period_key: str) -> Optional[RewardDistributionRecord]:
        with self.database.session() as session:
            model = session.execute(
                select(RewardDistributionModel).where(RewardDistributionModel.period_key == period_key)
            ).scalar_one_or_none()
            return to_record(model) if model is not None else None

    def distribute(self, period_key: Optional[str] = None) -> DistributionOutcome:
        """
        Run the distribution for a period (default: today).

        Returns a DistributionOutcome; only a malformed period_key raises.
        """
        period_key = validate_period_key(period_key) if period_key else self.current_period_key()
        logger.info("=" * 80)
        logger.info(f"Starting leaderboard reward distribution for period {period_key}")
        logger.info("=" * 80)

        existing = self.get_record(period_key)
        if existing is not None:
            logger.info(f"Rewards for {period_key} already distributed at {existing.distributed_at}")
            return DistributionOutcome(
                state=DistributionState.COMPLETED,
                status=DistributionStatus.ALREADY_DISTRIBUTED,
                period_key=period_key,
                record=existing,
                message=f"Rewards for {period_key} were already distributed",
            )

        top_users = self.ranking.top(self.top_n)
        if not top_users:
            logger.info("No users with points. Skipping reward distribution.")
            return DistributionOutcome(
                state=DistributionState.COMPLETED,
                status=DistributionStatus.SKIPPED,
                period_key=period_key,
                message="No eligible users",
            )

        try:
            record = self._credit_winners(period_key, top_users)
        except (DistributionConflict, IntegrityError):
            logger.warning(f"Distribution for {period_key} was claimed by another worker")
            return DistributionOutcome(
                state=DistributionState.COMPLETED,
                status=DistributionStatus.ALREADY_DISTRIBUTED,
                period_key=period_key,
                record=self.get_record(period_key),
                message=f"Rewards for {period_key} were already distributed",
            )
        except Exception as e:
            logger.error(f"Reward distribution for {period_key} failed and was rolled back: {e}", exc_info=True)
            return DistributionOutcome(
                state=DistributionState.FAILED,
                status=DistributionStatus.FAILED,
                period_key=period_key,
                message=f"Distribution failed: {e}",
            )

        logger.info(
            f"Reward distribution completed. Total bonus: {record.total_bonus_distributed} points "
            f"to {len(record.winners)} winners"
        )
        self._notify_winners(record)

        return DistributionOutcome(
            state=DistributionState.COMPLETED,
            status=DistributionStatus.DISTRIBUTED,
            period_key=period_key,
            record=record,
            message=f"Distributed {record.total_bonus_distributed} bonus points to {len(record.winners)} winners",
        )

    def _credit_winners(self, period_key: str, top_users) -> RewardDistributionRecord:
        with self.database.session() as session:
            # Claim the period before touching any balance
            marker = RewardDistributionModel(
                period_key=period_key,
                winners=[],
                total_bonus_distributed=0,
                distributed_at=datetime.now(timezone.utc),
            )
            session.add(marker)
            try:
                session.flush()
            except IntegrityError as e:
                raise DistributionConflict(period_key) from e
            logger.info(f"Distribution {period_key} {DistributionState.IN_PROGRESS.value}")

            winners: List[RewardWinner] = []
            for rank, entry in enumerate(top_users, start=1):
                bonus_points = self.bonus_table.get(rank, 0)
                new_total = self.ledger.credit(session, entry.user_id, bonus_points)
                winners.append(RewardWinner(
                    user_id=entry.user_id,
                    email=entry.email,
                    name=entry.name,
                    rank=rank,
                    previous_total=new_total - bonus_points,
                    bonus_points=bonus_points,
                    new_total=new_total,
                ))
                logger.info(f"Rank {rank}: {entry.name or entry.user_id} received {bonus_points} bonus points")

            marker.winners = [asdict(winner) for winner in winners]
            marker.total_bonus_distributed = sum(winner.bonus_points for winner in winners)
            session.flush()
            return to_record(marker)

    def _notify_winners(self, record: RewardDistributionRecord) -> None:
        for winner in record.winners:
            if not winner.email:
                logger.debug(f"Winner {winner.user_id} has no e-mail; skipping notification")
                continue
            self._pending.append(self._executor.submit(self._notify, winner, record.period_key))

    def _notify(self, winner: RewardWinner, period_key: str) -> None:
        payload = {
            "user_name": winner.name,
            "rank": winner.rank,
            "today_points": winner.previous_total,
            "bonus_points": winner.bonus_points,
            "new_total_points": winner.new_total,
            "date": period_key,
        }
        try:
            self.notifier.send(winner.email, payload)
            logger.info(f"Reward notification sent to {winner.email} for rank {winner.rank}")
        except Exception as e:
            # Points are already committed; a lost notification is only logged
            logger.error(f"Failed to send reward notification to {winner.email}: {e}")

    def wait_for_notifications(self, timeout: Optional[float] = None) -> None:
        """Block until queued notifications finish."""
        pending, self._pending = self._pending, []
        for future in pending:
            future.result(timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
