"""
Action ledger: the only writer of action (status, points) and user balances.

Every balance change is a single SQL statement (total_points = total_points +/- n)
executed in the same transaction as the action row it accounts for.
"""
import logging
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from green_rewards.db.database import Database
from green_rewards.db.models import ActionRecord, UserRecord
from green_rewards.errors import Forbidden, InvalidState, LedgerConsistencyViolation, NotFound
from green_rewards.types import (
    Action,
    ActionCategory,
    ActionQuery,
    ActionStatus,
    AnalysisOutcome,
    AnalysisResult,
    CategoryStats,
    MediaType,
    Page,
    PageMeta,
    UserActionStats,
)
from green_rewards.utils.logging_config import get_anomaly_logger
from green_rewards.validators.decision import decide_outcome

logger = logging.getLogger(__name__)
anomaly_logger = get_anomaly_logger()


def to_action(record: ActionRecord) -> Action:
    """Convert an ORM row to the public Action type."""
    return Action(
        id=record.id,
        user_id=record.user_id,
        category=ActionCategory(record.category),
        subcategory=record.subcategory,
        status=ActionStatus(record.status),
        points=record.points,
        media_ref=record.media_ref,
        media_type=MediaType(record.media_type),
        ai_score=record.ai_score,
        ai_labels=list(record.ai_labels or []),
        ai_feedback=record.ai_feedback,
        description=record.description,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class ActionLedger:
    """Persists scored actions and keeps user balances consistent with them."""

    def __init__(self, database: Database):
        self.database = database

    # ------------------------------------------------------------------
    # Balance primitives
    # ------------------------------------------------------------------

    def credit(self, session: Session, user_id: str, amount: int) -> int:
        """
        Atomically add `amount` to a user's balance inside the caller's transaction.

        Returns:
            The new total
        """
        if amount < 0:
            raise ValueError("credit amount must be non-negative")

        result = session.execute(
            update(UserRecord)
            .where(UserRecord.id == user_id)
            .values(total_points=UserRecord.total_points + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound(f"User {user_id} not found")

        return session.execute(
            select(UserRecord.total_points).where(UserRecord.id == user_id)
        ).scalar_one()

    def _debit(self, session: Session, user_id: str, amount: int, action_id: Optional[str] = None) -> None:
        """Guarded decrement. A debit larger than the balance clamps it to zero and logs an anomaly."""
        result = session.execute(
            update(UserRecord)
            .where(UserRecord.id == user_id, UserRecord.total_points >= amount)
            .values(total_points=UserRecord.total_points - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values(total_points=0)
                .execution_options(synchronize_session=False)
            )
            violation = LedgerConsistencyViolation(user_id, amount, action_id)
            anomaly_logger.error(f"LedgerConsistencyViolation: {violation}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def submit(
        self,
        user_id: str,
        category: ActionCategory,
        subcategory: str,
        media_ref: str,
        outcome: AnalysisOutcome,
        media_type: MediaType = MediaType.IMAGE,
        description: Optional[str] = None,
    ) -> Action:
        """
        Record a scored action at its terminal status and credit the owner if verified.

        Both writes share one transaction, so the balance never disagrees with the actions.
        """
        category = ActionCategory(category)
        decision = decide_outcome(outcome, category, subcategory)

        if isinstance(outcome, AnalysisResult):
            ai_score, ai_labels, ai_feedback = outcome.score, list(outcome.labels), outcome.feedback
        else:
            ai_score, ai_labels, ai_feedback = None, [], outcome.feedback

        with self.database.session() as session:
            if session.get(UserRecord, user_id) is None:
                raise NotFound(f"User {user_id} not found")

            record = ActionRecord(
                user_id=user_id,
                category=category.value,
                subcategory=subcategory,
                description=description,
                media_ref=media_ref,
                media_type=MediaType(media_type).value,
                status=decision.status.value,
                points=decision.points,
                ai_score=ai_score,
                ai_labels=ai_labels,
                ai_feedback=ai_feedback,
            )
            session.add(record)

            if decision.status == ActionStatus.VERIFIED and decision.points > 0:
                new_total = self.credit(session, user_id, decision.points)
                logger.info(f"Credited {decision.points} points to user {user_id} (total: {new_total})")

            session.flush()
            action = to_action(record)

        logger.info(f"Recorded action {action.id} for user {user_id}: {action.status.value}, {action.points} points")
        return action

    def delete(self, action_id: str, requester_id: str, requester_is_admin: bool = False) -> None:
        """
        Delete an action, reversing its points if it was verified.

        The row DELETE is the claim: of two concurrent deletes of one action only
        the one whose statement removes the row debits the owner; the other gets NotFound.
        """
        with self.database.session() as session:
            record = self._owned_action(session, action_id, requester_id, requester_is_admin, "delete")
            owner_id, status, points = record.user_id, record.status, record.points

            result = session.execute(
                delete(ActionRecord)
                .where(ActionRecord.id == action_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info(f"Action {action_id} was deleted by a concurrent request")
                raise NotFound("Green action not found")

            if status == ActionStatus.VERIFIED.value and points > 0:
                self._debit(session, owner_id, points, action_id=action_id)
                logger.info(f"Reversed {points} points from user {owner_id}")

        logger.info(f"Deleted action {action_id}")

    def retry(self, action_id: str, requester_id: str) -> Action:
        """
        Placeholder for re-verification. Validates ownership and state, then
        returns the action unchanged. The stored media is not re-scored.
        """
        with self.database.session() as session:
            record = session.execute(
                select(ActionRecord).where(ActionRecord.id == action_id, ActionRecord.user_id == requester_id)
            ).scalar_one_or_none()
            if record is None:
                raise NotFound("Green action not found")
            if record.status == ActionStatus.VERIFIED.value:
                raise InvalidState("This action is already verified")
            return to_action(record)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def require_user(self, user_id: str) -> None:
        """Raise NotFound unless the user exists."""
        with self.database.session() as session:
            if session.get(UserRecord, user_id) is None:
                raise NotFound(f"User {user_id} not found")

    def _owned_action(
        self, session: Session, action_id: str, requester_id: str, requester_is_admin: bool, verb: str
    ) -> ActionRecord:
        """Load an action the requester owns (or may manage as admin)."""
        record = session.get(ActionRecord, action_id)
        if record is None:
            raise NotFound("Green action not found")
        if record.user_id != requester_id and not requester_is_admin:
            raise Forbidden(f"You do not have permission to {verb} this action")
        return record

    def get(self, action_id: str, requester_id: str, requester_is_admin: bool = False) -> Action:
        with self.database.session() as session:
            record = self._owned_action(session, action_id, requester_id, requester_is_admin, "view")
            return to_action(record)

    def list_for_user(self, user_id: str, query: Optional[ActionQuery] = None) -> Page:
        """A user's actions, newest first."""
        return self._list(query or ActionQuery(), user_id=user_id)

    def list_all(self, query: Optional[ActionQuery] = None) -> Page:
        """All actions, newest first (admin view)."""
        return self._list(query or ActionQuery())

    def _list(self, query: ActionQuery, user_id: Optional[str] = None) -> Page:
        page = max(1, query.page)
        limit = max(1, query.limit)

        clauses = []
        if user_id is not None:
            clauses.append(ActionRecord.user_id == user_id)
        if query.category is not None:
            clauses.append(ActionRecord.category == ActionCategory(query.category).value)
        if query.subcategory:
            clauses.append(ActionRecord.subcategory == query.subcategory)
        if query.status is not None:
            clauses.append(ActionRecord.status == ActionStatus(query.status).value)

        with self.database.session() as session:
            total = session.execute(
                select(func.count(ActionRecord.id)).where(*clauses)
            ).scalar_one()
            records = session.execute(
                select(ActionRecord)
                .where(*clauses)
                .order_by(ActionRecord.created_at.desc(), ActionRecord.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars().all()
            data: List[Action] = [to_action(record) for record in records]

        return Page(data=data, meta=PageMeta.build(total, page, limit))

    def user_stats(self, user_id: str) -> UserActionStats:
        """Counts and points of a user's actions, overall and per category."""
        with self.database.session() as session:
            rows = session.execute(
                select(
                    ActionRecord.category,
                    ActionRecord.status,
                    func.count(ActionRecord.id),
                    func.coalesce(func.sum(ActionRecord.points), 0),
                )
                .where(ActionRecord.user_id == user_id)
                .group_by(ActionRecord.category, ActionRecord.status)
            ).all()

        stats = UserActionStats(total_actions=0, total_points=0, verified_actions=0, pending_actions=0)
        for category, status, count, points in rows:
            stats.total_actions += count
            if status == ActionStatus.VERIFIED.value:
                stats.verified_actions += count
                stats.total_points += points
            elif status == ActionStatus.PENDING.value:
                stats.pending_actions += count

            bucket = stats.by_category.setdefault(category, CategoryStats())
            bucket.count += count
            bucket.points += points

        return stats
