"""Read-only leaderboard queries over user balances."""
import logging
import math
from typing import List

from sqlalchemy import and_, func, or_, select

from green_rewards.db.database import Database
from green_rewards.db.models import ActionRecord, UserRecord
from green_rewards.types import LeaderboardEntry, Page, PageMeta, UserRank, UserRole

logger = logging.getLogger(__name__)


def _eligible():
    """Only active WARGA users with a positive balance are ranked."""
    return (
        UserRecord.role == UserRole.WARGA.value,
        UserRecord.is_active.is_(True),
        UserRecord.total_points > 0,
    )


# Deterministic order: points, then earliest account, then id
_RANK_ORDER = (UserRecord.total_points.desc(), UserRecord.created_at.asc(), UserRecord.id.asc())


def _action_counts():
    return (
        select(ActionRecord.user_id, func.count(ActionRecord.id).label("action_count"))
        .group_by(ActionRecord.user_id)
        .subquery()
    )


class RankingService:
    """Leaderboard views. Never writes."""

    def __init__(self, database: Database):
        self.database = database

    def _ranked(self, session, offset: int, limit: int) -> List[LeaderboardEntry]:
        counts = _action_counts()
        rows = session.execute(
            select(UserRecord, func.coalesce(counts.c.action_count, 0))
            .outerjoin(counts, counts.c.user_id == UserRecord.id)
            .where(*_eligible())
            .order_by(*_RANK_ORDER)
            .offset(offset)
            .limit(limit)
        ).all()

        return [
            LeaderboardEntry(
                rank=offset + index + 1,
                user_id=user.id,
                name=user.name,
                email=user.email,
                avatar_url=user.avatar_url,
                role=UserRole(user.role),
                total_points=user.total_points,
                total_actions=action_count,
            )
            for index, (user, action_count) in enumerate(rows)
        ]

    def top(self, n: int) -> List[LeaderboardEntry]:
        """The n highest ranked users."""
        if n <= 0:
            return []
        with self.database.session() as session:
            return self._ranked(session, 0, n)

    def page(self, page: int = 1, limit: int = 10) -> Page:
        """One page of the leaderboard with pagination meta."""
        page = max(1, page)
        limit = max(1, limit)
        with self.database.session() as session:
            total = session.execute(select(func.count(UserRecord.id)).where(*_eligible())).scalar_one()
            entries = self._ranked(session, (page - 1) * limit, limit)
        return Page(data=entries, meta=PageMeta.build(total, page, limit))

    def user_rank(self, user_id: str) -> UserRank:
        """
        Rank of one user. Unranked users (ineligible or zero points) get all zeros.
        percentile = round((total - rank) / total * 100), halves rounded up.
        """
        with self.database.session() as session:
            user = session.execute(
                select(UserRecord).where(UserRecord.id == user_id, *_eligible())
            ).scalar_one_or_none()
            if user is None:
                return UserRank(rank=0, total_points=0, total_actions=0, percentile=0)

            ahead = session.execute(
                select(func.count(UserRecord.id)).where(
                    *_eligible(),
                    or_(
                        UserRecord.total_points > user.total_points,
                        and_(
                            UserRecord.total_points == user.total_points,
                            UserRecord.created_at < user.created_at,
                        ),
                        and_(
                            UserRecord.total_points == user.total_points,
                            UserRecord.created_at == user.created_at,
                            UserRecord.id < user.id,
                        ),
                    ),
                )
            ).scalar_one()
            total = session.execute(select(func.count(UserRecord.id)).where(*_eligible())).scalar_one()
            total_actions = session.execute(
                select(func.count(ActionRecord.id)).where(ActionRecord.user_id == user_id)
            ).scalar_one()
            total_points = user.total_points

        rank = ahead + 1
        percentile = math.floor((total - rank) / total * 100 + 0.5) if total else 0
        return UserRank(rank=rank, total_points=total_points, total_actions=total_actions, percentile=percentile)
