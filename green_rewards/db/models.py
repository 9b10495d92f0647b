"""SQLAlchemy models for users, green actions and reward distributions."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class UserRecord(Base):
    """
    A participant and their aggregate balance.
    total_points only changes through single-statement SQL arithmetic in the ledger.
    """
    __tablename__ = 'users'
    __table_args__ = (
        CheckConstraint('total_points >= 0', name='ck_users_total_points_non_negative'),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=True)
    name = Column(String(255), nullable=True)
    avatar_url = Column(String(512), nullable=True)
    role = Column(String(16), nullable=False, default='WARGA', index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    total_points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class ActionRecord(Base):
    """A submitted green action with its AI verdict."""
    __tablename__ = 'green_actions'
    __table_args__ = (
        CheckConstraint('points >= 0', name='ck_green_actions_points_non_negative'),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    category = Column(String(32), nullable=False, index=True)
    subcategory = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)
    media_ref = Column(String(1024), nullable=False)
    media_type = Column(String(8), nullable=False, default='IMAGE')
    status = Column(String(24), nullable=False, default='PENDING', index=True)
    points = Column(Integer, nullable=False, default=0)
    ai_score = Column(Integer, nullable=True)
    ai_labels = Column(JSON, nullable=True)
    ai_feedback = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class RewardDistributionModel(Base):
    """
    One row per distribution period. The unique period_key is the cross-process
    lock: inserting it claims the period.
    """
    __tablename__ = 'reward_distributions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_key = Column(String(10), unique=True, nullable=False)
    winners = Column(JSON, nullable=False, default=list)
    total_bonus_distributed = Column(Integer, nullable=False, default=0)
    distributed_at = Column(DateTime, nullable=False, default=_utcnow)
