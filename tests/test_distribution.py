"""Reward distribution: idempotence, atomicity, skip, notifications."""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from green_rewards.db.models import RewardDistributionModel
from green_rewards.errors import InvalidSubmission
from green_rewards.leaderboard.distribution import RewardDistributionJob
from green_rewards.types import DistributionState, DistributionStatus

PERIOD = "2025-01-22"


@pytest.fixture
def job(database, ledger, ranking, notifier):
    job = RewardDistributionJob(database, ledger, ranking, notifier=notifier)
    yield job
    job.shutdown()


@pytest.fixture
def podium(make_user):
    """Four ranked users: 100, 80, 60, 40 points."""
    return [make_user(total_points=points) for points in (100, 80, 60, 40)]


def _record_count(database):
    with database.session() as session:
        return session.execute(select(func.count(RewardDistributionModel.id))).scalar_one()


class TestDistribute:

    def test_pays_top_three(self, job, podium, balance_of):
        outcome = job.distribute(PERIOD)

        assert outcome.status == DistributionStatus.DISTRIBUTED
        assert outcome.state == DistributionState.COMPLETED
        assert [balance_of(u) for u in podium] == [115, 90, 65, 40]

        record = outcome.record
        assert record.period_key == PERIOD
        assert record.total_bonus_distributed == 30
        assert [(w.rank, w.bonus_points, w.previous_total, w.new_total) for w in record.winners] == [
            (1, 15, 100, 115),
            (2, 10, 80, 90),
            (3, 5, 60, 65),
        ]

    def test_record_is_persisted(self, job, podium):
        job.distribute(PERIOD)
        stored = job.get_record(PERIOD)
        assert stored is not None
        assert [w.user_id for w in stored.winners] == podium[:3]

    def test_fewer_than_three_users(self, job, make_user, balance_of):
        only = make_user(total_points=5)
        outcome = job.distribute(PERIOD)
        assert outcome.status == DistributionStatus.DISTRIBUTED
        assert balance_of(only) == 20
        assert outcome.record.total_bonus_distributed == 15


class TestIdempotence:

    def test_second_run_is_already_distributed(self, job, podium, balance_of, database):
        job.distribute(PERIOD)
        balances = [balance_of(u) for u in podium]

        again = job.distribute(PERIOD)

        assert again.status == DistributionStatus.ALREADY_DISTRIBUTED
        assert again.record.period_key == PERIOD
        assert [balance_of(u) for u in podium] == balances
        assert _record_count(database) == 1

    def test_different_period_pays_again(self, job, podium, balance_of):
        job.distribute("2025-01-22")
        job.distribute("2025-01-23")
        assert balance_of(podium[0]) == 130

    def test_lost_race_reports_winner(self, job, podium, balance_of, database, monkeypatch):
        # Another worker commits between our existence check and our insert
        with database.session() as session:
            session.add(RewardDistributionModel(
                period_key=PERIOD, winners=[], total_bonus_distributed=0,
                distributed_at=datetime(2025, 1, 22, 0, 0, 1),
            ))
        real_get_record = job.get_record
        calls = {"n": 0}

        def stale_then_real(period_key):
            calls["n"] += 1
            return None if calls["n"] == 1 else real_get_record(period_key)

        monkeypatch.setattr(job, "get_record", stale_then_real)
        outcome = job.distribute(PERIOD)

        assert outcome.status == DistributionStatus.ALREADY_DISTRIBUTED
        assert outcome.record is not None
        assert [balance_of(u) for u in podium] == [100, 80, 60, 40]
        assert _record_count(database) == 1

    def test_parallel_runs_credit_once(self, job, ranking, podium, balance_of, database, monkeypatch):
        # Both runs pass the existence check before either claims the period
        both_ranked = threading.Barrier(2, timeout=10)
        real_top = ranking.top

        def top_then_wait(n):
            entries = real_top(n)
            both_ranked.wait()
            return entries

        monkeypatch.setattr(ranking, "top", top_then_wait)

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(lambda _: job.distribute(PERIOD), range(2)))

        assert sorted(o.status.value for o in outcomes) == ["ALREADY_DISTRIBUTED", "DISTRIBUTED"]
        assert [balance_of(u) for u in podium] == [115, 90, 65, 40]
        assert _record_count(database) == 1
        repeat = next(o for o in outcomes if o.status == DistributionStatus.ALREADY_DISTRIBUTED)
        assert repeat.record.total_bonus_distributed == 30


class TestSkipAndFailure:

    def test_no_eligible_users_skips(self, job, make_user, database):
        make_user(total_points=0)
        make_user(total_points=100, role="DLH")

        outcome = job.distribute(PERIOD)

        assert outcome.status == DistributionStatus.SKIPPED
        assert outcome.state == DistributionState.COMPLETED
        assert outcome.record is None
        assert _record_count(database) == 0

    def test_failure_rolls_back_everything(self, job, ledger, podium, balance_of, database, monkeypatch):
        real_credit = ledger.credit
        calls = {"n": 0}

        def flaky_credit(session, user_id, amount):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("deadlock detected")
            return real_credit(session, user_id, amount)

        monkeypatch.setattr(ledger, "credit", flaky_credit)
        outcome = job.distribute(PERIOD)

        assert outcome.status == DistributionStatus.FAILED
        assert outcome.state == DistributionState.FAILED
        assert [balance_of(u) for u in podium] == [100, 80, 60, 40]
        assert _record_count(database) == 0

        monkeypatch.setattr(ledger, "credit", real_credit)
        retried = job.distribute(PERIOD)
        assert retried.status == DistributionStatus.DISTRIBUTED
        assert balance_of(podium[0]) == 115

    def test_invalid_period_key(self, job):
        with pytest.raises(InvalidSubmission):
            job.distribute("22/01/2025")


class TestNotifications:

    def test_winners_notified(self, job, podium, notifier):
        job.distribute(PERIOD)
        job.wait_for_notifications(timeout=5)

        recipients = sorted(recipient for recipient, _ in notifier.sent)
        assert recipients == sorted(f"{u}@example.com" for u in podium[:3])
        payload = dict(notifier.sent[0][1])
        assert set(payload) == {"user_name", "rank", "today_points", "bonus_points", "new_total_points", "date"}

    def test_notification_failure_keeps_points(self, database, ledger, ranking, podium, balance_of, fakes):
        job = RewardDistributionJob(database, ledger, ranking, notifier=fakes.Notifier(fail=True))
        try:
            outcome = job.distribute(PERIOD)
            job.wait_for_notifications(timeout=5)
        finally:
            job.shutdown()
        assert outcome.status == DistributionStatus.DISTRIBUTED
        assert balance_of(podium[0]) == 115


class TestPeriodKey:

    def test_uses_reward_timezone(self, job):
        # 18:00 UTC is already the next day in Jakarta (UTC+7)
        assert job.current_period_key(datetime(2025, 1, 21, 18, 0, tzinfo=timezone.utc)) == "2025-01-22"
        assert job.current_period_key(datetime(2025, 1, 21, 16, 0, tzinfo=timezone.utc)) == "2025-01-21"

    def test_default_period_is_today(self, job, podium):
        outcome = job.distribute()
        assert outcome.period_key == job.current_period_key()
