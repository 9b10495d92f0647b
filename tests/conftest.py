"""Shared fixtures: a throwaway SQLite database, seeded users and fake AI providers."""
import json
import os
from datetime import datetime, timedelta

import pytest

# Keep provider pacing out of the way; must be set before limiters are created
os.environ.setdefault("GEMINI_RPM_LIMIT", "100000")
os.environ.setdefault("GROQ_RPM_LIMIT", "100000")
os.environ.setdefault("GEMINI_JITTER_ENABLED", "false")
os.environ.setdefault("GROQ_JITTER_ENABLED", "false")

from green_rewards.db.database import Database
from green_rewards.db.models import UserRecord
from green_rewards.leaderboard.ranking import RankingService
from green_rewards.ledger.action_ledger import ActionLedger
from green_rewards.oracle.scoring_oracle import ScoringOracle
from green_rewards.types import AnalysisResult
from green_rewards.utils.circuit_breaker import reset_circuit_breakers
from green_rewards.utils.rate_limiter import reset_rate_limiters

BASE_TIME = datetime(2025, 1, 1, 8, 0, 0)


# ── Fakes ─────────────────────────────────────────────────────────────────────

class FakeGemini:
    """Stands in for GeminiClient; returns canned text (or None) and records calls."""

    def __init__(self, response=None):
        self.response = response
        self.calls = []

    def generate(self, prompt, media_bytes, mime_type):
        self.calls.append((prompt, media_bytes, mime_type))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class FakeGroq:
    def __init__(self, response=None):
        self.response = response
        self.calls = []

    def analyze_image(self, prompt, media_bytes, mime_type):
        self.calls.append((prompt, media_bytes, mime_type))
        return self.response


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, recipient, payload):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((recipient, payload))


def oracle_json(score=85, category_match=True, labels=None, feedback="Bagus!"):
    return json.dumps({
        "score": score,
        "labels": labels if labels is not None else ["trash bag", "river"],
        "categoryMatch": category_match,
        "feedback": feedback,
        "detectedItems": {"waste": ["plastic"]},
    })


def analysis(score=85, labels=None):
    return AnalysisResult(
        score=score,
        category_match=True,
        labels=labels if labels is not None else ["tree"],
        feedback="Looks good",
    )


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_resilience():
    reset_circuit_breakers()
    reset_rate_limiters()
    yield
    reset_circuit_breakers()


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'green_rewards_test.db'}")
    db.init()
    yield db
    db.dispose()


@pytest.fixture
def ledger(database):
    return ActionLedger(database)


@pytest.fixture
def ranking(database):
    return RankingService(database)


@pytest.fixture
def make_user(database):
    """Factory: insert a user and return its id. created_at defaults to BASE_TIME + offset minutes."""
    counter = {"n": 0}

    def _make(user_id=None, total_points=0, role="WARGA", is_active=True, created_offset=None, name=None, email=None):
        counter["n"] += 1
        n = counter["n"]
        user_id = user_id or f"user-{n:03d}"
        offset = created_offset if created_offset is not None else n
        with database.session() as session:
            session.add(UserRecord(
                id=user_id,
                email=email or f"{user_id}@example.com",
                name=name or f"User {n}",
                role=role,
                is_active=is_active,
                total_points=total_points,
                created_at=BASE_TIME + timedelta(minutes=offset),
            ))
        return user_id

    return _make


@pytest.fixture
def balance_of(database):
    def _balance(user_id):
        with database.session() as session:
            return session.get(UserRecord, user_id).total_points
    return _balance


@pytest.fixture
def fake_gemini():
    return FakeGemini(oracle_json())


@pytest.fixture
def fake_groq():
    return FakeGroq()


@pytest.fixture
def oracle(fake_gemini, fake_groq):
    return ScoringOracle(fake_gemini, fake_groq)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fakes():
    """Access to the fake classes and builders from test modules."""
    class _Fakes:
        Gemini = FakeGemini
        Groq = FakeGroq
        Notifier = RecordingNotifier
        json = staticmethod(oracle_json)
        analysis = staticmethod(analysis)
    return _Fakes
