"""CLI subcommands against a temporary database."""
import pandas as pd
import pytest

from green_rewards.config.settings import reset_config
from green_rewards.db.database import Database
from green_rewards.db.models import UserRecord
from green_rewards.main import main


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_GENAI_API_KEY", raising=False)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("GROQ_CLOUD_API", raising=False)
    reset_config()
    yield url
    reset_config()


@pytest.fixture
def seeded(db_url):
    database = Database(db_url)
    database.init()
    with database.session() as session:
        session.add(UserRecord(id="u1", email="u1@example.com", name="Sari", total_points=120))
        session.add(UserRecord(id="u2", email="u2@example.com", name="Budi", total_points=80))
    database.dispose()
    return db_url


class TestCli:

    def test_init_db(self, db_url):
        assert main(["init-db"]) == 0

    def test_leaderboard_csv(self, seeded, tmp_path):
        output = tmp_path / "out" / "top.csv"
        assert main(["leaderboard", "--top", "5", "--output-csv", str(output)]) == 0

        df = pd.read_csv(output, encoding="utf-8-sig")
        assert list(df["user_id"]) == ["u1", "u2"]
        assert list(df["rank"]) == [1, 2]

    def test_distribute_then_already(self, seeded, tmp_path, capsys):
        output = tmp_path / "winners.csv"
        assert main(["distribute", "--period", "2025-01-22", "--output-csv", str(output)]) == 0
        df = pd.read_csv(output, encoding="utf-8-sig")
        assert list(df["bonus_points"]) == [15, 10]

        assert main(["distribute", "--period", "2025-01-22"]) == 0
        assert "already distributed" in capsys.readouterr().out

    def test_invalid_period(self, seeded):
        assert main(["distribute", "--period", "tomorrow"]) == 1

    def test_rank(self, seeded, capsys):
        assert main(["rank", "u2"]) == 0
        assert "rank #2" in capsys.readouterr().out
