"""Scoring oracle adapter and the Gemini transport wrapper."""
import pytest

from green_rewards.errors import InvalidSubmission
from green_rewards.oracle.gemini_client import GeminiClient, extract_retry_delay, is_rate_limit_error
from green_rewards.oracle.response_parser import PARSE_FAILURE_FEEDBACK
from green_rewards.oracle.scoring_oracle import ScoringOracle
from green_rewards.types import ActionCategory, AnalysisResult, OracleFailure
from green_rewards.utils.circuit_breaker import CircuitState, get_circuit_breaker

IMAGE = b"\x89PNG\r\n\x1a\nfake-image"


class TestPreconditions:

    def test_empty_media(self, oracle, fake_gemini):
        with pytest.raises(InvalidSubmission):
            oracle.analyze(b"", "image/png", ActionCategory.GREEN_HOME, "PLANT_TREE")
        assert fake_gemini.calls == []

    def test_unsupported_mime(self, oracle, fake_gemini):
        with pytest.raises(InvalidSubmission):
            oracle.analyze(IMAGE, "application/pdf", ActionCategory.GREEN_HOME, "PLANT_TREE")
        assert fake_gemini.calls == []

    def test_unknown_category(self, oracle, fake_gemini):
        with pytest.raises(InvalidSubmission):
            oracle.analyze(IMAGE, "image/png", "GREEN_SPACE", "PLANT_TREE")
        assert fake_gemini.calls == []


class TestAnalyze:

    def test_success(self, oracle, fake_gemini):
        result = oracle.analyze(IMAGE, "image/jpeg", ActionCategory.GREEN_COMMUNITY, "RIVER_CLEANUP", "Bersih-bersih kali")
        assert isinstance(result, AnalysisResult)
        assert result.score == 85
        assert result.details == {"waste": ["plastic"]}

        prompt, media, mime = fake_gemini.calls[0]
        assert "SUB-CATEGORY: RIVER_CLEANUP" in prompt
        assert "USER DESCRIPTION: Bersih-bersih kali" in prompt
        assert media == IMAGE
        assert mime == "image/jpeg"

    def test_mime_type_is_case_insensitive(self, oracle):
        assert isinstance(oracle.analyze(IMAGE, "IMAGE/PNG", ActionCategory.GREEN_HOME, "PLANT_TREE"), AnalysisResult)

    def test_image_falls_back_to_groq(self, fakes):
        groq = fakes.Groq(fakes.json(score=66))
        oracle = ScoringOracle(fakes.Gemini(None), groq)
        result = oracle.analyze(IMAGE, "image/png", ActionCategory.GREEN_HOME, "PLANT_TREE")
        assert isinstance(result, AnalysisResult)
        assert result.score == 66
        assert len(groq.calls) == 1

    def test_video_has_no_fallback(self, fakes):
        groq = fakes.Groq(fakes.json())
        oracle = ScoringOracle(fakes.Gemini(None), groq)
        result = oracle.analyze(b"video", "video/mp4", ActionCategory.GREEN_COMMUNITY, "CAR_FREE_DAY")
        assert isinstance(result, OracleFailure)
        assert groq.calls == []

    def test_both_providers_fail(self, fakes):
        oracle = ScoringOracle(fakes.Gemini(None), fakes.Groq(None))
        result = oracle.analyze(IMAGE, "image/png", ActionCategory.GREEN_HOME, "PLANT_TREE")
        assert isinstance(result, OracleFailure)
        assert result.feedback == "AI verification failed. Please try again."

    def test_unparsable_response(self, fakes):
        oracle = ScoringOracle(fakes.Gemini("Sorry, I can't help with that."))
        result = oracle.analyze(IMAGE, "image/png", ActionCategory.GREEN_HOME, "PLANT_TREE")
        assert isinstance(result, OracleFailure)
        assert result.feedback == PARSE_FAILURE_FEEDBACK

    def test_provider_exception_never_escapes(self, fakes):
        oracle = ScoringOracle(fakes.Gemini(RuntimeError("boom")))
        result = oracle.analyze(IMAGE, "image/png", ActionCategory.GREEN_HOME, "PLANT_TREE")
        assert isinstance(result, OracleFailure)


# ── GeminiClient with a fake google-genai client ─────────────────────────────

class _Response:
    def __init__(self, text):
        self.text = text


class _Models:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def generate_content(self, model, contents):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else self.outcomes_default
        if isinstance(outcome, Exception):
            raise outcome
        return _Response(outcome)

    outcomes_default = ""


class _GenaiClient:
    def __init__(self, *outcomes):
        self.models = _Models(outcomes)


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr("green_rewards.oracle.gemini_client.time.sleep", lambda seconds: None)


class TestGeminiClient:

    def test_returns_text(self):
        client = GeminiClient(client=_GenaiClient('  {"score": 90}  '))
        assert client.generate("prompt", IMAGE, "image/png") == '{"score": 90}'

    def test_retries_then_succeeds(self, no_sleep):
        fake = _GenaiClient(RuntimeError("503 unavailable"), '{"score": 70}')
        client = GeminiClient(client=fake, max_retries=3)
        assert client.generate("prompt", IMAGE, "image/png") == '{"score": 70}'
        assert fake.models.calls == 2

    def test_gives_up_after_max_retries(self, no_sleep):
        fake = _GenaiClient(*[RuntimeError("429 RESOURCE_EXHAUSTED")] * 5)
        client = GeminiClient(client=fake, max_retries=3)
        assert client.generate("prompt", IMAGE, "image/png") is None
        assert fake.models.calls == 3

    def test_empty_response_is_failure(self, no_sleep):
        client = GeminiClient(client=_GenaiClient("", "", ""), max_retries=3)
        assert client.generate("prompt", IMAGE, "image/png") is None

    def test_open_circuit_skips_call(self):
        breaker = get_circuit_breaker("gemini")
        for _ in range(breaker.min_requests):
            breaker.record_error()
        assert breaker.get_state() == CircuitState.OPEN

        fake = _GenaiClient('{"score": 90}')
        client = GeminiClient(client=fake)
        assert client.generate("prompt", IMAGE, "image/png") is None
        assert fake.models.calls == 0

    def test_without_api_key(self):
        client = GeminiClient(api_key=None)
        assert not client.available
        assert client.generate("prompt", IMAGE, "image/png") is None


class TestRetryHelpers:

    def test_rate_limit_detection(self):
        assert is_rate_limit_error("429 Too Many Requests")
        assert is_rate_limit_error("RESOURCE_EXHAUSTED: quota")
        assert not is_rate_limit_error("500 internal")

    def test_extract_retry_delay(self):
        assert extract_retry_delay("Please retry in 12.5s") == 12.5
        assert extract_retry_delay("retry_delay { seconds: 49 }") == 49.0
        assert extract_retry_delay("no hint") is None
