"""Circuit breaker state transitions."""
from green_rewards.utils.circuit_breaker import CircuitBreaker, CircuitState


def _breaker(cooldown=60.0):
    return CircuitBreaker(
        error_threshold=0.5,
        window_duration=60.0,
        cooldown_duration=cooldown,
        min_errors_to_open=3,
        min_requests=3,
        name="test",
    )


class TestCircuitBreaker:

    def test_starts_closed(self):
        breaker = _breaker()
        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.can_proceed()

    def test_opens_on_error_rate(self):
        breaker = _breaker()
        for _ in range(3):
            breaker.record_error()
        assert breaker.get_state() == CircuitState.OPEN
        assert not breaker.can_proceed()

    def test_stays_closed_below_threshold(self):
        breaker = _breaker()
        for _ in range(6):
            breaker.record_success()
        for _ in range(3):
            breaker.record_error()
        assert breaker.get_state() == CircuitState.CLOSED

    def test_half_open_after_cooldown_then_closes(self):
        breaker = _breaker(cooldown=0.0)
        for _ in range(3):
            breaker.record_error()
        assert breaker.can_proceed()
        assert breaker.get_state() == CircuitState.HALF_OPEN

        breaker.record_success()
        assert breaker.get_state() == CircuitState.CLOSED

    def test_failure_while_half_open_reopens(self):
        breaker = _breaker(cooldown=0.0)
        for _ in range(3):
            breaker.record_error()
        breaker.can_proceed()
        breaker.record_error()
        assert breaker.get_state() == CircuitState.OPEN

    def test_reset(self):
        breaker = _breaker()
        for _ in range(3):
            breaker.record_error()
        breaker.reset()
        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.get_stats()["total_requests"] == 0
