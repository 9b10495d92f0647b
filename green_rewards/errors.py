"""Typed failures raised by the engine."""


class EngineError(Exception):
    """Base class for engine errors."""


class InvalidSubmission(EngineError):
    """Submission input is malformed (empty media, unsupported MIME type, unknown category)."""


class NotFound(EngineError):
    """Referenced action or user does not exist."""


class Forbidden(EngineError):
    """Requester lacks ownership or admin rights over the action."""


class InvalidState(EngineError):
    """Operation is not allowed in the action's current state."""


class LedgerConsistencyViolation(EngineError):
    """A debit would have driven a balance negative.

    Never raised to callers. The ledger clamps the balance to zero and logs
    an instance of this class to the anomaly logger.
    """

    def __init__(self, user_id: str, attempted_debit: int, action_id: str = None):
        self.user_id = user_id
        self.attempted_debit = attempted_debit
        self.action_id = action_id
        super().__init__(
            f"Debit of {attempted_debit} points would make balance of user {user_id} negative "
            f"(action {action_id}); balance clamped to 0"
        )


class DistributionConflict(EngineError):
    """Another worker already claimed the distribution period."""

    def __init__(self, period_key: str):
        self.period_key = period_key
        super().__init__(f"Reward distribution for period {period_key} already claimed")
