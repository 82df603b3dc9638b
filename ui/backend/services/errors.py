"""Domain errors raised by the ledger, matching and allocation services.

Each error carries the HTTP status and a stable machine code; ``app.py`` turns
them into ``{"error": ..., "code": ...}`` responses.
"""


class AllocationError(Exception):
    """Base class for user-facing ledger errors."""
    status_code = 400
    code = "AllocationError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(AllocationError):
    status_code = 404
    code = "NotFound"


class InvalidTarget(AllocationError):
    status_code = 400
    code = "InvalidTarget"


class InvariantViolation(AllocationError):
    status_code = 409
    code = "InvariantViolation"


class AmountExceedsRemaining(InvariantViolation):
    code = "AmountExceedsRemaining"


class TargetOverMatched(InvariantViolation):
    code = "TargetOverMatched"


class AlreadyReverted(AllocationError):
    status_code = 409
    code = "AlreadyReverted"


class GoalAlreadyFunded(AllocationError):
    status_code = 409
    code = "GoalAlreadyFunded"
