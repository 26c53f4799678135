"""
Error Taxonomy for the AI Command Engine

Every refusal the engine can make has its own exception type and a stable
`code`, so callers (HTTP wrappers, chat UI, tests) can tell exactly why
nothing happened.

DESIGN DECISION: Validation errors are raised BEFORE any mutation.
If one of these escapes, no audit entry was written and no household
data changed. Failures that happen mid-flight (a household function
raising) are never raised to the caller - the executor records them
in the audit log and reports them in its result.
"""

from typing import Any, Optional


class AICommandError(Exception):
    """Base exception for all engine refusals."""

    code = "ai_command_error"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        """Structured form for API responses and logs."""
        return {
            "error_code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(AICommandError):
    """Proposal or audit entry does not exist (or belongs to another household)."""

    code = "not_found"


class AlreadyResolvedError(AICommandError):
    """A decision was attempted on a proposal that is no longer pending."""

    code = "already_resolved"


class ExpiredError(AICommandError):
    """Proposal TTL or undo window has elapsed."""

    code = "expired"


class RateLimitedError(AICommandError):
    """The household's action window (or daily HIGH risk cap) is full."""

    code = "rate_limited"

    def __init__(
        self,
        message: str,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
        **details: Any,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(message, limit=limit, window_seconds=window_seconds, **details)


class NotReversibleError(AICommandError):
    """Undo attempted on an action without a usable pre-state."""

    code = "not_reversible"


class InvalidStateError(AICommandError):
    """Entity is in a state that does not allow the requested operation."""

    code = "invalid_state"


class InvalidSelectionError(AICommandError):
    """Partial approval selected zero actions or unknown action ids."""

    code = "invalid_selection"


class InvalidArgumentsError(AICommandError):
    """Action arguments do not match the function's schema."""

    code = "invalid_arguments"


class BulkLimitExceededError(AICommandError):
    """Proposal carries more actions than the household allows at once."""

    code = "bulk_limit_exceeded"


class ExecutionFailedError(AICommandError):
    """
    The underlying household mutation raised.

    The executor catches this and finalizes the audit entry as FAILED;
    it only surfaces to callers through `ProposalExecutionResult.error`.
    """

    code = "execution_failed"


class FunctionExecutionError(ExecutionFailedError):
    """Raised by household functions when the mutation cannot be applied."""

    code = "function_failed"
