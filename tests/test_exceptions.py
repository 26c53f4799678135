"""Tests for the error taxonomy."""

from household_ai.exceptions import (
    AICommandError,
    ExecutionFailedError,
    FunctionExecutionError,
    RateLimitedError,
)


class TestExceptions:
    """Tests for AICommandError and subclasses."""

    def test_to_dict(self):
        """Structured form carries code, message and details."""
        error = RateLimitedError("Too many actions", limit=5, window_seconds=60)
        assert error.to_dict() == {
            "error_code": "rate_limited",
            "message": "Too many actions",
            "details": {"limit": 5, "window_seconds": 60},
        }

    def test_function_errors_are_execution_failures(self):
        """Household function errors share the execution failure family."""
        error = FunctionExecutionError('"Saffron" not found', function_name="update_inventory")
        assert isinstance(error, ExecutionFailedError)
        assert isinstance(error, AICommandError)
        assert str(error) == '"Saffron" not found'
        assert error.code == "function_failed"
