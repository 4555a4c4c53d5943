"""Error handling and retry strategy tests."""

import subprocess

import pytest
import requests

from cutover.utils.errors import (
    DeploymentError,
    DowntimeBudgetExceeded,
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    InfrastructureError,
    OperationTimeout,
    ValidationError,
)
from cutover.utils.retry import RetryStrategy


@pytest.fixture
def handler():
    return ErrorHandler()


class TestErrorHandler:
    def test_deployment_errors_pass_through(self, handler):
        error = ValidationError("bad input")

        assert handler.handle_exception(error) is error

    def test_called_process_error(self, handler):
        error = subprocess.CalledProcessError(2, ["pnpm", "build"], stderr="warn\nBuild failed\n")

        result = handler.handle_exception(error)

        assert isinstance(result, InfrastructureError)
        assert result.message == "Command exited with status 2: Build failed"
        assert result.context.command == "pnpm build"
        assert result.context.exit_code == 2

    def test_timeout_expired(self, handler):
        result = handler.handle_exception(subprocess.TimeoutExpired("pg_dump", 30))

        assert isinstance(result, OperationTimeout)
        assert result.category == ErrorCategory.TIMEOUT

    def test_network_errors(self, handler):
        result = handler.handle_exception(requests.ConnectionError("refused"))

        assert isinstance(result, InfrastructureError)
        assert result.message.startswith("Network error")

    def test_missing_file(self, handler):
        error = FileNotFoundError(2, "No such file", "prisma")

        result = handler.handle_exception(error, ErrorContext(operation="schema migration"))

        assert "prisma" in result.message
        assert result.context.operation == "schema migration"

    def test_unknown_errors(self, handler):
        result = handler.handle_exception(KeyError("x"))

        assert result.category == ErrorCategory.UNKNOWN
        assert isinstance(result.cause, KeyError)

    def test_log_error_uses_severity(self, handler, caplog):
        with caplog.at_level("DEBUG", logger="cutover"):
            handler.log_error(ValidationError("wrong"))
            handler.log_error(DeploymentError("meh", severity=ErrorSeverity.WARNING))

        levels = [r.levelname for r in caplog.records if "Error details" not in r.getMessage()]
        assert levels == ["ERROR", "WARNING"]


class TestDeploymentError:
    def test_user_message_lists_context_and_suggestions(self):
        error = InfrastructureError(
            "Command failed",
            context=ErrorContext(step="Restore Data", command="pg_restore"),
            cause=RuntimeError("exit 1"),
            suggestions=["Check credentials"],
        )

        message = error.to_user_message()

        assert "ERROR: Command failed" in message
        assert "Step: Restore Data" in message
        assert "Command: pg_restore" in message
        assert "1. Check credentials" in message

    def test_to_dict(self):
        data = DowntimeBudgetExceeded("too slow", downtime_ms=45000, max_downtime_ms=30000).to_dict()

        assert data["type"] == "DowntimeBudgetExceeded"
        assert data["category"] == "timeout"
        assert data["cause"] is None
        assert len(data["suggestions"]) == 2


class TestRetryStrategy:
    def test_should_retry(self):
        retry = RetryStrategy(max_retries=2)

        assert retry.should_retry(ConnectionError(), 0) is True
        assert retry.should_retry(InfrastructureError("x"), 1) is True
        assert retry.should_retry(ValidationError("x"), 0) is False
        assert retry.should_retry(ConnectionError(), 2) is False

    def test_delay_is_capped(self):
        retry = RetryStrategy(base_delay=1.0, max_delay=5.0, jitter=False)

        assert [retry.get_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_execute_with_retry_recovers(self):
        sleeps = []
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise TimeoutError("slow")
            return "ok"

        retry = RetryStrategy(base_delay=0.5, jitter=False, sleep=sleeps.append)

        assert retry.execute_with_retry(flaky) == "ok"
        assert sleeps == [0.5, 1.0]

    def test_execute_with_retry_reraises_non_retryable(self):
        retry = RetryStrategy(sleep=lambda s: None)

        with pytest.raises(ValueError):
            retry.execute_with_retry(lambda: int("x"))

    def test_poll_until_propagates_unexpected_errors(self):
        retry = RetryStrategy(sleep=lambda s: None)

        def broken():
            raise KeyError("target")

        with pytest.raises(KeyError):
            retry.poll_until(broken)

    def test_poll_until_succeeds(self):
        answers = iter([False, False, True])
        retry = RetryStrategy(max_retries=5, jitter=False, sleep=lambda s: None)

        assert retry.poll_until(lambda: next(answers)) is True
