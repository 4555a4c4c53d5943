"""Error handling framework for deployment and rollback operations."""

import subprocess
from typing import Optional, Dict, Any, List
from enum import Enum
from dataclasses import dataclass

import requests

from cutover.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during a run."""
    VALIDATION = "validation"
    INFRASTRUCTURE = "infrastructure"
    TIMEOUT = "timeout"
    DENIED = "denied"
    CONFIGURATION = "configuration"
    SNAPSHOT = "snapshot"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Forward progress stops
    ERROR = "error"  # Step failed
    WARNING = "warning"  # Tolerated, execution continues
    INFO = "info"  # Informational message


@dataclass
class ErrorContext:
    """Context information for an error."""
    step: Optional[str] = None
    operation: Optional[str] = None
    command: Optional[str] = None
    exit_code: Optional[int] = None
    additional_info: Optional[Dict[str, Any]] = None


class DeploymentError(Exception):
    """Base exception for deployment errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize deployment error.

        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def to_user_message(self) -> str:
        """Convert error to user-friendly message.

        Returns:
            Formatted error message for display to user
        """
        lines = []

        lines.append(f"❌ {self.severity.value.upper()}: {self.message}")

        if self.context.step:
            lines.append(f"   Step: {self.context.step}")
        if self.context.command:
            lines.append(f"   Command: {self.context.command}")

        if self.cause:
            lines.append(f"   Cause: {str(self.cause)}")

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error
        """
        return {
            'type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': {
                'step': self.context.step,
                'operation': self.context.operation,
                'command': self.context.command,
                'exit_code': self.context.exit_code,
                'additional_info': self.context.additional_info
            },
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class ConfigurationError(DeploymentError):
    """Error in configuration file or settings."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class ValidationError(DeploymentError):
    """An action rejected its input or found the system in an invalid state."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class InfrastructureError(DeploymentError):
    """An external tool, service or host failed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.INFRASTRUCTURE,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class OperationTimeout(DeploymentError):
    """An action exceeded its time bound."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class SnapshotError(DeploymentError):
    """A snapshot could not be captured or resolved."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.SNAPSHOT,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class PreflightFailure(DeploymentError):
    """Pre-deployment checks reported critical failures; nothing was mutated."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.VALIDATION)
        super().__init__(message, severity=ErrorSeverity.CRITICAL, **kwargs)


class CriticalPhaseFailure(DeploymentError):
    """A critical deployment phase failed; forward progress stops."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.UNKNOWN)
        super().__init__(message, severity=ErrorSeverity.CRITICAL, **kwargs)


class CriticalStepFailure(DeploymentError):
    """A critical rollback step failed; the pipeline stops."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.UNKNOWN)
        super().__init__(message, severity=ErrorSeverity.CRITICAL, **kwargs)


class ToleratedFailure(DeploymentError):
    """A non-critical phase or step failed; execution continues."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.UNKNOWN)
        super().__init__(message, severity=ErrorSeverity.WARNING, **kwargs)


class VerificationFailure(DeploymentError):
    """A health gate or verification probe reported an unhealthy system."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.VALIDATION)
        super().__init__(message, severity=ErrorSeverity.ERROR, **kwargs)


class DowntimeBudgetExceeded(VerificationFailure):
    """The downtime window of the cutover phase was longer than allowed."""

    def __init__(self, message: str, downtime_ms: float, max_downtime_ms: float, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            suggestions=[
                'Investigate why the service took longer than usual to come back',
                'Raise --max-downtime-ms only if the longer window is acceptable'
            ],
            **kwargs
        )
        self.downtime_ms = downtime_ms
        self.max_downtime_ms = max_downtime_ms


class ConfirmationDenied(DeploymentError):
    """A rollback was requested without an explicit confirmation."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.DENIED,
            severity=ErrorSeverity.CRITICAL,
            suggestions=[
                'Set ROLLBACK_CONFIRMED=true to confirm a non-interactive rollback',
                'Pass --skip-confirmation to bypass the prompt'
            ],
            **kwargs
        )


class ErrorHandler:
    """Handles and categorizes errors raised by external tools and services."""

    def __init__(self):
        """Initialize error handler."""
        self.logger = get_logger(__name__)

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> DeploymentError:
        """Handle an exception and convert to DeploymentError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            DeploymentError with categorization and suggestions
        """
        context = context or ErrorContext()

        if isinstance(error, DeploymentError):
            return error

        if isinstance(error, subprocess.TimeoutExpired):
            context.command = context.command or _format_command(error.cmd)
            return OperationTimeout(
                message=f'Command timed out after {error.timeout}s',
                context=context,
                cause=error,
                suggestions=[
                    'Check whether the command is waiting for input',
                    'Increase the command timeout if the operation is legitimately slow'
                ]
            )

        if isinstance(error, subprocess.CalledProcessError):
            context.command = context.command or _format_command(error.cmd)
            context.exit_code = error.returncode
            stderr = (error.stderr or '').strip() if isinstance(error.stderr, str) else ''
            return InfrastructureError(
                message=f'Command exited with status {error.returncode}'
                + (f': {stderr.splitlines()[-1]}' if stderr else ''),
                context=context,
                cause=error,
                suggestions=['Run the command manually to see its full output']
            )

        if isinstance(error, TimeoutError):
            return OperationTimeout(
                message=f'Operation timed out: {error}',
                context=context,
                cause=error
            )

        if isinstance(error, (ConnectionError, requests.RequestException)):
            return self._handle_network_error(error, context)

        if isinstance(error, FileNotFoundError):
            return InfrastructureError(
                message=f'Required file or executable not found: {error.filename or error}',
                context=context,
                cause=error,
                suggestions=[
                    'Verify the tool is installed and on PATH',
                    'Check the working directory configured for the project'
                ]
            )

        if isinstance(error, OSError):
            return InfrastructureError(
                message=f'Operating system error: {error}',
                context=context,
                cause=error
            )

        return DeploymentError(
            message=str(error),
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )

    def _handle_network_error(
        self,
        error: Exception,
        context: ErrorContext
    ) -> InfrastructureError:
        """Handle network-related errors.

        Args:
            error: The network error
            context: Error context

        Returns:
            InfrastructureError
        """
        return InfrastructureError(
            message=f'Network error: {str(error)}',
            context=context,
            cause=error,
            suggestions=[
                'Check that the service is listening on the configured address',
                'Verify firewall rules allow the health probe to connect',
                'Retry the operation once the service is reachable'
            ]
        )

    def log_error(self, error: DeploymentError):
        """Log an error with appropriate level.

        Args:
            error: The error to log
        """
        log_message = error.to_user_message()

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR):
            self.logger.error(log_message)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)

        self.logger.debug(f"Error details: {error.to_dict()}")


def _format_command(cmd) -> str:
    if isinstance(cmd, (list, tuple)):
        return " ".join(str(part) for part in cmd)
    return str(cmd)


# Global error handler instance
error_handler = ErrorHandler()
