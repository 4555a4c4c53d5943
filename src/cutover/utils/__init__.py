"""Utility modules for logging, error handling and retries."""

from cutover.utils.retry import RetryStrategy
from cutover.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    DeploymentError,
    ConfigurationError,
    ValidationError,
    InfrastructureError,
    OperationTimeout,
    SnapshotError,
    PreflightFailure,
    CriticalPhaseFailure,
    CriticalStepFailure,
    ToleratedFailure,
    VerificationFailure,
    DowntimeBudgetExceeded,
    ConfirmationDenied,
    ErrorHandler,
    error_handler
)
from cutover.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # Retry
    'RetryStrategy',
    
    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'DeploymentError',
    'ConfigurationError',
    'ValidationError',
    'InfrastructureError',
    'OperationTimeout',
    'SnapshotError',
    'PreflightFailure',
    'CriticalPhaseFailure',
    'CriticalStepFailure',
    'ToleratedFailure',
    'VerificationFailure',
    'DowntimeBudgetExceeded',
    'ConfirmationDenied',
    'ErrorHandler',
    'error_handler',
    
    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
