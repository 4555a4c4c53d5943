"""Typed result returned by phase actions and health checks."""

from dataclasses import dataclass
from typing import Optional, Type

from cutover.utils.errors import DeploymentError, ErrorCategory, ErrorSeverity


@dataclass(frozen=True)
class Outcome:
    """Success, or a failure tagged with the category of what went wrong.

    Actions return ``Outcome.err(...)`` for expected operational failures
    instead of raising, so the runner can branch on the tag.
    """

    success: bool
    category: Optional[ErrorCategory] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, message: Optional[str] = None) -> "Outcome":
        return cls(success=True, message=message)

    @classmethod
    def err(cls, category: ErrorCategory, message: str) -> "Outcome":
        return cls(success=False, category=category, message=message)

    def to_error(self, error_type: Type[DeploymentError] = DeploymentError) -> DeploymentError:
        """Convert a failed outcome into an exception of ``error_type``."""
        if self.success:
            raise ValueError("A successful outcome cannot be converted into an error")
        if error_type is DeploymentError:
            return DeploymentError(
                self.message or "Action failed",
                category=self.category or ErrorCategory.UNKNOWN,
                severity=ErrorSeverity.ERROR,
            )
        return error_type(self.message or "Action failed", category=self.category or ErrorCategory.UNKNOWN)
