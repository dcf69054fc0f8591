"""
Error Taxonomy
==============
Typed errors raised by the numeric core and a tagged ``Result`` used where
failures are scoped to a single symbol or pair inside a batch.

InvariantViolationError signals a bug in this package (for example
optimizer weights that do not sum to one). It is never folded into a
Result and always propagates.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar('T')


class ErrorKind(Enum):
    """Kinds of analytics failure."""
    INSUFFICIENT_DATA = "insufficient_data"
    DEGENERATE_INPUT = "degenerate_input"
    EXTERNAL_UNAVAILABLE = "external_unavailable"
    INVARIANT_VIOLATION = "invariant_violation"
    INVALID_INPUT = "invalid_input"


class AnalyticsError(Exception):
    """Base analytics exception with a structured payload."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    message: str = "Analytics error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        data = {'error': self.kind.value, 'message': self.message}
        if self.details:
            data['details'] = self.details
        return data


class InsufficientDataError(AnalyticsError):
    """Series shorter than the lookback an operation needs."""

    kind = ErrorKind.INSUFFICIENT_DATA
    message = "Not enough data points"

    def __init__(self, message: Optional[str] = None, required: Optional[int] = None,
                 available: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if required is not None:
            details['required'] = required
        if available is not None:
            details['available'] = available
        super().__init__(message, details)


class DegenerateInputError(AnalyticsError):
    """Zero variance, zero range, zero volume or similar."""

    kind = ErrorKind.DEGENERATE_INPUT
    message = "Degenerate input"


class ExternalUnavailableError(AnalyticsError):
    """A collaborator timed out or failed."""

    kind = ErrorKind.EXTERNAL_UNAVAILABLE
    message = "External source unavailable"


class InvariantViolationError(AnalyticsError):
    """An internal invariant does not hold."""

    kind = ErrorKind.INVARIANT_VIOLATION
    message = "Invariant violated"


class InvalidInputError(AnalyticsError, ValueError):
    """Malformed caller input (bad parameters, unordered timestamps)."""

    kind = ErrorKind.INVALID_INPUT
    message = "Invalid input"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Tagged success/failure value."""
    value: Optional[T] = None
    error: Optional[AnalyticsError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @classmethod
    def success(cls, value: T) -> 'Result[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: AnalyticsError) -> 'Result[T]':
        if isinstance(error, InvariantViolationError):
            raise error
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            value = self.value.to_dict() if hasattr(self.value, 'to_dict') else self.value
            return {'ok': True, 'value': value}
        return {'ok': False, 'error': self.error.to_dict()}
