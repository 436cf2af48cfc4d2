"""Error taxonomy for the resurfacing engine.

Errors are raised inside the core and converted into an OperationResult at
the public boundary (engine and orchestrator), so callers decide whether to
log-and-drop or requeue.

Kinds:
- VALIDATION: malformed input, e.g. a null content entry. Fails the whole call.
- PERSISTENCE: backing store read/write failure or timeout. Aborts the item.
- COMPUTATION: unexpected exception mid-scoring. Caught per item in loops.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    PERSISTENCE = "persistence"
    COMPUTATION = "computation"


class ResurfacingError(Exception):
    """Base class for resurfacing engine errors."""
    kind = ErrorKind.COMPUTATION


class ValidationError(ResurfacingError):
    kind = ErrorKind.VALIDATION


class PersistenceError(ResurfacingError):
    kind = ErrorKind.PERSISTENCE


class ComputationError(ResurfacingError):
    kind = ErrorKind.COMPUTATION


@dataclass
class OperationResult:
    """Outcome of a public operation. Never raised, always returned."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: Exception | str, kind: Optional[ErrorKind] = None) -> "OperationResult":
        if kind is None:
            kind = getattr(error, "kind", ErrorKind.COMPUTATION)
        return cls(success=False, error=str(error), error_kind=kind)
