"""Application-specific exceptions for consistent error handling."""

from typing import Any


class MasteryError(Exception):
    """Base error carrying a stable error code."""

    default_code = "MASTERY_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | list[Any] | None = None,
    ):
        """Initialize mastery error."""
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidParameterError(MasteryError, ValueError):
    """A probability or bucket input is outside its valid range."""

    default_code = "INVALID_PARAMETER"


class InvalidObservationError(MasteryError, ValueError):
    """An observation is not a usable {concept, is_correct} pair."""

    default_code = "INVALID_OBSERVATION"


class ProbabilityDriftError(MasteryError, ArithmeticError):
    """A computed probability left [0, 1] by more than float drift."""

    default_code = "PROBABILITY_DRIFT"


class PersistenceError(MasteryError):
    """Transient failure reading or writing mastery state."""

    default_code = "PERSISTENCE_ERROR"


class ConcurrentUpdateError(MasteryError):
    """Optimistic version check failed; another writer got there first."""

    default_code = "CONCURRENT_UPDATE"


def raise_invalid_parameter(name: str, value: Any, expected: str = "[0, 1]") -> None:
    """Raise an InvalidParameterError with standardized details."""
    raise InvalidParameterError(
        f"{name} must be in {expected}, got {value!r}",
        details={"parameter": name, "value": repr(value), "expected": expected},
    )
