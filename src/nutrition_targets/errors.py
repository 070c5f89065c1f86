"""Error taxonomy for the nutrition target engine.

Every failure carries enough structure (which field, what was expected)
for the caller to act on it. Insufficient evidence inside a rule
condition is not an error and has no class here.
"""

from typing import Any, Optional


class NutritionEngineError(Exception):
    """Base class for all engine failures."""

    status_code = 400
    error_type = "error"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.expected = expected

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        result = {"error": self.error_type, "message": self.message}
        if self.field:
            result["field"] = self.field
        if self.expected is not None:
            result["expected"] = self.expected
        return result


class ValidationError(NutritionEngineError):
    """Unsupported formula, goal, activity level or missing input."""

    status_code = 422
    error_type = "validation_error"


class NotFoundError(NutritionEngineError):
    """No active target, rule, or client profile."""

    status_code = 404
    error_type = "not_found"

    def __init__(self, resource: str, identifier: Optional[Any] = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} not found: {identifier}"
        super().__init__(message)
        self.resource = resource


class AuthorizationError(NutritionEngineError):
    """Actor is acting outside their own client scope."""

    status_code = 403
    error_type = "authorization_error"


class ConflictError(NutritionEngineError):
    """Write would break a store invariant or lost a version race."""

    status_code = 409
    error_type = "conflict"
