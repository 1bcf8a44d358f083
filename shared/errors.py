"""
Shared error handling for Tile Rules.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class TileRulesException(Exception):
    """Base exception for Tile Rules."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(TileRulesException):
    """Invalid rule configuration deployed into the system."""

    def __init__(self, message: str = "Invalid rule configuration", details: Optional[Dict[str, Any]] = None,
                 code: str = "CONFIGURATION_ERROR"):
        super().__init__(code, message, details)


class UnsupportedOperatorError(ConfigurationError):
    """Condition operator outside the registry."""

    def __init__(self, operator: Any, details: Optional[Dict[str, Any]] = None):
        self.operator = operator
        details = {"operator": str(operator), **(details or {})}
        super().__init__(f"Unsupported condition operator: {operator!r}", details, code="UNSUPPORTED_OPERATOR")


class InvalidPatternError(ConfigurationError):
    """Malformed pattern supplied to regex_match."""

    def __init__(self, pattern: Any, reason: str, details: Optional[Dict[str, Any]] = None):
        self.pattern = pattern
        details = {"pattern": str(pattern), "reason": reason, **(details or {})}
        super().__init__(f"Invalid regex pattern: {reason}", details, code="INVALID_PATTERN")


class InvalidOperandError(ConfigurationError):
    """Condition target of the wrong type for its operator."""

    def __init__(self, operator: Any, operand: Any, expected: str):
        self.operator = operator
        self.operand = operand
        super().__init__(
            f"Operator {str(operator)!r} expects a {expected} value",
            {"operator": str(operator), "operand": repr(operand), "expected": expected},
            code="INVALID_OPERAND"
        )


class TemplateTooLongError(ConfigurationError):
    """Template string exceeds the configured length bound."""

    def __init__(self, length: int, limit: int):
        super().__init__(
            f"Template length {length} exceeds limit of {limit}",
            {"length": length, "limit": limit},
            code="TEMPLATE_TOO_LONG"
        )


class ValidationError(TileRulesException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)
