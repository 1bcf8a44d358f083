"""
Data models for the tile condition DSL.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from shared.errors import UnsupportedOperatorError, ValidationError

FACETS = ("user", "organization", "entity")

_FIELD_PATH = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*")


class ConditionOperator(str, Enum):
    """Condition operators."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"
    DATE_AFTER = "date_after"
    DATE_BEFORE = "date_before"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    CONTAINS_TEXT = "contains_text"
    REGEX_MATCH = "regex_match"

    @classmethod
    def parse(cls, raw: Any) -> "ConditionOperator":
        """Return the operator named by ``raw`` or raise UnsupportedOperatorError."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except ValueError:
            raise UnsupportedOperatorError(raw) from None


class ValueKind(str, Enum):
    """Runtime shape of a context or target value."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    MAP = "map"
    NULL = "null"
    OTHER = "other"


def value_kind(value: Any) -> ValueKind:
    """Classify a value into its ValueKind."""
    if value is None:
        return ValueKind.NULL
    # bool is an int subclass; check it first
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, Mapping):
        return ValueKind.MAP
    return ValueKind.OTHER


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-kind coercion, applied recursively."""
    kind = value_kind(left)
    if kind != value_kind(right):
        return False

    if kind == ValueKind.ARRAY:
        return len(left) == len(right) and all(
            strict_equals(a, b) for a, b in zip(left, right)
        )

    if kind == ValueKind.MAP:
        if set(left.keys()) != set(right.keys()):
            return False
        return all(strict_equals(left[key], right[key]) for key in left)

    if kind == ValueKind.NUMBER:
        if isinstance(left, float) and math.isnan(left):
            return False
        return left == right

    return left == right


def _facet(value: Optional[Mapping], name: str) -> Mapping:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(
            f"Context facet '{name}' must be a mapping",
            {"facet": name, "type": type(value).__name__}
        )
    return value


@dataclass(frozen=True)
class EvaluationContext:
    """Per-call snapshot that conditions and templates are evaluated against."""
    user: Mapping = field(default_factory=dict)
    organization: Mapping = field(default_factory=dict)
    entity: Mapping = field(default_factory=dict)
    variables: Mapping = field(default_factory=dict)

    def __post_init__(self):
        for name in FACETS + ("variables",):
            object.__setattr__(self, name, _facet(getattr(self, name), name))

        for key, value in self.variables.items():
            if not isinstance(key, str):
                raise ValidationError(
                    "Context variable names must be strings",
                    {"variable": repr(key)}
                )
            if isinstance(value, Mapping):
                raise ValidationError(
                    "Context variables must be flat",
                    {"variable": key}
                )

    @classmethod
    def from_dict(cls, data: Mapping) -> "EvaluationContext":
        """Build a context from a mapping of facet name to facet data."""
        unknown = set(data) - set(FACETS + ("variables",))
        if unknown:
            raise ValidationError(
                "Unknown context facets",
                {"facets": sorted(str(name) for name in unknown)}
            )
        return cls(
            user=data.get("user"),
            organization=data.get("organization"),
            entity=data.get("entity"),
            variables=data.get("variables"),
        )

    def facet(self, name: str) -> Optional[Mapping]:
        """Return a path-addressable facet, or None for any other name."""
        if name in FACETS:
            return getattr(self, name)
        return None


@dataclass(frozen=True)
class ConditionExpression:
    """A single declarative condition."""
    field: str
    operator: Union[ConditionOperator, str]
    value: Any = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "ConditionExpression":
        """Build a condition from its declarative form.

        The operator is kept verbatim so an unknown identifier surfaces as an
        UnsupportedOperatorError when the condition is evaluated.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(
                "Condition must be a mapping",
                {"type": type(data).__name__}
            )
        missing = [key for key in ("field", "operator") if key not in data]
        if missing:
            raise ValidationError("Condition is missing required keys", {"missing": missing})

        operator = data["operator"]
        try:
            operator = ConditionOperator(operator)
        except ValueError:
            pass

        return cls(
            field=data["field"],
            operator=operator,
            value=data.get("value"),
            description=data.get("description"),
        )


class ConditionPayload(BaseModel):
    """Externally authored condition configuration."""
    field: str = Field(..., description="Dotted context path, first segment is the facet")
    operator: str = Field(..., description="Condition operator")
    value: Any = Field(None, description="Operand compared against the context value")
    description: Optional[str] = Field(None, description="Human readable rationale")

    @field_validator("field")
    @classmethod
    def check_field(cls, value: str) -> str:
        if not _FIELD_PATH.fullmatch(value):
            raise ValueError("field must be a dotted identifier path")
        if value.split(".", 1)[0] not in FACETS:
            raise ValueError(f"field must start with one of {', '.join(FACETS)}")
        return value

    def to_expression(self) -> ConditionExpression:
        """Convert to a ConditionExpression, rejecting unknown operators."""
        return ConditionExpression(
            field=self.field,
            operator=ConditionOperator.parse(self.operator),
            value=self.value,
            description=self.description,
        )


def parse_conditions(raw: Iterable[Mapping]) -> List[ConditionExpression]:
    """Validate a declarative condition list into ConditionExpressions."""
    conditions = []
    for index, item in enumerate(raw):
        try:
            payload = ConditionPayload.model_validate(item)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid condition",
                {
                    "index": index,
                    "errors": [
                        {"loc": list(err["loc"]), "msg": err["msg"]}
                        for err in e.errors()
                    ],
                }
            ) from e
        conditions.append(payload.to_expression())
    return conditions


@dataclass
class ConditionSetResult:
    """Outcome of evaluating a condition set."""
    passed: bool
    evaluated: int = 0
    failed_index: Optional[int] = None
    failed_field: Optional[str] = None
    evaluation_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "evaluated": self.evaluated,
            "failed_index": self.failed_index,
            "failed_field": self.failed_field,
            "evaluation_time_ms": self.evaluation_time_ms,
        }
