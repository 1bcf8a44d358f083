"""
Operator registry for the tile condition DSL.

Every operator is a pure predicate ``(context_value, target_value) -> bool``.
Predicates fail closed: a value of the wrong shape makes the predicate return
False instead of raising. Bad operands are configuration faults and raise:
``regex_match`` raises InvalidPatternError for a malformed pattern, and
``exists`` raises InvalidOperandError for a non-boolean target.
"""

import math
import re
from datetime import date, datetime, time, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from shared.errors import InvalidOperandError, InvalidPatternError, UnsupportedOperatorError

from .models import ConditionOperator, ValueKind, strict_equals, value_kind

Predicate = Callable[[Any, Any], bool]

DEFAULT_MAX_PATTERN_LENGTH = 1000

# Operators that receive the path resolver's found flag instead of the value.
PRESENCE_OPERATORS = frozenset({ConditionOperator.EXISTS})


def to_number(value: Any) -> Optional[float]:
    """Coerce a number or numeric string to a finite float, else None."""
    kind = value_kind(value)
    try:
        if kind == ValueKind.NUMBER:
            number = float(value)
        elif kind == ValueKind.STRING:
            text = value.strip()
            if not text:
                return None
            number = float(text)
        else:
            return None
    except (ValueError, OverflowError):
        return None

    if not math.isfinite(number):
        return None
    return number


def to_timestamp(value: Any) -> Optional[datetime]:
    """Parse a datetime, date or ISO-8601 string into an aware datetime.

    Relies on the Python 3.11 ``fromisoformat``, which accepts fractional
    seconds of any precision.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _compare(check: Callable[[float, float], bool]) -> Predicate:
    def predicate(actual: Any, expected: Any) -> bool:
        left = to_number(actual)
        right = to_number(expected)
        if left is None or right is None:
            return False
        return check(left, right)
    return predicate


def _chronological(check: Callable[[datetime, datetime], bool]) -> Predicate:
    def predicate(actual: Any, expected: Any) -> bool:
        left = to_timestamp(actual)
        right = to_timestamp(expected)
        if left is None or right is None:
            return False
        return check(left, right)
    return predicate


def _text(check: Callable[[str, str], bool]) -> Predicate:
    def predicate(actual: Any, expected: Any) -> bool:
        if not isinstance(actual, str) or not isinstance(expected, str):
            return False
        return check(actual, expected)
    return predicate


def _negate(positive: Predicate) -> Predicate:
    def predicate(actual: Any, expected: Any) -> bool:
        return not positive(actual, expected)
    return predicate


def _member_of(collection: Any, item: Any) -> bool:
    if value_kind(collection) != ValueKind.ARRAY:
        return False
    return any(strict_equals(element, item) for element in collection)


def equals(actual: Any, expected: Any) -> bool:
    return strict_equals(actual, expected)


def contains(actual: Any, expected: Any) -> bool:
    """Array membership of the target inside the context value."""
    return _member_of(actual, expected)


def is_in(actual: Any, expected: Any) -> bool:
    """Membership of the context value inside the target array."""
    return _member_of(expected, actual)


def exists(found: bool, expected: Any) -> bool:
    """Presence check; the target must be a boolean."""
    if not isinstance(expected, bool):
        raise InvalidOperandError(ConditionOperator.EXISTS, expected, "boolean")
    return found is expected


def compile_pattern(pattern: Any, max_length: int = DEFAULT_MAX_PATTERN_LENGTH) -> "re.Pattern":
    """Compile a regex_match target, raising InvalidPatternError on bad input."""
    if not isinstance(pattern, str):
        raise InvalidPatternError(pattern, "pattern must be a string")
    if len(pattern) > max_length:
        raise InvalidPatternError(
            pattern[:64], f"pattern longer than {max_length} characters",
            {"length": len(pattern)}
        )
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidPatternError(pattern, str(e)) from e


def regex_match(max_pattern_length: int = DEFAULT_MAX_PATTERN_LENGTH) -> Predicate:
    def predicate(actual: Any, expected: Any) -> bool:
        compiled = compile_pattern(expected, max_pattern_length)
        if not isinstance(actual, str):
            return False
        return compiled.search(actual) is not None
    return predicate


def default_operators(max_pattern_length: int = DEFAULT_MAX_PATTERN_LENGTH) -> Dict[ConditionOperator, Predicate]:
    """Build the full operator table."""
    return {
        ConditionOperator.EQUALS: equals,
        ConditionOperator.NOT_EQUALS: _negate(equals),
        ConditionOperator.GREATER_THAN: _compare(lambda a, b: a > b),
        ConditionOperator.LESS_THAN: _compare(lambda a, b: a < b),
        ConditionOperator.GREATER_THAN_OR_EQUAL: _compare(lambda a, b: a >= b),
        ConditionOperator.LESS_THAN_OR_EQUAL: _compare(lambda a, b: a <= b),
        ConditionOperator.CONTAINS: contains,
        ConditionOperator.NOT_CONTAINS: _negate(contains),
        ConditionOperator.IN: is_in,
        ConditionOperator.NOT_IN: _negate(is_in),
        ConditionOperator.EXISTS: exists,
        ConditionOperator.DATE_AFTER: _chronological(lambda a, b: a > b),
        ConditionOperator.DATE_BEFORE: _chronological(lambda a, b: a < b),
        ConditionOperator.STARTS_WITH: _text(str.startswith),
        ConditionOperator.ENDS_WITH: _text(str.endswith),
        ConditionOperator.CONTAINS_TEXT: _text(lambda a, b: b in a),
        ConditionOperator.REGEX_MATCH: regex_match(max_pattern_length),
    }


class OperatorRegistry:
    """Immutable table of operator predicates."""

    def __init__(self, operators: Mapping[ConditionOperator, Predicate]):
        self._operators = MappingProxyType(
            {ConditionOperator.parse(op): predicate for op, predicate in operators.items()}
        )

    @classmethod
    def default(cls, max_pattern_length: int = DEFAULT_MAX_PATTERN_LENGTH) -> "OperatorRegistry":
        """Registry covering every ConditionOperator."""
        operators = default_operators(max_pattern_length)
        missing = set(ConditionOperator) - set(operators)
        if missing:
            raise RuntimeError(f"Operators without predicates: {sorted(op.value for op in missing)}")
        return cls(operators)

    def subset(self, operators: Iterable[Union[ConditionOperator, str]]) -> "OperatorRegistry":
        """Registry restricted to the given operators."""
        return OperatorRegistry({
            op: self.get(op) for op in (ConditionOperator.parse(raw) for raw in operators)
        })

    def get(self, operator: Union[ConditionOperator, str]) -> Predicate:
        """Look up a predicate, raising UnsupportedOperatorError if absent."""
        op = ConditionOperator.parse(operator)
        predicate = self._operators.get(op)
        if predicate is None:
            raise UnsupportedOperatorError(operator, {"registered": sorted(o.value for o in self._operators)})
        return predicate

    def __contains__(self, operator: Any) -> bool:
        try:
            return ConditionOperator.parse(operator) in self._operators
        except UnsupportedOperatorError:
            return False

    def __len__(self) -> int:
        return len(self._operators)

    @property
    def operators(self) -> Mapping[ConditionOperator, Predicate]:
        return self._operators


DEFAULT_REGISTRY = OperatorRegistry.default()
