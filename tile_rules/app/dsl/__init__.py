"""
Tile condition DSL package.

Decides when a tile or automated action is enabled, and renders string
templates, from a per-call EvaluationContext snapshot. Conditions are
combined with AND; unresolvable data fails closed (conditions) or soft
(templates), while broken rule configuration raises.

Modules of interest:
- models: Context, condition, operator and result types.
- paths: Dotted path resolution into the context facets.
- operators: The immutable operator registry.
- evaluator: Condition evaluation and the module-level API.
- templates: Single-pass `$path` / `{{variable}}` substitution.

Nothing here performs I/O or keeps state between calls.
"""

from .models import (
    ConditionExpression,
    ConditionOperator,
    ConditionPayload,
    ConditionSetResult,
    EvaluationContext,
    ValueKind,
    parse_conditions,
    value_kind,
)
from .paths import PathResolution, resolve_path
from .operators import DEFAULT_REGISTRY, OperatorRegistry
from .templates import TemplateResolver
from .evaluator import (
    ConditionEvaluator,
    evaluate_condition,
    evaluate_conditions,
    explain_conditions,
    get_evaluator,
    resolve_value,
)

__all__ = [
    "ConditionEvaluator",
    "ConditionExpression",
    "ConditionOperator",
    "ConditionPayload",
    "ConditionSetResult",
    "DEFAULT_REGISTRY",
    "EvaluationContext",
    "OperatorRegistry",
    "PathResolution",
    "TemplateResolver",
    "ValueKind",
    "evaluate_condition",
    "evaluate_conditions",
    "explain_conditions",
    "get_evaluator",
    "parse_conditions",
    "resolve_path",
    "resolve_value",
    "value_kind",
]
