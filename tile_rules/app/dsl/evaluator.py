"""
Condition evaluation for the tile condition DSL.
"""

import time
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Iterable, Optional, Union

from shared.config import EvaluatorConfig, get_config
from shared.errors import ConfigurationError
from shared.logging import caller_fields, get_logger

from .models import ConditionExpression, ConditionOperator, ConditionSetResult, EvaluationContext
from .operators import DEFAULT_MAX_PATTERN_LENGTH, DEFAULT_REGISTRY, PRESENCE_OPERATORS, OperatorRegistry
from .paths import resolve_path
from .templates import TemplateResolver

Condition = Union[ConditionExpression, Mapping]


class ConditionEvaluator:
    """Evaluates conditions and templates against an EvaluationContext.

    The evaluator holds no per-call state; one instance can serve any number
    of contexts, from any number of threads.
    """

    def __init__(self, registry: Optional[OperatorRegistry] = None,
                 config: Optional[EvaluatorConfig] = None):
        self.logger = get_logger("tile_rules.dsl.evaluator")
        self.config = config or EvaluatorConfig()
        if registry is None:
            if self.config.max_pattern_length == DEFAULT_MAX_PATTERN_LENGTH:
                registry = DEFAULT_REGISTRY
            else:
                registry = OperatorRegistry.default(self.config.max_pattern_length)
        self.registry = registry
        self.templates = TemplateResolver(self.config.max_template_length)

    def evaluate_condition(self, condition: Condition, context: EvaluationContext) -> bool:
        """Evaluate a single condition."""
        if not isinstance(condition, ConditionExpression):
            condition = ConditionExpression.from_dict(condition)

        try:
            predicate = self.registry.get(condition.operator)
        except ConfigurationError as e:
            self._caller_logger(context).warning(
                "Unsupported condition operator",
                field=condition.field,
                operator=str(condition.operator),
                error=e.message
            )
            raise

        found, value = resolve_path(condition.field, context)
        operator = ConditionOperator.parse(condition.operator)
        subject = found if operator in PRESENCE_OPERATORS else value

        try:
            return predicate(subject, condition.value)
        except ConfigurationError as e:
            self._caller_logger(context).warning(
                "Invalid condition configuration",
                field=condition.field,
                operator=str(condition.operator),
                code=e.code,
                error=e.message
            )
            raise

    def _caller_logger(self, context: EvaluationContext):
        return self.logger.bind(**caller_fields(context.user, context.organization))

    def evaluate_conditions(self, conditions: Iterable[Condition], context: EvaluationContext) -> bool:
        """Evaluate conditions with AND semantics; an empty set passes."""
        for condition in conditions:
            if not self.evaluate_condition(condition, context):
                return False
        return True

    def explain_conditions(self, conditions: Iterable[Condition], context: EvaluationContext) -> ConditionSetResult:
        """Evaluate conditions and report where evaluation stopped."""
        start_time = time.perf_counter()
        result = ConditionSetResult(passed=True)

        for index, condition in enumerate(conditions):
            if not isinstance(condition, ConditionExpression):
                condition = ConditionExpression.from_dict(condition)
            result.evaluated += 1
            if not self.evaluate_condition(condition, context):
                result.passed = False
                result.failed_index = index
                result.failed_field = condition.field
                break

        result.evaluation_time_ms = (time.perf_counter() - start_time) * 1000

        self.logger.debug(
            "Condition set evaluated",
            passed=result.passed,
            evaluated=result.evaluated,
            failed_index=result.failed_index,
            failed_field=result.failed_field
        )

        return result

    def resolve_value(self, value: Any, context: EvaluationContext) -> Any:
        """Resolve template tokens in a string value."""
        return self.templates.resolve_value(value, context)


@lru_cache(maxsize=1)
def get_evaluator() -> ConditionEvaluator:
    """Process-wide evaluator built from the environment configuration."""
    return ConditionEvaluator(config=get_config())


def evaluate_condition(condition: Condition, context: EvaluationContext) -> bool:
    return get_evaluator().evaluate_condition(condition, context)


def evaluate_conditions(conditions: Iterable[Condition], context: EvaluationContext) -> bool:
    return get_evaluator().evaluate_conditions(conditions, context)


def explain_conditions(conditions: Iterable[Condition], context: EvaluationContext) -> ConditionSetResult:
    return get_evaluator().explain_conditions(conditions, context)


def resolve_value(value: Any, context: EvaluationContext) -> Any:
    return get_evaluator().resolve_value(value, context)
