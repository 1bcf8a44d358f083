"""
Unit tests for the Condition Evaluator.
"""

import time

import pytest

from shared.config import EvaluatorConfig
from shared.errors import (
    ConfigurationError, InvalidOperandError, InvalidPatternError, TemplateTooLongError, UnsupportedOperatorError
)
from shared.test_helpers import create_condition, create_context
from tile_rules.app.dsl import evaluator as evaluator_module
from tile_rules.app.dsl.evaluator import ConditionEvaluator
from tile_rules.app.dsl.models import ConditionExpression, ConditionOperator, EvaluationContext
from tile_rules.app.dsl.operators import DEFAULT_REGISTRY
from tile_rules.app.dsl.paths import resolve_path


class TestConditionEvaluator:
    """Test cases for ConditionEvaluator."""

    @pytest.fixture
    def evaluator(self):
        """Create ConditionEvaluator instance."""
        return ConditionEvaluator()

    @pytest.fixture
    def context(self):
        """Create evaluation context."""
        return EvaluationContext(
            user={
                "user_id": "user-123",
                "role": "admin",
                "permissions": ["read", "write", "delete"],
                "metadata": {"department": "finance", "manager": None, "seniority": 500}
            },
            organization={"organization_id": "org-a", "plan": "enterprise"},
            entity={"entity_type": "CUSTOMER", "status": "active", "created_at": "2024-01-15T10:00:00Z"},
            variables={"api_base_url": "https://api.example.com"}
        )

    def test_uses_default_registry(self, evaluator):
        assert evaluator.registry is DEFAULT_REGISTRY

    def test_equals_resolved_value(self, evaluator, context):
        """Test equality against the resolved value."""
        condition = ConditionExpression("user.role", ConditionOperator.EQUALS, "admin")

        assert evaluator.evaluate_condition(condition, context) is True

    @pytest.mark.parametrize("field", [
        "user.role",
        "user.permissions",
        "user.metadata",
        "user.metadata.manager",
        "organization.plan",
        "entity.created_at",
    ])
    def test_equals_own_value(self, evaluator, context, field):
        """Test every resolvable path equals its own value."""
        found, value = resolve_path(field, context)
        assert found

        assert evaluator.evaluate_condition(create_condition(field, "equals", value), context) is True

    def test_equals_number_against_string(self, evaluator, context):
        """Test numbers never equal their string form."""
        condition = create_condition("user.metadata.seniority", "equals", "500")

        assert evaluator.evaluate_condition(condition, context) is False

    def test_numeric_string_target(self, evaluator, context):
        """Test numeric comparisons coerce numeric strings."""
        assert evaluator.evaluate_condition(
            create_condition("user.metadata.seniority", "greater_than_or_equal", "500"), context
        ) is True
        assert evaluator.evaluate_condition(
            create_condition("user.metadata.seniority", "greater_than", "lots"), context
        ) is False

    def test_missing_path_equals_null(self, evaluator, context):
        """Test a missing path behaves as None."""
        assert evaluator.evaluate_condition(create_condition("user.nickname", "equals", None), context) is True
        assert evaluator.evaluate_condition(create_condition("user.nickname", "equals", "bob"), context) is False

    def test_missing_path_fails_closed(self, evaluator, context):
        """Test most operators reject a missing path."""
        for operator, value in [
            ("greater_than", 0),
            ("less_than", 10),
            ("contains", "read"),
            ("in", ["a"]),
            ("date_after", "2000-01-01"),
            ("starts_with", ""),
            ("contains_text", ""),
            ("regex_match", ".*"),
        ]:
            assert evaluator.evaluate_condition(create_condition("user.nickname", operator, value), context) is False

    def test_exists(self, evaluator, context):
        """Test exists tracks the found flag, not the value."""
        assert evaluator.evaluate_condition(create_condition("user.role", "exists", True), context) is True
        assert evaluator.evaluate_condition(create_condition("user.nickname", "exists", True), context) is False
        assert evaluator.evaluate_condition(create_condition("user.nickname", "exists", False), context) is True
        assert evaluator.evaluate_condition(create_condition("user.metadata.manager", "exists", True), context) is True
        assert evaluator.evaluate_condition(create_condition("user.metadata.manager", "exists", False), context) is False

    def test_permissions_scenario(self, evaluator):
        """Test contains/not_contains over a permission list."""
        context = EvaluationContext(user={"role": "admin", "permissions": ["read", "write", "delete"]})

        assert evaluator.evaluate_condition(
            {"field": "user.permissions", "operator": "contains", "value": "write"}, context
        ) is True
        assert evaluator.evaluate_condition(
            {"field": "user.permissions", "operator": "not_contains", "value": "admin"}, context
        ) is True

    def test_contains_on_non_array(self, evaluator, context):
        """Test contains on a scalar never raises."""
        assert evaluator.evaluate_condition(create_condition("user.role", "contains", "adm"), context) is False
        assert evaluator.evaluate_condition(create_condition("user.role", "not_contains", "adm"), context) is True

    def test_date_scenario(self, evaluator):
        """Test date_after on an entity timestamp."""
        context = EvaluationContext(entity={"created_at": "2024-01-15T10:00:00Z"})
        condition = {"field": "entity.created_at", "operator": "date_after", "value": "2024-01-10T00:00:00Z"}

        assert evaluator.evaluate_condition(condition, context) is True

    def test_string_operator(self, evaluator, context):
        """Test raw string operators are accepted."""
        condition = ConditionExpression("user.role", "starts_with", "adm")

        assert evaluator.evaluate_condition(condition, context) is True

    def test_string_exists_operator(self, evaluator, context):
        condition = ConditionExpression("user.nickname", "exists", False)

        assert evaluator.evaluate_condition(condition, context) is True

    def test_exists_string_target_raises(self, evaluator, context):
        """Test a quoted boolean target is a configuration fault."""
        condition = {"field": "user.nope", "operator": "exists", "value": "false"}

        with pytest.raises(InvalidOperandError):
            evaluator.evaluate_condition(condition, context)

    @pytest.mark.parametrize("ctx", [
        EvaluationContext(),
        EvaluationContext(user={"role": "admin"}),
    ])
    def test_unsupported_operator_raises(self, evaluator, ctx):
        """Test unknown operators always raise."""
        with pytest.raises(UnsupportedOperatorError):
            evaluator.evaluate_condition(create_condition("user.role", "roughly_equals", "admin"), ctx)

    def test_unregistered_operator_raises(self, context):
        """Test operators missing from a smaller registry raise."""
        evaluator = ConditionEvaluator(registry=DEFAULT_REGISTRY.subset(["equals"]))

        assert evaluator.evaluate_condition(create_condition("user.role", "equals", "admin"), context) is True
        with pytest.raises(UnsupportedOperatorError):
            evaluator.evaluate_condition(create_condition("user.permissions", "contains", "read"), context)

    def test_invalid_pattern_raises(self, evaluator, context):
        with pytest.raises(InvalidPatternError):
            evaluator.evaluate_condition(create_condition("user.role", "regex_match", "(admin"), context)

    def test_configured_pattern_limit(self, context):
        evaluator = ConditionEvaluator(config=EvaluatorConfig(max_pattern_length=4))

        assert evaluator.registry is not DEFAULT_REGISTRY
        assert evaluator.evaluate_condition(create_condition("user.role", "regex_match", "^adm"), context) is True
        with pytest.raises(InvalidPatternError):
            evaluator.evaluate_condition(create_condition("user.role", "regex_match", "^admin$"), context)

    def test_configuration_errors_are_logged(self, evaluator, context):
        """Test configuration faults are logged before raising."""
        evaluator.logger = _RecordingLogger()

        with pytest.raises(ConfigurationError):
            evaluator.evaluate_condition(create_condition("user.role", "nope", "admin"), context)
        with pytest.raises(ConfigurationError):
            evaluator.evaluate_condition(create_condition("user.role", "regex_match", "["), context)

        events = [event for event, _ in evaluator.logger.warnings]
        assert events == ["Unsupported condition operator", "Invalid condition configuration"]
        assert evaluator.logger.warnings[1][1]["code"] == "INVALID_PATTERN"

    def test_configuration_warnings_carry_caller(self, evaluator, context):
        """Test warnings name the user and tenant the evaluation ran for."""
        evaluator.logger = _RecordingLogger()

        with pytest.raises(ConfigurationError):
            evaluator.evaluate_condition(create_condition("user.role", "nope", "admin"), context)
        with pytest.raises(ConfigurationError):
            evaluator.evaluate_condition(create_condition("user.role", "regex_match", "["), EvaluationContext())

        _, first = evaluator.logger.warnings[0]
        assert first["user_id"] == "user-123"
        assert first["tenant_id"] == "org-a"
        _, second = evaluator.logger.warnings[1]
        assert "user_id" not in second
        assert "tenant_id" not in second


class TestConditionSets:
    """Test cases for condition sets."""

    @pytest.fixture
    def evaluator(self):
        return ConditionEvaluator()

    @pytest.fixture
    def context(self):
        return create_context("user")

    def test_empty_set_passes(self, evaluator, context):
        """Test vacuous truth."""
        assert evaluator.evaluate_conditions([], context) is True
        assert evaluator.evaluate_conditions([], EvaluationContext()) is True

    def test_all_pass(self, evaluator, context):
        conditions = [
            create_condition("user.permissions", "contains", "write"),
            create_condition("organization.plan", "equals", "enterprise"),
            create_condition("entity.status", "in", ["active", "pending"]),
        ]

        assert evaluator.evaluate_conditions(conditions, context) is True

    def test_single_failure_fails_set(self, evaluator, context):
        conditions = [
            create_condition("user.permissions", "contains", "write"),
            create_condition("user.permissions", "contains", "delete"),
            create_condition("organization.plan", "equals", "enterprise"),
        ]

        assert evaluator.evaluate_conditions(conditions, context) is False

    def test_order_does_not_change_result(self, evaluator, context):
        conditions = [
            create_condition("user.role", "equals", "user"),
            create_condition("entity.entity_type", "equals", "INVOICE"),
            create_condition("organization.plan", "equals", "enterprise"),
        ]

        forward = evaluator.evaluate_conditions(conditions, context)
        backward = evaluator.evaluate_conditions(list(reversed(conditions)), context)

        assert forward is backward is False

    def test_short_circuits(self, evaluator, context):
        """Test evaluation stops at the first failure."""
        conditions = [
            create_condition("user.role", "equals", "guest"),
            create_condition("user.role", "unknown_operator", "never evaluated"),
        ]

        assert evaluator.evaluate_conditions(conditions, context) is False

    def test_generator_input(self, evaluator, context):
        conditions = (create_condition("user.role", "equals", "user") for _ in range(3))

        assert evaluator.evaluate_conditions(conditions, context) is True

    @pytest.mark.parametrize("failing_at", [None, 0, 57, 99])
    def test_hundred_conditions(self, evaluator, context, failing_at):
        """Test a large set matches its single deciding member quickly."""
        conditions = [create_condition("user.permissions", "contains", "read") for _ in range(100)]
        if failing_at is not None:
            conditions[failing_at] = create_condition("user.permissions", "contains", "delete")

        start = time.perf_counter()
        result = evaluator.evaluate_conditions(conditions, context)
        elapsed_ms = (time.perf_counter() - start) * 1000

        assert result is (failing_at is None)
        assert elapsed_ms < 100

    def test_explain_pass(self, evaluator, context):
        conditions = [
            create_condition("user.role", "equals", "user"),
            create_condition("user.permissions", "contains", "read"),
        ]

        result = evaluator.explain_conditions(conditions, context)

        assert result.passed is True
        assert result.evaluated == 2
        assert result.failed_index is None
        assert result.failed_field is None
        assert result.evaluation_time_ms >= 0

    def test_explain_failure(self, evaluator, context):
        conditions = [
            create_condition("user.role", "equals", "user"),
            create_condition("organization.plan", "equals", "starter"),
            create_condition("user.permissions", "contains", "read"),
        ]

        result = evaluator.explain_conditions(conditions, context)

        assert result.passed is False
        assert result.evaluated == 2
        assert result.failed_index == 1
        assert result.failed_field == "organization.plan"

    def test_explain_empty(self, evaluator, context):
        result = evaluator.explain_conditions([], context)

        assert result.passed is True
        assert result.evaluated == 0


class TestTemplateResolution:
    """Test cases for resolve_value through the evaluator."""

    def test_resolve_value(self):
        evaluator = ConditionEvaluator()
        context = EvaluationContext(
            user={"user_id": "user-123"},
            variables={"api_base_url": "https://api.example.com"}
        )

        result = evaluator.resolve_value("{{api_base_url}}/users/$user.user_id", context)

        assert result == "https://api.example.com/users/user-123"

    def test_resolve_value_passthrough(self):
        evaluator = ConditionEvaluator()

        assert evaluator.resolve_value(500, EvaluationContext()) == 500

    def test_configured_template_limit(self):
        evaluator = ConditionEvaluator(config=EvaluatorConfig(max_template_length=8))

        with pytest.raises(TemplateTooLongError):
            evaluator.resolve_value("$user.user_id", EvaluationContext())


class TestModuleLevelApi:
    """Test cases for the module-level functions."""

    @pytest.fixture(autouse=True)
    def reset_default_evaluator(self):
        evaluator_module.get_evaluator.cache_clear()
        yield
        evaluator_module.get_evaluator.cache_clear()

    def test_default_evaluator_is_shared(self):
        assert evaluator_module.get_evaluator() is evaluator_module.get_evaluator()

    def test_default_evaluator_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TILE_RULES_MAX_TEMPLATE_LENGTH", "5")

        with pytest.raises(TemplateTooLongError):
            evaluator_module.resolve_value("abcdef", EvaluationContext())

    def test_functions(self):
        context = create_context("admin")

        assert evaluator_module.evaluate_condition(
            create_condition("user.permissions", "contains", "delete"), context
        ) is True
        assert evaluator_module.evaluate_conditions([
            create_condition("user.role", "equals", "admin"),
            create_condition("entity.archived_at", "equals", None),
        ], context) is True
        assert evaluator_module.explain_conditions([], context).passed is True
        assert evaluator_module.resolve_value("$user.user_id", context) == "user-admin"


class _RecordingLogger:
    """Minimal stand-in for a structlog logger."""

    def __init__(self, warnings=None, bound=None):
        self.warnings = [] if warnings is None else warnings
        self.bound = bound or {}

    def bind(self, **kwargs):
        return _RecordingLogger(self.warnings, {**self.bound, **kwargs})

    def warning(self, event, **kwargs):
        self.warnings.append((event, {**self.bound, **kwargs}))

    def debug(self, event, **kwargs):
        pass
