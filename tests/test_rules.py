"""Tests for alert rule evaluation."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from riskwatch.engine.rules import (
    OPERATORS,
    RuleEvaluator,
    create_default_rules,
    in_cooldown,
    safety_grade_value,
)
from riskwatch.models import (
    AlertCondition,
    AlertPriority,
    AlertRule,
    RiskAssessment,
    SafetyGrade,
    grade_for_score,
)


def make_assessment(risk_score: int, confidence: float = 0.8) -> RiskAssessment:
    grade, level = grade_for_score(risk_score)
    return RiskAssessment(
        risk_score=risk_score,
        safety_grade=grade,
        risk_level=level,
        confidence=confidence,
    )


def make_rule(*conditions: AlertCondition) -> AlertRule:
    return AlertRule(id="test_rule", name="Test Rule", conditions=list(conditions))


def test_risk_score_condition() -> None:
    """Test a basic risk score threshold."""
    evaluator = RuleEvaluator()
    rule = make_rule(AlertCondition(type="risk_score", operator=">", threshold=70))

    assert evaluator.evaluate(rule, make_assessment(85)) is True
    assert evaluator.evaluate(rule, make_assessment(70)) is False
    assert evaluator.evaluate(rule, make_assessment(10)) is False


@pytest.mark.parametrize(
    "symbol,alias,score,threshold,expected",
    [
        (">", "gt", 50, 40, True),
        (">=", "gte", 40, 40, True),
        ("<", "lt", 40, 40, False),
        ("<=", "lte", 40, 40, True),
        ("==", "eq", 40, 40, True),
        ("!=", "ne", 40, 40, False),
    ],
)
def test_operators_and_aliases(
    symbol: str, alias: str, score: int, threshold: float, expected: bool
) -> None:
    """Test every operator and its word alias."""
    evaluator = RuleEvaluator()
    assessment = make_assessment(score)

    for op in (symbol, alias):
        condition = AlertCondition(type="risk_score", operator=op, threshold=threshold)
        assert evaluator.evaluate_condition(condition, assessment) is expected


def test_safety_grade_ordinal() -> None:
    """Test safety grade ordinal values (higher is safer)."""
    assert safety_grade_value(SafetyGrade.A) == 5
    assert safety_grade_value(SafetyGrade.B) == 4
    assert safety_grade_value(SafetyGrade.C) == 3
    assert safety_grade_value(SafetyGrade.D) == 2
    assert safety_grade_value(SafetyGrade.F) == 1

    evaluator = RuleEvaluator()
    poor = make_rule(AlertCondition(type="safety_grade", operator="<=", threshold=2))

    assert evaluator.evaluate(poor, make_assessment(85)) is True  # D
    assert evaluator.evaluate(poor, make_assessment(95)) is True  # F
    assert evaluator.evaluate(poor, make_assessment(75)) is False  # C


def test_confidence_condition() -> None:
    """Test conditions on assessment confidence."""
    evaluator = RuleEvaluator()
    rule = make_rule(AlertCondition(type="confidence", operator=">=", threshold=0.5))

    assert evaluator.evaluate(rule, make_assessment(50, confidence=0.6)) is True
    assert evaluator.evaluate(rule, make_assessment(50, confidence=0.2)) is False


def test_unknown_condition_type_is_false(caplog) -> None:
    """Test that unknown condition types never match."""
    evaluator = RuleEvaluator()
    rule = make_rule(AlertCondition(type="gas_used", operator=">", threshold=0))

    assert evaluator.evaluate(rule, make_assessment(99)) is False
    assert "Unknown condition type" in caplog.text


def test_reserved_vulnerability_count_is_false() -> None:
    """Test that vulnerability_count conditions never match."""
    evaluator = RuleEvaluator()
    rule = make_rule(AlertCondition(type="vulnerability_count", operator=">=", threshold=0))

    assert evaluator.evaluate(rule, make_assessment(99)) is False


def test_unknown_operator_is_false() -> None:
    """Test that unknown operators never match."""
    evaluator = RuleEvaluator()
    rule = make_rule(AlertCondition(type="risk_score", operator="~=", threshold=0))

    assert evaluator.evaluate(rule, make_assessment(99)) is False


def test_empty_conditions_match() -> None:
    """Test that a rule with no conditions is vacuously true."""
    assert RuleEvaluator().evaluate(make_rule(), make_assessment(0)) is True


def test_missing_assessment_rejected() -> None:
    """Test that evaluating without an assessment is an error."""
    with pytest.raises(ValueError):
        RuleEvaluator().evaluate(make_rule(), None)


condition_strategy = st.builds(
    AlertCondition,
    type=st.sampled_from(["risk_score", "safety_grade", "confidence", "bogus"]),
    operator=st.sampled_from(sorted(OPERATORS) + ["??"]),
    threshold=st.floats(min_value=0, max_value=100, allow_nan=False),
)


@given(
    conditions=st.lists(condition_strategy, max_size=5),
    risk_score=st.integers(min_value=0, max_value=100),
)
def test_rule_is_conjunction_of_conditions(conditions, risk_score) -> None:
    """A rule holds exactly when all of its conditions hold."""
    evaluator = RuleEvaluator()
    assessment = make_assessment(risk_score)

    expected = all(evaluator.evaluate_condition(c, assessment) for c in conditions)

    assert evaluator.evaluate(make_rule(*conditions), assessment) is expected


def test_in_cooldown() -> None:
    """Test cooldown window checks."""
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    rule = AlertRule(name="r", cooldown=timedelta(minutes=15))

    assert in_cooldown(rule, now) is False

    rule.last_triggered = now - timedelta(minutes=5)
    assert in_cooldown(rule, now) is True

    rule.last_triggered = now - timedelta(minutes=15)
    assert in_cooldown(rule, now) is False


def test_default_rules() -> None:
    """Test default rule set."""
    rules = {rule.id: rule for rule in create_default_rules()}

    assert set(rules) == {"high_risk_score", "critical_risk_score", "poor_safety_grade"}

    assert rules["high_risk_score"].priority == AlertPriority.HIGH
    assert rules["high_risk_score"].cooldown == timedelta(minutes=15)
    assert rules["critical_risk_score"].priority == AlertPriority.CRITICAL
    assert rules["critical_risk_score"].cooldown == timedelta(minutes=5)
    assert rules["poor_safety_grade"].priority == AlertPriority.MEDIUM
    assert rules["poor_safety_grade"].cooldown == timedelta(minutes=30)

    for rule in rules.values():
        assert rule.enabled
        assert [action.type for action in rule.actions] == ["log"]

    evaluator = RuleEvaluator()
    assert evaluator.evaluate(rules["high_risk_score"], make_assessment(85))
    assert not evaluator.evaluate(rules["critical_risk_score"], make_assessment(85))
    assert evaluator.evaluate(rules["critical_risk_score"], make_assessment(95))
