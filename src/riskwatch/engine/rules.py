"""Alert rule evaluation.

A rule holds when every one of its conditions holds (AND logic). Each
condition reads one numeric signal off a risk assessment and compares it
against a threshold.

Supported condition types:
- risk_score: the assessment risk score (0-100)
- safety_grade: the grade as an ordinal (A=5, B=4, C=3, D=2, F=1)
- confidence: the assessment confidence (0-1)
- vulnerability_count: reserved, always false

Supported operators: >, >=, <, <=, ==, != (and gt, gte, lt, lte, eq, ne).

Unknown condition types or operators evaluate to false, so a malformed
rule can never fire.
"""

import logging
import operator
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from riskwatch.models import (
    ActionType,
    AlertAction,
    AlertCondition,
    AlertPriority,
    AlertRule,
    ConditionType,
    RiskAssessment,
    SafetyGrade,
)

logger = logging.getLogger(__name__)

OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    "gt": operator.gt,
    ">=": operator.ge,
    "gte": operator.ge,
    "<": operator.lt,
    "lt": operator.lt,
    "<=": operator.le,
    "lte": operator.le,
    "==": operator.eq,
    "eq": operator.eq,
    "!=": operator.ne,
    "ne": operator.ne,
}

GRADE_VALUES: Dict[SafetyGrade, float] = {
    SafetyGrade.A: 5.0,
    SafetyGrade.B: 4.0,
    SafetyGrade.C: 3.0,
    SafetyGrade.D: 2.0,
    SafetyGrade.F: 1.0,
}


def safety_grade_value(grade: SafetyGrade) -> float:
    """Ordinal value of a safety grade (higher is safer)."""
    return GRADE_VALUES.get(grade, 0.0)


class RuleEvaluator:
    """Evaluates alert rules against risk assessments.

    Stateless: cooldown bookkeeping lives with the rule's owner.

    Example rule conditions:
        [
            {"type": "risk_score", "operator": ">", "threshold": 70},
            {"type": "safety_grade", "operator": "<=", "threshold": 2},
        ]
    """

    def evaluate(self, rule: AlertRule, assessment: RiskAssessment) -> bool:
        """Evaluate all conditions for a rule.

        All conditions must be true (AND logic). An empty condition list is
        vacuously true.

        Args:
            rule: Rule to evaluate
            assessment: Assessment to read signals from

        Returns:
            True if every condition matches
        """
        if assessment is None:
            raise ValueError("assessment is required")

        for condition in rule.conditions:
            if not self.evaluate_condition(condition, assessment):
                return False

        return True

    def evaluate_condition(self, condition: AlertCondition, assessment: RiskAssessment) -> bool:
        """Evaluate a single condition.

        Args:
            condition: Condition to evaluate
            assessment: Assessment to read signals from

        Returns:
            True if condition matches
        """
        value = self._signal_value(condition.type, assessment)
        if value is None:
            return False

        compare = OPERATORS.get(condition.operator)
        if compare is None:
            logger.warning(
                "Unknown condition operator, treating as false",
                extra={"operator": condition.operator},
            )
            return False

        return compare(value, condition.threshold)

    def _signal_value(self, condition_type: str, assessment: RiskAssessment) -> Optional[float]:
        try:
            kind = ConditionType(condition_type)
        except ValueError:
            logger.warning(
                "Unknown condition type, treating as false",
                extra={"condition_type": condition_type},
            )
            return None

        if kind is ConditionType.RISK_SCORE:
            return float(assessment.risk_score)
        if kind is ConditionType.SAFETY_GRADE:
            return safety_grade_value(assessment.safety_grade)
        if kind is ConditionType.CONFIDENCE:
            return assessment.confidence
        # VULNERABILITY_COUNT is reserved for scanner-backed signals
        return None


def in_cooldown(rule: AlertRule, now: datetime) -> bool:
    """Return True if ``rule`` fired less than its cooldown ago."""
    if rule.last_triggered is None:
        return False
    return now - rule.last_triggered < rule.cooldown


def create_default_rules() -> List[AlertRule]:
    """Create default rule set for common scenarios.

    Returns:
        List of default rules
    """
    log_action = AlertAction(type=ActionType.LOG.value, target="system")

    return [
        # Rule 1: Risk score above 70 -> HIGH
        AlertRule(
            id="high_risk_score",
            name="High Risk Score Alert",
            description="Triggers when risk score exceeds 70",
            conditions=[AlertCondition(type="risk_score", operator=">", threshold=70.0)],
            actions=[log_action],
            priority=AlertPriority.HIGH,
            cooldown=timedelta(minutes=15),
        ),

        # Rule 2: Risk score above 90 -> CRITICAL
        AlertRule(
            id="critical_risk_score",
            name="Critical Risk Score Alert",
            description="Triggers when risk score exceeds 90",
            conditions=[AlertCondition(type="risk_score", operator=">", threshold=90.0)],
            actions=[log_action],
            priority=AlertPriority.CRITICAL,
            cooldown=timedelta(minutes=5),
        ),

        # Rule 3: Safety grade D or F -> MEDIUM
        AlertRule(
            id="poor_safety_grade",
            name="Poor Safety Grade Alert",
            description="Triggers when safety grade is D or F",
            conditions=[AlertCondition(type="safety_grade", operator="<=", threshold=2.0)],
            actions=[log_action],
            priority=AlertPriority.MEDIUM,
            cooldown=timedelta(minutes=30),
        ),
    ]
