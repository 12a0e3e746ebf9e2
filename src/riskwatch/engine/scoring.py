"""Risk scoring: weighted models and factor aggregation.

Combines discrete risk factors into a unified risk score (0-100), a safety
grade (A-F), a risk level and a confidence value.

Scoring:
1. Each factor contributes ``max(0, impact) * weight``
2. The weighted sum is normalized by the total weight and scaled to 0-100
3. Score bands map to grade and level (see ``GRADE_BANDS``)
4. Confidence grows with the total factor weight, floored at 0.1

Models are plain weighted sums over normalized features. The registry of
models is built explicitly and handed to the assessment service, so
several independently configured engines can coexist.
"""

import math
from typing import Dict, List, Mapping, NamedTuple, Sequence, Tuple

from riskwatch.models import (
    ModelKind,
    RiskFactor,
    RiskLevel,
    RiskModel,
    SafetyGrade,
    grade_for_score,
)

TRANSACTION_MODEL = "transaction_risk"
CONTRACT_MODEL = "contract_risk"
RUG_PULL_MODEL = "rug_pull_detection"

RECOMMENDATIONS: Dict[RiskLevel, List[str]] = {
    RiskLevel.CRITICAL: [
        "DO NOT PROCEED - Critical risk detected",
        "Review all transaction details carefully",
        "Consider seeking expert advice",
    ],
    RiskLevel.HIGH: [
        "Exercise extreme caution",
        "Double-check all transaction details",
        "Consider using a test transaction first",
        "Use hardware wallet for signing",
    ],
    RiskLevel.MEDIUM: [
        "Review transaction details carefully",
        "Consider the identified risk factors",
        "Ensure you understand the transaction purpose",
    ],
    RiskLevel.LOW: [
        "Transaction appears relatively safe",
        "Standard security practices apply",
    ],
    RiskLevel.VERY_LOW: [
        "Transaction appears very safe",
        "Minimal risk detected",
    ],
}


class ScoreSummary(NamedTuple):
    """Aggregated outcome of a set of risk factors."""

    risk_score: int
    safety_grade: SafetyGrade
    risk_level: RiskLevel
    confidence: float


class RiskScorer:
    """Aggregates risk factors into score, grade, level and confidence."""

    def __init__(
        self,
        confidence_weight_divisor: float = 5.0,
        min_confidence: float = 0.1,
    ) -> None:
        """Initialize scorer.

        Args:
            confidence_weight_divisor: Total factor weight at which
                confidence saturates at 1.0
            min_confidence: Lower bound for confidence
        """
        if confidence_weight_divisor <= 0:
            raise ValueError(
                f"confidence_weight_divisor must be positive, got {confidence_weight_divisor}"
            )
        if not 0.0 < min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be in (0, 1], got {min_confidence}")

        self.confidence_weight_divisor = confidence_weight_divisor
        self.min_confidence = min_confidence

    def calculate_risk_score(self, factors: Sequence[RiskFactor]) -> ScoreSummary:
        """Aggregate factors into a score summary.

        Args:
            factors: Risk factors gathered for one assessment

        Returns:
            Score, grade, level and confidence
        """
        if not factors:
            return ScoreSummary(0, SafetyGrade.A, RiskLevel.VERY_LOW, 1.0)

        weighted_risk = 0.0
        total_weight = 0.0
        for factor in factors:
            weighted_risk += max(0.0, factor.impact) * factor.weight
            total_weight += factor.weight

        risk_score = 0
        if total_weight > 0:
            risk_score = min(100, round(100 * weighted_risk / total_weight))

        safety_grade, risk_level = self.determine_risk_level(risk_score)

        confidence = min(1.0, total_weight / self.confidence_weight_divisor)
        confidence = max(self.min_confidence, confidence)

        return ScoreSummary(risk_score, safety_grade, risk_level, confidence)

    def determine_risk_level(self, risk_score: int) -> Tuple[SafetyGrade, RiskLevel]:
        """Map risk score to safety grade and risk level.

        Args:
            risk_score: Risk score (0-100)

        Returns:
            (safety grade, risk level)
        """
        return grade_for_score(risk_score)

    def recommendations(self, risk_level: RiskLevel) -> List[str]:
        """Human-readable recommendations for a risk level."""
        return list(RECOMMENDATIONS[risk_level])


def predict(model: RiskModel, features: Mapping[str, float], neutral: float = 0.5) -> float:
    """Apply a weighted model to a feature mapping.

    Features missing from ``features`` take the ``neutral`` value.

    Returns:
        Prediction clamped to [0, 1]
    """
    terms = []
    for name in model.features:
        weight = model.weights.get(name)
        if weight is None:
            continue
        terms.append(float(features.get(name, neutral)) * weight)
    prediction = math.fsum(terms)
    return min(1.0, max(0.0, prediction))


def create_default_models() -> Dict[str, RiskModel]:
    """Create the default model registry.

    Returns:
        Mapping of registry key to model
    """
    return {
        TRANSACTION_MODEL: RiskModel(
            name="transaction_risk_classifier",
            version="1.0.0",
            kind=ModelKind.CLASSIFICATION,
            features=["value", "gas_price", "gas_limit", "address_age", "transaction_count"],
            weights={
                "value": 0.3,
                "gas_price": 0.1,
                "gas_limit": 0.1,
                "address_age": 0.2,
                "transaction_count": 0.3,
            },
            thresholds={"high_risk": 0.7, "medium_risk": 0.4, "low_risk": 0.2},
            accuracy=0.85,
        ),
        CONTRACT_MODEL: RiskModel(
            name="contract_risk_classifier",
            version="1.0.0",
            kind=ModelKind.CLASSIFICATION,
            features=[
                "contract_age",
                "verification_status",
                "transaction_volume",
                "unique_users",
                "liquidity",
            ],
            weights={
                "contract_age": 0.2,
                "verification_status": 0.3,
                "transaction_volume": 0.2,
                "unique_users": 0.15,
                "liquidity": 0.15,
            },
            thresholds={"high_risk": 0.6, "medium_risk": 0.3, "low_risk": 0.1},
            accuracy=0.82,
        ),
        RUG_PULL_MODEL: RiskModel(
            name="rug_pull_detector",
            version="1.0.0",
            kind=ModelKind.ANOMALY_DETECTION,
            features=[
                "liquidity_change",
                "holder_concentration",
                "dev_wallet_activity",
                "contract_permissions",
            ],
            weights={
                "liquidity_change": 0.4,
                "holder_concentration": 0.3,
                "dev_wallet_activity": 0.2,
                "contract_permissions": 0.1,
            },
            thresholds={
                "rug_pull_likely": 0.8,
                "rug_pull_possible": 0.5,
                "rug_pull_unlikely": 0.2,
            },
            accuracy=0.78,
        ),
    }
