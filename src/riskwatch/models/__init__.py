"""Data models for RiskWatch."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from riskwatch.exceptions import AlertStateError


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class RiskLevel(str, Enum):
    """Risk severity levels."""

    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SafetyGrade(str, Enum):
    """A-F safety grading (A is safest)."""

    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class ModelKind(str, Enum):
    """Kinds of weighted risk models."""

    CLASSIFICATION = "classification"
    ANOMALY_DETECTION = "anomaly_detection"


# Lower bound of each score band, highest first.
GRADE_BANDS = [
    (90, SafetyGrade.F, RiskLevel.CRITICAL),
    (80, SafetyGrade.D, RiskLevel.HIGH),
    (70, SafetyGrade.C, RiskLevel.HIGH),
    (60, SafetyGrade.C, RiskLevel.MEDIUM),
    (40, SafetyGrade.B, RiskLevel.MEDIUM),
    (20, SafetyGrade.B, RiskLevel.LOW),
    (0, SafetyGrade.A, RiskLevel.VERY_LOW),
]


def grade_for_score(risk_score: int) -> Tuple[SafetyGrade, RiskLevel]:
    """Map a 0-100 risk score to its safety grade and risk level."""
    for lower_bound, grade, level in GRADE_BANDS:
        if risk_score >= lower_bound:
            return grade, level
    return SafetyGrade.A, RiskLevel.VERY_LOW


class RiskModel(BaseModel):
    """Weighted risk model definition. Immutable once registered."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Model identifier")
    version: str = Field(default="1.0.0")
    kind: ModelKind = Field(default=ModelKind.CLASSIFICATION)
    features: List[str] = Field(..., description="Ordered feature names")
    weights: Dict[str, float] = Field(..., description="Feature name -> weight")
    thresholds: Dict[str, float] = Field(
        default_factory=dict, description="Named cutoff levels in [0, 1]"
    )
    accuracy: Optional[float] = Field(None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "RiskModel":
        for name, cutoff in self.thresholds.items():
            if not 0.0 <= cutoff <= 1.0:
                raise ValueError(f"Threshold {name} must be in [0, 1], got {cutoff}")
        return self


class RiskFactor(BaseModel):
    """One contributing signal inside an assessment."""

    type: str = Field(..., description="Factor type tag")
    description: str = Field(default="")
    impact: float = Field(..., description="Risk impact; negative values count as zero")
    weight: float = Field(..., ge=0.0, description="Relative trust in this factor")
    evidence: str = Field(default="")


class RiskAssessment(BaseModel):
    """Result of one scoring run."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    transaction_hash: Optional[str] = None
    contract_address: Optional[str] = None
    chain_id: int = Field(default=1)
    risk_score: int = Field(default=0, ge=0, le=100)
    safety_grade: SafetyGrade = Field(default=SafetyGrade.A)
    risk_level: RiskLevel = Field(default=RiskLevel.VERY_LOW)
    confidence: float = Field(default=1.0, gt=0.0, le=1.0)
    factors: List[RiskFactor] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    ml_predictions: Dict[str, float] = Field(default_factory=dict)
    assessed_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_grade_consistency(self) -> "RiskAssessment":
        grade, level = grade_for_score(self.risk_score)
        if (self.safety_grade, self.risk_level) != (grade, level):
            raise ValueError(
                f"Risk score {self.risk_score} requires grade {grade.value} / "
                f"level {level.value}, got {self.safety_grade.value} / {self.risk_level.value}"
            )
        return self

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at


class TransactionRiskRequest(BaseModel):
    """Request for transaction risk assessment."""

    from_address: str = Field(..., description="Sender address")
    to_address: str = Field(..., description="Recipient or contract address")
    value: int = Field(default=0, ge=0, description="Value in wei")
    data: str = Field(default="", description="Hex-encoded calldata")
    chain_id: int = Field(default=1)
    gas_limit: int = Field(default=21000, ge=0)
    gas_price: Optional[int] = Field(None, ge=0, description="Gas price in wei")
    include_ml_models: bool = Field(default=False)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "from_address": "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb",
                "to_address": "0x1234567890123456789012345678901234567890",
                "value": 200000000000000000000,
                "chain_id": 1,
                "gas_limit": 21000,
                "gas_price": 20000000000,
                "include_ml_models": True,
            }
        }
    )


class ContractRiskRequest(BaseModel):
    """Request for smart contract risk assessment."""

    contract_address: str = Field(..., description="Contract address")
    chain_id: int = Field(default=1)
    analyze_code: bool = Field(default=False)
    check_rug_pull: bool = Field(default=False)
    include_ml_models: bool = Field(default=False)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class VulnerabilityFinding(BaseModel):
    """A single finding reported by a vulnerability scanner."""

    rule_id: str
    title: str = ""
    severity: str = Field(default="medium", description="critical/high/medium/low")


class MonitoredAddress(BaseModel):
    """An address registered for periodic risk checks."""

    address: str
    chain_id: int
    user_id: str
    alert_rules: List[str] = Field(default_factory=list)
    last_checked: Optional[datetime] = None
    risk_score: int = Field(default=0, ge=0, le=100)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> str:
        return address_key(self.address, self.chain_id)


def address_key(address: str, chain_id: int) -> str:
    """Uniqueness key for a monitored (address, chain) pair."""
    return f"{address.lower()}:{chain_id}"


class ConditionType(str, Enum):
    """Assessment signals a rule condition may read."""

    RISK_SCORE = "risk_score"
    SAFETY_GRADE = "safety_grade"
    CONFIDENCE = "confidence"
    VULNERABILITY_COUNT = "vulnerability_count"


class ActionType(str, Enum):
    """Built-in alert channel kinds."""

    LOG = "log"
    WEBHOOK = "webhook"
    EMAIL = "email"


class AlertPriority(str, Enum):
    """Priority level of an alert."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class AlertStatus(str, Enum):
    """Lifecycle status of an alert."""

    TRIGGERED = "triggered"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"


ALERT_TRANSITIONS = {
    AlertStatus.TRIGGERED: {
        AlertStatus.ACKNOWLEDGED,
        AlertStatus.RESOLVED,
        AlertStatus.SUPPRESSED,
    },
    AlertStatus.ACKNOWLEDGED: {AlertStatus.RESOLVED, AlertStatus.SUPPRESSED},
    AlertStatus.RESOLVED: set(),
    AlertStatus.SUPPRESSED: set(),
}


class AlertCondition(BaseModel):
    """Single comparison against an assessment signal.

    ``type`` and ``operator`` are kept as plain strings so that malformed
    rule configuration can still be loaded; the rule evaluator treats
    anything it does not recognise as false.
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Condition type, e.g. risk_score")
    operator: str = Field(..., description="One of >, >=, <, <=, ==, !=")
    threshold: float = Field(..., description="Numeric threshold")


class AlertAction(BaseModel):
    """Delivery action executed when a rule fires."""

    type: str = Field(..., description="Channel kind, e.g. log or webhook")
    target: str = Field(default="")
    parameters: Dict[str, Any] = Field(default_factory=dict)


class AlertRule(BaseModel):
    """Conjunctive set of conditions plus the actions to run when they hold."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., description="Human-readable rule name")
    description: str = Field(default="")
    conditions: List[AlertCondition] = Field(default_factory=list)
    actions: List[AlertAction] = Field(default_factory=list)
    enabled: bool = Field(default=True)
    priority: AlertPriority = Field(default=AlertPriority.MEDIUM)
    cooldown: timedelta = Field(default=timedelta(minutes=15))
    last_triggered: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "high_risk_score",
                "name": "High Risk Score Alert",
                "description": "Triggers when risk score exceeds 70",
                "conditions": [{"type": "risk_score", "operator": ">", "threshold": 70}],
                "actions": [{"type": "log", "target": "system"}],
                "priority": "high",
                "cooldown": "PT15M",
            }
        }
    )


class AlertActionResult(BaseModel):
    """Outcome of one alert action."""

    type: str
    success: bool
    message: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class Alert(BaseModel):
    """A fired alert. Created exactly once per firing."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    rule_id: str
    rule_name: str
    priority: AlertPriority
    title: str
    message: str
    address: str
    chain_id: int
    user_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    triggered_at: datetime = Field(default_factory=utcnow)
    status: AlertStatus = Field(default=AlertStatus.TRIGGERED)
    actions: List[AlertActionResult] = Field(default_factory=list)

    def transition(self, status: AlertStatus) -> None:
        """Move the alert to ``status``.

        Raises:
            AlertStateError: If the transition is not allowed
        """
        if status not in ALERT_TRANSITIONS[self.status]:
            raise AlertStateError(
                f"Cannot move alert {self.id} from {self.status.value} to {status.value}"
            )
        self.status = status

    def acknowledge(self) -> None:
        self.transition(AlertStatus.ACKNOWLEDGED)

    def resolve(self) -> None:
        self.transition(AlertStatus.RESOLVED)

    def suppress(self) -> None:
        self.transition(AlertStatus.SUPPRESSED)
