"""Risk assessment service for transactions and smart contracts.

This is the main entry point for scoring. For each request it:
1. Checks the assessment cache by request fingerprint
2. Gathers risk factors from rule-based heuristics
3. Optionally applies weighted risk models (and the rug pull detector)
4. Aggregates factors into score, grade, level and confidence
5. Caches the result until its expiry

Collaborator failures (feature provider, chain reader, scanner) only drop
the affected contribution; an assessment is always produced.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from riskwatch.chain import ChainReader, VulnerabilityScanner
from riskwatch.config import ScoringConfig
from riskwatch.engine.cache import AssessmentCache, contract_fingerprint, transaction_fingerprint
from riskwatch.engine.features import (
    WEI_PER_ETH,
    WEI_PER_GWEI,
    DefaultFeatureProvider,
    FeatureProvider,
    RiskRequest,
)
from riskwatch.engine.scoring import (
    CONTRACT_MODEL,
    RUG_PULL_MODEL,
    TRANSACTION_MODEL,
    RiskScorer,
    create_default_models,
    predict,
)
from riskwatch.models import (
    ContractRiskRequest,
    RiskAssessment,
    RiskFactor,
    RiskModel,
    TransactionRiskRequest,
    utcnow,
)

logger = logging.getLogger(__name__)

# Function selectors worth flagging in calldata.
TOKEN_SELECTORS = {
    "0xa9059cbb": "transfer(address,uint256) - Token transfer",
    "0x095ea7b3": "approve(address,uint256) - Token approval",
    "0x23b872dd": "transferFrom(address,address,uint256) - Transfer from",
}

# (feature, factor type, description, impact, weight); fires when the
# normalized feature reaches ScoringConfig.contract_feature_alert_level.
CONTRACT_HEURISTICS = [
    ("contract_age", "new_contract", "Contract was deployed recently", 0.5, 0.6),
    ("verification_status", "unverified_contract", "Contract source is not verified", 0.6, 0.8),
    ("liquidity", "low_liquidity", "Contract has thin liquidity", 0.4, 0.6),
    ("unique_users", "low_activity", "Few unique addresses interact with the contract", 0.3, 0.5),
]

# severity -> (impact, weight)
VULNERABILITY_SEVERITY = {
    "critical": (0.9, 1.0),
    "high": (0.7, 0.8),
    "medium": (0.4, 0.6),
    "low": (0.2, 0.4),
}

EIP1167_PREFIX = bytes.fromhex("363d3d373d3d3d363d73")
EIP1967_IMPLEMENTATION_SLOT = bytes.fromhex(
    "360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc"
)


@dataclass
class _Findings:
    factors: List[RiskFactor] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    ml_predictions: Dict[str, float] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class RiskAssessmentService:
    """Scores transactions and contracts.

    Holds an explicit model registry and configuration; no module-level
    state is consulted, so independently configured services can coexist.
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        models: Optional[Dict[str, RiskModel]] = None,
        feature_provider: Optional[FeatureProvider] = None,
        chain_reader: Optional[ChainReader] = None,
        vulnerability_scanner: Optional[VulnerabilityScanner] = None,
        cache: Optional[AssessmentCache] = None,
        scorer: Optional[RiskScorer] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize assessment service.

        Args:
            config: Scoring constants (uses defaults if None)
            models: Model registry (uses ``create_default_models`` if None)
            feature_provider: Source of model features (uses the stub provider if None)
            chain_reader: Chain access for code inspection (optional)
            vulnerability_scanner: Static analyzer for ``analyze_code`` requests (optional)
            cache: Assessment cache (a private cache is created if None)
            scorer: Factor aggregator (built from ``config`` if None)
            clock: Source of the current time
        """
        self.config = config or ScoringConfig()
        self.models = dict(models) if models is not None else create_default_models()
        self.feature_provider = feature_provider or DefaultFeatureProvider()
        self.chain_reader = chain_reader
        self.vulnerability_scanner = vulnerability_scanner
        self.clock = clock
        self.cache = cache or AssessmentCache(clock=clock)
        self.scorer = scorer or RiskScorer(
            confidence_weight_divisor=self.config.confidence_weight_divisor,
            min_confidence=self.config.min_confidence,
        )

    def assess_transaction(self, request: TransactionRiskRequest) -> RiskAssessment:
        """Assess the risk of a transaction.

        Args:
            request: Transaction to assess

        Returns:
            Risk assessment (possibly served from cache)
        """
        if request is None:
            raise ValueError("request is required")

        cache_key = transaction_fingerprint(request)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info("Risk assessment found in cache", extra={"cache_key": cache_key})
            return cached

        findings = _Findings()
        self._analyze_transaction_factors(request, findings)

        if request.include_ml_models and self.config.enable_ml_models:
            model, prediction = self._run_model(TRANSACTION_MODEL, TRANSACTION_MODEL, request, findings)
            if model is not None and prediction > model.thresholds.get("high_risk", 1.0):
                findings.factors.append(
                    RiskFactor(
                        type="ml_prediction",
                        description=f"ML model predicts high risk ({prediction:.2f})",
                        impact=prediction * self.config.transaction_model_damping,
                        weight=self.config.transaction_model_weight,
                        evidence=f"ML model: {model.name}, prediction: {prediction:.3f}",
                    )
                )

        assessment = self._finalize(findings, request, cache_key)
        self.cache.put(cache_key, assessment)

        logger.info(
            "Transaction risk assessment completed",
            extra={
                "assessment_id": assessment.id,
                "risk_score": assessment.risk_score,
                "safety_grade": assessment.safety_grade.value,
                "risk_level": assessment.risk_level.value,
            },
        )
        return assessment

    def assess_contract(self, request: ContractRiskRequest) -> RiskAssessment:
        """Assess the risk of a smart contract.

        Args:
            request: Contract to assess

        Returns:
            Risk assessment (possibly served from cache)
        """
        if request is None:
            raise ValueError("request is required")

        cache_key = contract_fingerprint(request)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info("Contract risk assessment found in cache", extra={"cache_key": cache_key})
            return cached

        findings = _Findings()
        self._analyze_contract_factors(request, findings)

        if request.analyze_code:
            self._analyze_contract_code(request, findings)

        if request.include_ml_models and self.config.enable_ml_models:
            model, prediction = self._run_model(CONTRACT_MODEL, CONTRACT_MODEL, request, findings)
            if model is not None and prediction > model.thresholds.get("high_risk", 1.0):
                findings.factors.append(
                    RiskFactor(
                        type="ml_contract_risk",
                        description=f"ML model predicts high contract risk ({prediction:.2f})",
                        impact=prediction * self.config.contract_model_damping,
                        weight=self.config.contract_model_weight,
                        evidence=f"ML model: {model.name}, prediction: {prediction:.3f}",
                    )
                )

        if request.check_rug_pull:
            self._check_rug_pull(request, findings)

        assessment = self._finalize(findings, request, cache_key)
        self.cache.put(cache_key, assessment)

        logger.info(
            "Contract risk assessment completed",
            extra={
                "assessment_id": assessment.id,
                "contract_address": request.contract_address,
                "risk_score": assessment.risk_score,
                "safety_grade": assessment.safety_grade.value,
                "risk_level": assessment.risk_level.value,
            },
        )
        return assessment

    def _finalize(self, findings: _Findings, request: RiskRequest, cache_key: str) -> RiskAssessment:
        summary = self.scorer.calculate_risk_score(findings.factors)
        now = self.clock()

        metadata: Dict[str, Any] = dict(request.metadata)
        metadata.update(findings.metadata)
        metadata["cache_key"] = cache_key

        return RiskAssessment(
            contract_address=getattr(request, "contract_address", None),
            chain_id=request.chain_id,
            risk_score=summary.risk_score,
            safety_grade=summary.safety_grade,
            risk_level=summary.risk_level,
            confidence=summary.confidence,
            factors=findings.factors,
            recommendations=findings.recommendations + self.scorer.recommendations(summary.risk_level),
            warnings=findings.warnings,
            ml_predictions=findings.ml_predictions,
            assessed_at=now,
            expires_at=now + self.config.cache_ttl,
            metadata=metadata,
        )

    def _run_model(
        self,
        model_key: str,
        prediction_key: str,
        request: RiskRequest,
        findings: _Findings,
    ) -> Tuple[Optional[RiskModel], float]:
        """Evaluate one registered model.

        Returns:
            (model, prediction); model is None when the model is not
            registered or its features could not be obtained
        """
        model = self.models.get(model_key)
        if model is None:
            logger.debug("Model not registered, skipping", extra={"model": model_key})
            return None, 0.0

        try:
            features = self.feature_provider.get_features(model, request)
            prediction = predict(model, features, neutral=self.config.neutral_feature_value)
        except Exception:
            logger.warning(
                "ML model application failed", exc_info=True, extra={"model": model.name}
            )
            return None, 0.0

        findings.ml_predictions[prediction_key] = prediction
        return model, prediction

    def _analyze_transaction_factors(
        self, request: TransactionRiskRequest, findings: _Findings
    ) -> None:
        to_address = request.to_address.lower()

        reason = self.config.known_malicious_addresses.get(to_address)
        if reason is not None:
            findings.factors.append(
                RiskFactor(
                    type="malicious_address",
                    description=f"Destination address is known malicious: {reason}",
                    impact=0.9,
                    weight=1.0,
                    evidence=f"Address {request.to_address} flagged as malicious",
                )
            )
            findings.warnings.append("Transaction involves known malicious address")

        eth_value = request.value / WEI_PER_ETH
        if eth_value > self.config.high_value_eth:
            findings.factors.append(
                RiskFactor(
                    type="high_value",
                    description=f"High value transaction: {eth_value:.2f} ETH",
                    impact=0.3,
                    weight=0.7,
                    evidence=f"Transaction value: {eth_value:.6f} ETH",
                )
            )
            findings.recommendations.append(
                "Consider using hardware wallet for high-value transactions"
            )

        if request.gas_limit > self.config.high_gas_limit:
            findings.factors.append(
                RiskFactor(
                    type="high_gas_limit",
                    description=f"Unusually high gas limit: {request.gas_limit}",
                    impact=0.2,
                    weight=0.5,
                    evidence=f"Gas limit: {request.gas_limit}",
                )
            )

        if request.gas_price is not None:
            gwei = request.gas_price / WEI_PER_GWEI
            if gwei > self.config.high_gas_price_gwei:
                findings.factors.append(
                    RiskFactor(
                        type="high_gas_price",
                        description=f"High gas price: {gwei:.2f} gwei",
                        impact=0.1,
                        weight=0.3,
                        evidence=f"Gas price: {gwei:.2f} gwei",
                    )
                )

        if request.data and request.data != "0x" and len(request.data) >= 10:
            selector = request.data[:10].lower()
            description = TOKEN_SELECTORS.get(selector)
            if description is not None:
                findings.factors.append(
                    RiskFactor(
                        type="token_interaction",
                        description=f"Token interaction detected: {description}",
                        impact=0.2,
                        weight=0.6,
                        evidence=f"Function signature: {selector}",
                    )
                )

        if to_address.startswith("0x000000"):
            findings.factors.append(
                RiskFactor(
                    type="suspicious_pattern",
                    description="Destination address follows suspicious pattern",
                    impact=0.4,
                    weight=0.7,
                    evidence=f"Address pattern: {request.to_address}",
                )
            )

    def _analyze_contract_factors(self, request: ContractRiskRequest, findings: _Findings) -> None:
        model = self.models.get(CONTRACT_MODEL)
        if model is not None:
            try:
                features = self.feature_provider.get_features(model, request)
            except Exception:
                logger.warning(
                    "Contract feature lookup failed",
                    exc_info=True,
                    extra={"contract_address": request.contract_address},
                )
                features = {}

            level = self.config.contract_feature_alert_level
            for feature, factor_type, description, impact, weight in CONTRACT_HEURISTICS:
                value = features.get(feature)
                if value is not None and value >= level:
                    findings.factors.append(
                        RiskFactor(
                            type=factor_type,
                            description=description,
                            impact=impact,
                            weight=weight,
                            evidence=f"{feature}={value:.2f}",
                        )
                    )

        if self.chain_reader is None:
            return

        try:
            code = self.chain_reader.get_code(request.contract_address, request.chain_id)
        except Exception:
            logger.warning(
                "Contract code lookup failed",
                exc_info=True,
                extra={"contract_address": request.contract_address, "chain_id": request.chain_id},
            )
            return

        if not code:
            findings.warnings.append("No contract code deployed at this address")
        elif code.startswith(EIP1167_PREFIX) or EIP1967_IMPLEMENTATION_SLOT in code:
            findings.factors.append(
                RiskFactor(
                    type="proxy_contract",
                    description="Contract delegates to an upgradeable or cloned implementation",
                    impact=0.3,
                    weight=0.5,
                    evidence=f"Runtime code size: {len(code)} bytes",
                )
            )
            findings.recommendations.append("Review the implementation contract behind the proxy")

    def _analyze_contract_code(self, request: ContractRiskRequest, findings: _Findings) -> None:
        if self.vulnerability_scanner is None:
            logger.debug("No vulnerability scanner configured, skipping code analysis")
            return

        try:
            results = self.vulnerability_scanner.scan(request.contract_address, request.chain_id)
        except Exception:
            logger.warning(
                "Contract code analysis failed",
                exc_info=True,
                extra={"contract_address": request.contract_address},
            )
            return

        findings.metadata["vulnerability_count"] = len(results)
        for finding in results:
            severity = finding.severity.lower()
            impact, weight = VULNERABILITY_SEVERITY.get(severity, VULNERABILITY_SEVERITY["medium"])
            findings.factors.append(
                RiskFactor(
                    type="code_vulnerability",
                    description=finding.title or finding.rule_id,
                    impact=impact,
                    weight=weight,
                    evidence=f"Scanner rule: {finding.rule_id}, severity: {severity}",
                )
            )
            if severity in ("critical", "high"):
                findings.warnings.append(
                    f"{severity.capitalize()} vulnerability: {finding.title or finding.rule_id}"
                )

    def _check_rug_pull(self, request: ContractRiskRequest, findings: _Findings) -> None:
        model, prediction = self._run_model(RUG_PULL_MODEL, "rug_pull_risk", request, findings)
        if model is None:
            return

        threshold = model.thresholds.get("rug_pull_possible", model.thresholds.get("possible", 1.0))
        if prediction > threshold:
            findings.factors.append(
                RiskFactor(
                    type="rug_pull_risk",
                    description=f"Potential rug pull detected ({prediction:.2f})",
                    impact=prediction,
                    weight=self.config.rug_pull_weight,
                    evidence=f"Rug pull model: {model.name}, prediction: {prediction:.3f}",
                )
            )
            findings.warnings.append("Potential rug pull indicators detected")


def create_assessment_service(
    config: Optional[ScoringConfig] = None,
    chain_reader: Optional[ChainReader] = None,
    feature_provider: Optional[FeatureProvider] = None,
) -> RiskAssessmentService:
    """Factory function to create an assessment service with default models.

    Args:
        config: Scoring constants (uses defaults if None)
        chain_reader: Chain access for code inspection (optional)
        feature_provider: Source of model features (optional)

    Returns:
        Configured RiskAssessmentService
    """
    return RiskAssessmentService(
        config=config,
        models=create_default_models(),
        feature_provider=feature_provider,
        chain_reader=chain_reader,
    )
