"""Assessment cache keyed by request fingerprint.

Entries carry their own expiry (``RiskAssessment.expires_at``). There is
no eviction thread: a stale entry is dropped the next time it is looked up.
Stored and returned assessments are deep copies.
"""

import hashlib
import json
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from riskwatch.models import (
    ContractRiskRequest,
    RiskAssessment,
    TransactionRiskRequest,
    utcnow,
)


def _digest(fields: Dict[str, Any]) -> str:
    payload = json.dumps(fields, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def transaction_fingerprint(request: TransactionRiskRequest) -> str:
    """Deterministic cache key for a transaction request."""
    return "tx_risk_" + _digest(
        {
            "from": request.from_address.lower(),
            "to": request.to_address.lower(),
            "value": str(request.value),
            "chain_id": request.chain_id,
            "gas_limit": request.gas_limit,
            "gas_price": None if request.gas_price is None else str(request.gas_price),
            "data": request.data.lower(),
            "ml": request.include_ml_models,
        }
    )


def contract_fingerprint(request: ContractRiskRequest) -> str:
    """Deterministic cache key for a contract request."""
    return "contract_risk_" + _digest(
        {
            "address": request.contract_address.lower(),
            "chain_id": request.chain_id,
            "analyze_code": request.analyze_code,
            "check_rug_pull": request.check_rug_pull,
            "ml": request.include_ml_models,
        }
    )


class AssessmentCache:
    """Process-wide map of fingerprint -> assessment with lazy expiry."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._entries: Dict[str, RiskAssessment] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[RiskAssessment]:
        """Return a copy of the cached assessment, or None if absent or expired."""
        with self._lock:
            assessment = self._entries.get(key)
            if assessment is None:
                return None
            if assessment.is_expired(self._clock()):
                del self._entries[key]
                return None
            return assessment.model_copy(deep=True)

    def put(self, key: str, assessment: RiskAssessment) -> None:
        with self._lock:
            self._entries[key] = assessment.model_copy(deep=True)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
