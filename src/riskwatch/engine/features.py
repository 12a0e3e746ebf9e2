"""Feature providers supplying model inputs.

Feature extraction from raw chain data lives outside this package. A
provider returns, for a given model and request, a mapping of feature name
to a value normalized to roughly [0, 1] where higher means riskier. Any
feature the provider leaves out is filled with a neutral value by
the scoring engine.
"""

from typing import Dict, Protocol, Union

from riskwatch.models import ContractRiskRequest, RiskModel, TransactionRiskRequest

RiskRequest = Union[TransactionRiskRequest, ContractRiskRequest]

WEI_PER_ETH = 10**18
WEI_PER_GWEI = 10**9


class FeatureProvider(Protocol):
    """Source of numeric risk features."""

    def get_features(self, model: RiskModel, request: RiskRequest) -> Dict[str, float]:
        ...


class DefaultFeatureProvider:
    """Derives what it can from the request and leaves everything else out.

    Transaction value, gas price and gas limit are normalized directly from
    the request. History-based signals (address age, holder concentration,
    liquidity, ...) would need an indexer, so they are not reported and the
    models score them at their neutral value. Contract heuristics only fire
    on features a real provider supplies.
    """

    def get_features(self, model: RiskModel, request: RiskRequest) -> Dict[str, float]:
        if isinstance(request, TransactionRiskRequest):
            return self._transaction_features(request)
        return {}

    def _transaction_features(self, request: TransactionRiskRequest) -> Dict[str, float]:
        features = {
            "value": min(1.0, (request.value / WEI_PER_ETH) / 1000.0),
            "gas_price": 0.0,
            "gas_limit": min(1.0, request.gas_limit / 1_000_000.0),
        }
        if request.gas_price is not None:
            features["gas_price"] = min(1.0, (request.gas_price / WEI_PER_GWEI) / 500.0)
        return features
