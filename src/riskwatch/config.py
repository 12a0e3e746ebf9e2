"""Configuration management for RiskWatch."""

from datetime import timedelta
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScoringConfig(BaseModel):
    """Tunable constants for the scoring engine.

    The damping factors, weights and thresholds are heuristic defaults,
    not calibrated values.
    """

    enable_ml_models: bool = True
    cache_ttl: timedelta = timedelta(minutes=15)
    confidence_weight_divisor: float = 5.0
    min_confidence: float = 0.1

    transaction_model_damping: float = 0.8
    transaction_model_weight: float = 0.6
    contract_model_damping: float = 0.7
    contract_model_weight: float = 0.7
    rug_pull_weight: float = 0.9

    neutral_feature_value: float = 0.5
    contract_feature_alert_level: float = 0.7

    high_value_eth: float = 100.0
    high_gas_limit: int = 1_000_000
    high_gas_price_gwei: float = 200.0
    known_malicious_addresses: Dict[str, str] = Field(
        default_factory=lambda: {
            "0x0000000000000000000000000000000000000000": "Null address",
        }
    )


class MonitorConfig(BaseModel):
    """Timing configuration for the risk monitor."""

    sweep_interval: timedelta = timedelta(seconds=30)
    recheck_interval: timedelta = timedelta(minutes=5)
    alert_history_size: int = 1000


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database (alert audit trail)
    database_url: str = "sqlite:///./riskwatch.db"

    # Chain RPC endpoints, keyed by chain id
    rpc_urls: Dict[int, str] = Field(default_factory=dict)
    rpc_timeout_seconds: float = 10.0

    # Scoring
    enable_ml_models: bool = True
    cache_ttl_seconds: int = 900
    transaction_model_damping: float = 0.8
    contract_model_damping: float = 0.7
    known_malicious_addresses: List[str] = Field(default_factory=list)

    # Monitor
    sweep_interval_seconds: float = 30.0
    recheck_interval_seconds: float = 300.0

    # Alert channels
    webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = 5.0
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    alert_email_from: str = "riskwatch@localhost"
    alert_email_to: List[str] = Field(default_factory=list)

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    def scoring_config(self) -> ScoringConfig:
        """Build the scoring engine configuration from these settings."""
        config = ScoringConfig(
            enable_ml_models=self.enable_ml_models,
            cache_ttl=timedelta(seconds=self.cache_ttl_seconds),
            transaction_model_damping=self.transaction_model_damping,
            contract_model_damping=self.contract_model_damping,
        )
        for address in self.known_malicious_addresses:
            config.known_malicious_addresses[address.lower()] = "Configured blocklist"
        return config

    def monitor_config(self) -> MonitorConfig:
        """Build the monitor configuration from these settings."""
        return MonitorConfig(
            sweep_interval=timedelta(seconds=self.sweep_interval_seconds),
            recheck_interval=timedelta(seconds=self.recheck_interval_seconds),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
