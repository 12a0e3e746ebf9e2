"""Exception hierarchy for RiskWatch."""


class RiskWatchError(Exception):
    """Base class for all RiskWatch errors."""


class MonitorStateError(RiskWatchError):
    """Raised on an invalid monitor lifecycle transition."""


class AlertStateError(RiskWatchError):
    """Raised on an invalid alert status transition."""


class ChainUnavailableError(RiskWatchError):
    """Raised when no chain reader is configured for a chain id."""


class AddressNotMonitoredError(RiskWatchError, KeyError):
    """Raised when removing an address that is not being monitored."""

    def __init__(self, address: str, chain_id: int) -> None:
        super().__init__(f"Address {address} on chain {chain_id} is not monitored")
        self.address = address
        self.chain_id = chain_id

    def __str__(self) -> str:
        return self.args[0]
