"""Chain access used to classify monitored addresses.

Only the narrow ``get_code`` contract is needed here: an address with
non-empty runtime code is a contract, anything else is a plain account.
"""

import logging
from typing import Dict, List, Optional, Protocol

from web3 import Web3

from riskwatch.exceptions import ChainUnavailableError
from riskwatch.models import VulnerabilityFinding

logger = logging.getLogger(__name__)


class ChainReader(Protocol):
    """Read-only chain access."""

    def get_code(self, address: str, chain_id: int) -> bytes:
        ...


class VulnerabilityScanner(Protocol):
    """Static analysis service for deployed contracts."""

    def scan(self, address: str, chain_id: int) -> List[VulnerabilityFinding]:
        ...


class Web3ChainReader:
    """ChainReader backed by one JSON-RPC endpoint per chain."""

    def __init__(self, rpc_urls: Dict[int, str], timeout: float = 10.0) -> None:
        """Initialize reader.

        Args:
            rpc_urls: Chain id -> HTTP JSON-RPC endpoint
            timeout: Per-request timeout in seconds
        """
        self._clients: Dict[int, Web3] = {
            chain_id: Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
            for chain_id, url in rpc_urls.items()
        }

    @property
    def chain_ids(self) -> List[int]:
        return sorted(self._clients)

    def client(self, chain_id: int) -> Web3:
        try:
            return self._clients[chain_id]
        except KeyError:
            raise ChainUnavailableError(f"No RPC endpoint configured for chain {chain_id}") from None

    def get_code(self, address: str, chain_id: int) -> bytes:
        w3 = self.client(chain_id)
        code = bytes(w3.eth.get_code(Web3.to_checksum_address(address)))
        logger.debug(
            "Fetched contract code",
            extra={"address": address, "chain_id": chain_id, "code_size": len(code)},
        )
        return code


def is_contract(reader: Optional[ChainReader], address: str, chain_id: int) -> bool:
    """Return True when ``address`` has deployed code.

    Without a reader every address is treated as a plain account.
    """
    if reader is None:
        return False
    return len(reader.get_code(address, chain_id)) > 0
