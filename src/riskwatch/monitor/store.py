"""Owned store for monitored addresses and alert rules.

Both maps sit behind a single reader/writer lock. Callers only ever see
copies; the raw dictionaries never leave this module.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from riskwatch.engine.rules import in_cooldown
from riskwatch.models import AlertRule, MonitoredAddress, address_key


class ReadWriteLock:
    """Many concurrent readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class WatchStore:
    """Monitored addresses keyed by (address, chain) plus rules keyed by id."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._addresses: Dict[str, MonitoredAddress] = {}
        self._rules: Dict[str, AlertRule] = {}

    # Addresses

    def put_address(self, monitored: MonitoredAddress) -> None:
        """Insert or replace the record for ``monitored``'s (address, chain) pair."""
        with self._lock.write():
            self._addresses[monitored.key] = monitored.model_copy(deep=True)

    def remove_address(self, address: str, chain_id: int) -> bool:
        with self._lock.write():
            return self._addresses.pop(address_key(address, chain_id), None) is not None

    def get_address(self, address: str, chain_id: int) -> Optional[MonitoredAddress]:
        with self._lock.read():
            monitored = self._addresses.get(address_key(address, chain_id))
            return monitored.model_copy(deep=True) if monitored is not None else None

    def snapshot_addresses(self) -> List[MonitoredAddress]:
        with self._lock.read():
            return [monitored.model_copy(deep=True) for monitored in self._addresses.values()]

    def record_check(
        self,
        address: str,
        chain_id: int,
        checked_at: datetime,
        risk_score: Optional[int] = None,
    ) -> bool:
        """Update check bookkeeping for one address.

        Returns:
            False if the address was removed in the meantime
        """
        with self._lock.write():
            monitored = self._addresses.get(address_key(address, chain_id))
            if monitored is None:
                return False
            monitored.last_checked = checked_at
            if risk_score is not None:
                monitored.risk_score = risk_score
            return True

    def address_count(self) -> int:
        with self._lock.read():
            return len(self._addresses)

    # Rules

    def put_rule(self, rule: AlertRule) -> None:
        with self._lock.write():
            self._rules[rule.id] = rule.model_copy(deep=True)

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self._lock.read():
            rule = self._rules.get(rule_id)
            return rule.model_copy(deep=True) if rule is not None else None

    def rules(self) -> List[AlertRule]:
        with self._lock.read():
            return [rule.model_copy(deep=True) for rule in self._rules.values()]

    def claim_rule(self, rule_id: str, now: datetime) -> bool:
        """Mark a rule as fired at ``now`` unless it is disabled or cooling down.

        Check and update happen under one write lock, so two sweeps can
        never both fire the same rule inside its cooldown.
        """
        with self._lock.write():
            rule = self._rules.get(rule_id)
            if rule is None or not rule.enabled or in_cooldown(rule, now):
                return False
            rule.last_triggered = now
            return True
