"""Continuous risk monitoring for a registered set of addresses.

The monitor owns the watched addresses and the alert rules. A background
thread sweeps all addresses on a fixed interval:
1. Snapshot the addresses (read lock, released before any I/O)
2. Skip addresses checked within the re-check window
3. Classify each address via the chain reader; assess contracts
4. Record the check result (write lock)
5. Evaluate the address's rules and dispatch alerts for those that fire

A failure while checking one address is logged and contained to that
address; nothing stops the sweep loop except ``stop()``.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Protocol

from riskwatch.alerts.dispatcher import AlertDispatcher
from riskwatch.chain import ChainReader, is_contract
from riskwatch.config import MonitorConfig
from riskwatch.engine.rules import RuleEvaluator, create_default_rules, in_cooldown
from riskwatch.exceptions import AddressNotMonitoredError, MonitorStateError
from riskwatch.models import (
    Alert,
    AlertRule,
    ContractRiskRequest,
    MonitoredAddress,
    RiskAssessment,
    utcnow,
)
from riskwatch.monitor.store import WatchStore

logger = logging.getLogger(__name__)

AlertSink = Callable[[Alert], Any]


class ContractAssessor(Protocol):
    def assess_contract(self, request: ContractRiskRequest) -> RiskAssessment:
        ...


class RiskMonitor:
    """Watches addresses and fires rule-driven alerts.

    Lifecycle: stopped -> running -> stopped. ``start`` and ``stop`` raise
    MonitorStateError when called in the wrong state. A stopped monitor may
    be started again.
    """

    def __init__(
        self,
        assessor: ContractAssessor,
        chain_reader: Optional[ChainReader] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        evaluator: Optional[RuleEvaluator] = None,
        rules: Optional[Iterable[AlertRule]] = None,
        config: Optional[MonitorConfig] = None,
        alert_sinks: Optional[Iterable[AlertSink]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize monitor.

        Args:
            assessor: Contract risk assessor (usually a RiskAssessmentService)
            chain_reader: Used to tell contracts from plain accounts
            dispatcher: Alert dispatcher (log channel only if None)
            evaluator: Rule evaluator (uses default if None)
            rules: Initial rules (uses ``create_default_rules`` if None)
            config: Sweep timing (uses defaults if None)
            alert_sinks: Callables invoked with every fired alert
            clock: Source of the current time
        """
        self.assessor = assessor
        self.chain_reader = chain_reader
        self.dispatcher = dispatcher or AlertDispatcher()
        self.evaluator = evaluator or RuleEvaluator()
        self.config = config or MonitorConfig()
        self.clock = clock
        self.alert_sinks: List[AlertSink] = list(alert_sinks or ())

        self.store = WatchStore()
        for rule in create_default_rules() if rules is None else rules:
            self.store.put_rule(rule)

        self._history: Deque[Alert] = deque(maxlen=self.config.alert_history_size)
        self._history_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._running = False
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the background sweep loop and return immediately.

        Raises:
            MonitorStateError: If the monitor is already running
        """
        with self._state_lock:
            if self._running:
                raise MonitorStateError("risk monitor is already running")

            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="risk-monitor", daemon=True
            )
            self._running = True
            self._thread.start()

        logger.info(
            "Risk monitor started",
            extra={
                "monitored_addresses": self.store.address_count(),
                "alert_rules": len(self.store.rules()),
                "alert_channels": len(self.dispatcher.channels),
            },
        )

    def stop(self) -> None:
        """Signal the sweep loop to end.

        Does not wait for an in-flight sweep; use ``join`` for that.

        Raises:
            MonitorStateError: If the monitor is not running
        """
        with self._state_lock:
            if not self._running:
                raise MonitorStateError("risk monitor is not running")
            self._stop_event.set()
            self._running = False

        logger.info("Risk monitor stopped")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the background thread to exit.

        Returns:
            True if no background thread is alive afterwards
        """
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self, stop_event: threading.Event) -> None:
        interval = self.config.sweep_interval.total_seconds()
        while not stop_event.wait(interval):
            try:
                self._sweep(stop_event)
            except Exception:
                logger.exception("Monitoring sweep failed")

    # Mutation

    def add_monitored_address(
        self,
        address: str,
        chain_id: int,
        user_id: str,
        rule_ids: Optional[Iterable[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MonitoredAddress:
        """Register an address for monitoring.

        Re-registering an (address, chain) pair replaces the previous entry.
        The address is picked up by the next sweep.

        Returns:
            The stored record
        """
        if not address:
            raise ValueError("address is required")

        monitored = MonitoredAddress(
            address=address,
            chain_id=chain_id,
            user_id=str(user_id),
            alert_rules=list(rule_ids or ()),
            metadata=dict(metadata or {}),
            created_at=self.clock(),
        )
        self.store.put_address(monitored)

        logger.info(
            "Address added to monitoring",
            extra={
                "address": address,
                "chain_id": chain_id,
                "user_id": monitored.user_id,
                "alert_rules": monitored.alert_rules,
            },
        )
        return monitored

    def remove_monitored_address(self, address: str, chain_id: int) -> None:
        """Stop monitoring an address.

        Raises:
            AddressNotMonitoredError: If the address is not monitored
        """
        if not self.store.remove_address(address, chain_id):
            raise AddressNotMonitoredError(address, chain_id)

        logger.info(
            "Address removed from monitoring", extra={"address": address, "chain_id": chain_id}
        )

    def add_alert_rule(self, rule: AlertRule) -> None:
        """Register or replace an alert rule."""
        if rule is None:
            raise ValueError("rule is required")

        self.store.put_rule(rule)

        logger.info(
            "Alert rule added",
            extra={"rule_id": rule.id, "rule_name": rule.name, "enabled": rule.enabled},
        )

    # Queries

    def list_monitored_addresses(self) -> List[MonitoredAddress]:
        return self.store.snapshot_addresses()

    def get_monitored_address(self, address: str, chain_id: int) -> Optional[MonitoredAddress]:
        return self.store.get_address(address, chain_id)

    def get_alert_rule(self, rule_id: str) -> Optional[AlertRule]:
        return self.store.get_rule(rule_id)

    def list_alert_rules(self) -> List[AlertRule]:
        return self.store.rules()

    @property
    def recent_alerts(self) -> List[Alert]:
        with self._history_lock:
            return list(self._history)

    # Sweep

    def run_sweep(self) -> List[Alert]:
        """Run one sweep synchronously.

        Returns:
            Alerts fired during this sweep
        """
        return self._sweep(None)

    def _sweep(self, stop_event: Optional[threading.Event]) -> List[Alert]:
        addresses = self.store.snapshot_addresses()
        fired: List[Alert] = []

        for monitored in addresses:
            if stop_event is not None and stop_event.is_set():
                logger.debug("Sweep interrupted by stop request")
                break
            fired.extend(self._check_address(monitored))

        return fired

    def _check_address(self, monitored: MonitoredAddress) -> List[Alert]:
        now = self.clock()
        if (
            monitored.last_checked is not None
            and now - monitored.last_checked < self.config.recheck_interval
        ):
            return []

        try:
            contract = is_contract(self.chain_reader, monitored.address, monitored.chain_id)
        except Exception:
            logger.warning(
                "Address classification failed",
                exc_info=True,
                extra={"address": monitored.address, "chain_id": monitored.chain_id},
            )
            return []

        if not contract:
            self.store.record_check(monitored.address, monitored.chain_id, now)
            return []

        request = ContractRiskRequest(
            contract_address=monitored.address,
            chain_id=monitored.chain_id,
            analyze_code=True,
            check_rug_pull=True,
            include_ml_models=True,
        )
        try:
            assessment = self.assessor.assess_contract(request)
        except Exception:
            logger.warning(
                "Contract risk assessment failed",
                exc_info=True,
                extra={"address": monitored.address, "chain_id": monitored.chain_id},
            )
            return []

        if not self.store.record_check(
            monitored.address, monitored.chain_id, now, assessment.risk_score
        ):
            # Removed while we were assessing it
            return []

        return self._evaluate_alert_rules(monitored, assessment)

    def _evaluate_alert_rules(
        self, monitored: MonitoredAddress, assessment: RiskAssessment
    ) -> List[Alert]:
        fired: List[Alert] = []

        for rule_id in monitored.alert_rules:
            rule = self.store.get_rule(rule_id)
            if rule is None or not rule.enabled:
                continue

            now = self.clock()
            if in_cooldown(rule, now):
                continue

            if not self.evaluator.evaluate(rule, assessment):
                continue

            if not self.store.claim_rule(rule.id, now):
                continue

            fired.append(self._trigger_alert(rule, monitored, assessment, now))

        return fired

    def _trigger_alert(
        self,
        rule: AlertRule,
        monitored: MonitoredAddress,
        assessment: RiskAssessment,
        now: datetime,
    ) -> Alert:
        alert = Alert(
            rule_id=rule.id,
            rule_name=rule.name,
            priority=rule.priority,
            title=f"Risk Alert: {rule.name}",
            message=(
                f"Risk alert for address {monitored.address}: "
                f"Risk score {assessment.risk_score}, Safety grade {assessment.safety_grade.value}"
            ),
            address=monitored.address,
            chain_id=monitored.chain_id,
            user_id=monitored.user_id,
            data={
                "assessment_id": assessment.id,
                "risk_score": assessment.risk_score,
                "safety_grade": assessment.safety_grade.value,
                "risk_level": assessment.risk_level.value,
                "confidence": assessment.confidence,
                "warnings": list(assessment.warnings),
            },
            triggered_at=now,
        )

        self.dispatcher.dispatch(alert, rule.actions)

        with self._history_lock:
            self._history.append(alert)

        for sink in self.alert_sinks:
            try:
                sink(alert)
            except Exception:
                logger.exception("Alert sink failed", extra={"alert_id": alert.id})

        logger.info(
            "Alert triggered",
            extra={
                "alert_id": alert.id,
                "rule_id": rule.id,
                "address": monitored.address,
                "risk_score": assessment.risk_score,
                "priority": rule.priority.value,
            },
        )
        return alert
