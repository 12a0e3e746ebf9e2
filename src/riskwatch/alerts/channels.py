"""Alert delivery channels.

Every channel accepts an Alert and reports ``(success, message)``. The log
channel is always available; webhook and email channels stay disabled
until they are configured.
"""

import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Callable, List, Optional, Sequence, Tuple

import requests

from riskwatch.models import ActionType, Alert

logger = logging.getLogger(__name__)

SendResult = Tuple[bool, str]


class AlertChannel(ABC):
    """Base class for alert delivery mechanisms."""

    kind: str = ""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    @abstractmethod
    def send(self, alert: Alert) -> SendResult:
        """Deliver an alert.

        Returns:
            (success, human-readable outcome)
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(kind={self.kind}, enabled={self.enabled})>"


class LogAlertChannel(AlertChannel):
    """Writes alerts to the application log at WARNING level."""

    kind = ActionType.LOG.value

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        super().__init__(enabled=True)
        self.log = log or logging.getLogger("riskwatch.alerts")

    def send(self, alert: Alert) -> SendResult:
        self.log.warning(
            "Risk alert",
            extra={
                "alert_id": alert.id,
                "rule_name": alert.rule_name,
                "priority": alert.priority.value,
                "address": alert.address,
                "chain_id": alert.chain_id,
                "alert_message": alert.message,
                "data": alert.data,
            },
        )
        return True, "Alert logged"


class WebhookAlertChannel(AlertChannel):
    """POSTs the alert as JSON to a webhook URL."""

    kind = ActionType.WEBHOOK.value

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        """Initialize webhook channel.

        Args:
            url: Webhook endpoint (channel is disabled without one)
            timeout: Request timeout in seconds
            session: HTTP session to reuse (a new one is created if None)
            enabled: Override the enabled flag (defaults to ``url is not None``)
        """
        super().__init__(enabled=bool(url) if enabled is None else enabled)
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, alert: Alert) -> SendResult:
        if not self.enabled or not self.url:
            return False, "webhook alert channel is disabled"

        try:
            response = self.session.post(
                self.url, json=alert.model_dump(mode="json"), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning(
                "Webhook delivery failed",
                extra={"alert_id": alert.id, "url": self.url, "error": str(exc)},
            )
            return False, f"Webhook delivery failed: {exc}"

        return True, f"Webhook notification sent ({response.status_code})"


class EmailAlertChannel(AlertChannel):
    """Sends alerts as plain-text email over SMTP."""

    kind = ActionType.EMAIL.value

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 587,
        sender: str = "riskwatch@localhost",
        recipients: Sequence[str] = (),
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
        enabled: Optional[bool] = None,
    ) -> None:
        configured = bool(host) and bool(recipients)
        super().__init__(enabled=configured if enabled is None else enabled)
        self.host = host
        self.port = port
        self.sender = sender
        self.recipients: List[str] = list(recipients)
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.smtp_factory = smtp_factory

    def build_message(self, alert: Alert) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = f"[{alert.priority.value.upper()}] {alert.title}"
        message["From"] = self.sender
        message["To"] = ", ".join(self.recipients)
        message.set_content(
            f"{alert.message}\n\n"
            f"Address: {alert.address}\n"
            f"Chain: {alert.chain_id}\n"
            f"Rule: {alert.rule_name} ({alert.rule_id})\n"
            f"Triggered at: {alert.triggered_at.isoformat()}\n"
        )
        return message

    def send(self, alert: Alert) -> SendResult:
        if not self.enabled or not self.host or not self.recipients:
            return False, "email alert channel is disabled"

        try:
            with self.smtp_factory(self.host, self.port, timeout=10) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(self.build_message(alert))
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning(
                "Email delivery failed",
                extra={"alert_id": alert.id, "smtp_host": self.host, "error": str(exc)},
            )
            return False, f"Email delivery failed: {exc}"

        return True, f"Email notification sent to {len(self.recipients)} recipient(s)"
