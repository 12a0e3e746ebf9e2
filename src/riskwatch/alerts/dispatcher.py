"""Executes alert actions against registered channels."""

import logging
from typing import Dict, Iterable, List, Optional

from riskwatch.alerts.channels import AlertChannel, LogAlertChannel
from riskwatch.config import Settings
from riskwatch.models import ActionType, Alert, AlertAction, AlertActionResult

logger = logging.getLogger(__name__)


class AlertDispatcher:
    """Routes each alert action to the channel of the same kind.

    A failing, disabled or unknown channel only produces a failed
    AlertActionResult; the remaining actions still run.
    """

    def __init__(self, channels: Optional[Iterable[AlertChannel]] = None) -> None:
        self._channels: Dict[str, AlertChannel] = {}
        self.register(LogAlertChannel())
        for channel in channels or ():
            self.register(channel)

    def register(self, channel: AlertChannel) -> None:
        """Add or replace the channel for ``channel.kind``.

        The log channel can be replaced only by another enabled channel.
        """
        if channel.kind == ActionType.LOG.value and not channel.enabled:
            logger.warning(
                "Ignoring disabled log channel, keeping the current one",
                extra={"channel": repr(channel)},
            )
            return
        self._channels[channel.kind] = channel

    def channel(self, kind: str) -> Optional[AlertChannel]:
        return self._channels.get(kind)

    @property
    def channels(self) -> List[AlertChannel]:
        return list(self._channels.values())

    def dispatch(self, alert: Alert, actions: Iterable[AlertAction]) -> List[AlertActionResult]:
        """Execute ``actions`` in order, appending each result to ``alert.actions``.

        Args:
            alert: Alert being delivered
            actions: Actions configured on the firing rule

        Returns:
            Results for the actions executed by this call
        """
        results = []
        for action in actions:
            result = self.execute(alert, action)
            alert.actions.append(result)
            results.append(result)
        return results

    def execute(self, alert: Alert, action: AlertAction) -> AlertActionResult:
        channel = self._channels.get(action.type)
        if channel is None:
            logger.warning(
                "Unknown alert action type",
                extra={"alert_id": alert.id, "action_type": action.type},
            )
            return AlertActionResult(
                type=action.type, success=False, message=f"Unknown action type: {action.type}"
            )

        if not channel.enabled:
            return AlertActionResult(
                type=action.type, success=False, message=f"{channel.kind} alert channel is disabled"
            )

        try:
            success, message = channel.send(alert)
        except Exception as exc:
            logger.exception(
                "Alert channel raised", extra={"alert_id": alert.id, "action_type": action.type}
            )
            success, message = False, f"{channel.kind} channel error: {exc}"

        return AlertActionResult(type=action.type, success=success, message=message)


def create_dispatcher(settings: Settings) -> AlertDispatcher:
    """Build a dispatcher with every channel the settings configure.

    Args:
        settings: Application settings

    Returns:
        Dispatcher with log, webhook and email channels registered
    """
    from riskwatch.alerts.channels import EmailAlertChannel, WebhookAlertChannel

    return AlertDispatcher(
        channels=[
            WebhookAlertChannel(url=settings.webhook_url, timeout=settings.webhook_timeout_seconds),
            EmailAlertChannel(
                host=settings.smtp_host,
                port=settings.smtp_port,
                sender=settings.alert_email_from,
                recipients=settings.alert_email_to,
                username=settings.smtp_username,
                password=settings.smtp_password,
            ),
        ]
    )
