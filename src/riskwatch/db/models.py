"""Database models for RiskWatch."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Session, declarative_base

from riskwatch.models import Alert

Base = declarative_base()


class AlertRecord(Base):
    """Fired alert, kept for the audit trail.

    Stores:
    - Rule and priority that fired
    - Target address, chain and owning user
    - Assessment snapshot at firing time
    - Per-action delivery results
    """

    __tablename__ = "alerts"

    # Primary key
    alert_id = Column(String(36), primary_key=True)

    # Rule
    rule_id = Column(String(255), nullable=False, index=True)
    rule_name = Column(String(255), nullable=False)
    priority = Column(String(20), nullable=False, index=True)  # critical/high/medium/low/info

    # Target
    address = Column(String(64), nullable=False, index=True)
    chain_id = Column(Integer, nullable=False)
    user_id = Column(String(64), nullable=False, index=True)

    # Content
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=False)  # Assessment snapshot
    actions = Column(JSON, nullable=False)  # List of action results

    status = Column(String(20), nullable=False, index=True)
    triggered_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<AlertRecord("
            f"id={self.alert_id}, "
            f"address={self.address}, "
            f"rule={self.rule_id}, "
            f"priority={self.priority}"
            f")>"
        )


# Composite indexes for common queries
Index("idx_alert_address_triggered_at", AlertRecord.address, AlertRecord.triggered_at)
Index("idx_alert_priority_status", AlertRecord.priority, AlertRecord.status)


def record_alert(session: Session, alert: Alert) -> AlertRecord:
    """Persist a fired alert.

    Args:
        session: Open database session (committed by this call)
        alert: Alert to store

    Returns:
        The stored record
    """
    payload = alert.model_dump(mode="json")
    record = AlertRecord(
        alert_id=alert.id,
        rule_id=alert.rule_id,
        rule_name=alert.rule_name,
        priority=alert.priority.value,
        address=alert.address,
        chain_id=alert.chain_id,
        user_id=alert.user_id,
        title=alert.title,
        message=alert.message,
        data=payload["data"],
        actions=payload["actions"],
        status=alert.status.value,
        triggered_at=alert.triggered_at,
    )
    session.add(record)
    session.commit()
    return record
