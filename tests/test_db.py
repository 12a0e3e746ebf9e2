"""Tests for database models and operations."""

from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session

from riskwatch.db.models import AlertRecord, record_alert
from riskwatch.db.session import SessionLocal, alert_recorder, drop_db, init_db
from riskwatch.models import Alert, AlertActionResult, AlertPriority


@pytest.fixture(scope="function")
def db_session() -> Session:
    """Create a fresh database session for each test."""
    # Setup: create tables
    init_db()

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Teardown: drop tables
        drop_db()


def make_alert(alert_id: str, address: str = "0xEXAMPLE", priority=AlertPriority.HIGH) -> Alert:
    return Alert(
        id=alert_id,
        rule_id="high_risk_score",
        rule_name="High Risk Score Alert",
        priority=priority,
        title="Risk Alert: High Risk Score Alert",
        message=f"Risk alert for address {address}: Risk score 85, Safety grade D",
        address=address,
        chain_id=1,
        user_id="user-1",
        data={"risk_score": 85, "safety_grade": "D", "warnings": []},
        actions=[AlertActionResult(type="log", success=True, message="Alert logged")],
        triggered_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


def test_record_alert(db_session: Session) -> None:
    """Test storing a fired alert."""
    record_alert(db_session, make_alert("alert_001"))

    # Verify
    retrieved = db_session.query(AlertRecord).filter_by(alert_id="alert_001").first()
    assert retrieved is not None
    assert retrieved.address == "0xEXAMPLE"
    assert retrieved.priority == "high"
    assert retrieved.status == "triggered"
    assert retrieved.data["risk_score"] == 85
    assert retrieved.actions[0]["type"] == "log"
    assert retrieved.actions[0]["success"] is True


def test_query_alerts_by_address(db_session: Session) -> None:
    """Test querying alerts by address."""
    for i in range(3):
        record_alert(db_session, make_alert(f"alert_a_{i}", address="0xaaa"))
    record_alert(db_session, make_alert("alert_b_0", address="0xbbb"))

    results = db_session.query(AlertRecord).filter_by(address="0xaaa").all()

    assert len(results) == 3
    assert all(r.address == "0xaaa" for r in results)


def test_query_alerts_by_priority(db_session: Session) -> None:
    """Test querying alerts by priority."""
    record_alert(db_session, make_alert("alert_high", priority=AlertPriority.HIGH))
    record_alert(db_session, make_alert("alert_critical", priority=AlertPriority.CRITICAL))

    critical = db_session.query(AlertRecord).filter_by(priority="critical").all()

    assert [r.alert_id for r in critical] == ["alert_critical"]


def test_alert_recorder_sink(db_session: Session) -> None:
    """Test the monitor sink built on the session factory."""
    sink = alert_recorder()

    sink(make_alert("alert_sink"))

    assert db_session.query(AlertRecord).filter_by(alert_id="alert_sink").count() == 1


def test_alert_record_repr(db_session: Session) -> None:
    """Test record string representation."""
    record = record_alert(db_session, make_alert("alert_repr"))

    text = repr(record)
    assert "alert_repr" in text
    assert "high_risk_score" in text
