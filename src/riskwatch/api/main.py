"""FastAPI application for RiskWatch.

Thin operator surface over the scoring engine and the monitor:
- Risk assessment endpoints (POST /api/v1/risk/...)
- Monitor lifecycle and registration endpoints (/api/v1/monitor/...)
- Alert audit trail (GET /api/v1/alerts)
- Health check endpoint (GET /health)
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from riskwatch.alerts.dispatcher import create_dispatcher
from riskwatch.chain import Web3ChainReader
from riskwatch.config import get_settings
from riskwatch.db.models import AlertRecord
from riskwatch.db.session import alert_recorder, get_db, init_db
from riskwatch.engine.assessment import RiskAssessmentService, create_assessment_service
from riskwatch.exceptions import AddressNotMonitoredError, MonitorStateError
from riskwatch.log import configure_logging
from riskwatch.models import (
    AlertRule,
    ContractRiskRequest,
    MonitoredAddress,
    RiskAssessment,
    TransactionRiskRequest,
)
from riskwatch.monitor.monitor import RiskMonitor

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings)
    init_db()
    yield
    if monitor.is_running:
        monitor.stop()


app = FastAPI(
    title="RiskWatch API",
    description="Blockchain risk assessment and address monitoring",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Engine singletons
chain_reader = Web3ChainReader(settings.rpc_urls, timeout=settings.rpc_timeout_seconds)
assessment_service: RiskAssessmentService = create_assessment_service(
    config=settings.scoring_config(),
    chain_reader=chain_reader,
)
monitor = RiskMonitor(
    assessor=assessment_service,
    chain_reader=chain_reader,
    dispatcher=create_dispatcher(settings),
    config=settings.monitor_config(),
    alert_sinks=[alert_recorder()],
)


class MonitoredAddressCreate(BaseModel):
    """Request body for registering a monitored address."""

    address: str = Field(..., min_length=1)
    chain_id: int = Field(default=1)
    user_id: str = Field(..., min_length=1)
    alert_rules: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AlertOut(BaseModel):
    """Stored alert as returned by the audit endpoint."""

    alert_id: str
    rule_id: str
    rule_name: str
    priority: str
    address: str
    chain_id: int
    user_id: str
    title: str
    message: str
    data: Dict[str, Any]
    actions: List[Dict[str, Any]]
    status: str


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Status message indicating service health
    """
    return {
        "status": "ok",
        "service": "riskwatch",
        "version": "0.1.0",
        "monitor_running": monitor.is_running,
    }


@app.post("/api/v1/risk/transaction", response_model=RiskAssessment)
def assess_transaction(request: TransactionRiskRequest) -> RiskAssessment:
    """Assess the risk of a transaction."""
    return assessment_service.assess_transaction(request)


@app.post("/api/v1/risk/contract", response_model=RiskAssessment)
def assess_contract(request: ContractRiskRequest) -> RiskAssessment:
    """Assess the risk of a smart contract."""
    return assessment_service.assess_contract(request)


@app.post("/api/v1/monitor/start")
def start_monitor() -> dict:
    """Start the background sweep loop.

    Raises:
        MonitorStateError: If the monitor is already running (409)
    """
    monitor.start()
    return {"status": "running"}


@app.post("/api/v1/monitor/stop")
def stop_monitor() -> dict:
    """Stop the background sweep loop.

    Raises:
        MonitorStateError: If the monitor is not running (409)
    """
    monitor.stop()
    return {"status": "stopped"}


@app.get("/api/v1/monitor/addresses", response_model=List[MonitoredAddress])
def list_monitored_addresses() -> List[MonitoredAddress]:
    return monitor.list_monitored_addresses()


@app.post("/api/v1/monitor/addresses", response_model=MonitoredAddress, status_code=201)
def add_monitored_address(body: MonitoredAddressCreate) -> MonitoredAddress:
    """Register an address for monitoring."""
    return monitor.add_monitored_address(
        body.address,
        body.chain_id,
        body.user_id,
        body.alert_rules,
        metadata=body.metadata,
    )


@app.delete("/api/v1/monitor/addresses/{chain_id}/{address}", status_code=204)
def remove_monitored_address(chain_id: int, address: str) -> Response:
    """Stop monitoring an address.

    Raises:
        AddressNotMonitoredError: If the address is not monitored (404)
    """
    monitor.remove_monitored_address(address, chain_id)
    return Response(status_code=204)


@app.get("/api/v1/monitor/rules", response_model=List[AlertRule])
def list_alert_rules() -> List[AlertRule]:
    return monitor.list_alert_rules()


@app.post("/api/v1/monitor/rules", response_model=AlertRule, status_code=201)
def add_alert_rule(rule: AlertRule) -> AlertRule:
    """Register or replace an alert rule."""
    monitor.add_alert_rule(rule)
    return monitor.get_alert_rule(rule.id)


@app.get("/api/v1/alerts", response_model=List[AlertOut])
async def list_alerts(
    address: Optional[str] = Query(None, description="Filter by address"),
    priority: Optional[str] = Query(None, description="Filter by priority (critical/high/medium/low/info)"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of results"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    db: Session = Depends(get_db),
) -> List[AlertOut]:
    """List fired alerts, most recent first.

    The address filter ignores case.
    """
    query = db.query(AlertRecord)

    if address:
        query = query.filter(func.lower(AlertRecord.address) == address.lower())
    if priority:
        query = query.filter(AlertRecord.priority == priority.lower())

    query = query.order_by(AlertRecord.triggered_at.desc())
    records = query.offset(offset).limit(limit).all()

    return [
        AlertOut(
            alert_id=record.alert_id,
            rule_id=record.rule_id,
            rule_name=record.rule_name,
            priority=record.priority,
            address=record.address,
            chain_id=record.chain_id,
            user_id=record.user_id,
            title=record.title,
            message=record.message,
            data=record.data,
            actions=record.actions,
            status=record.status,
        )
        for record in records
    ]


@app.exception_handler(MonitorStateError)
async def monitor_state_error_handler(request, exc):
    """Handle invalid monitor lifecycle transitions."""
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(AddressNotMonitoredError)
async def address_not_monitored_handler(request, exc):
    """Handle removal of an unknown address."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc):
    """Handle ValueError exceptions (e.g., invalid enum values)."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
