"""
Timeline API Routes
Alert listing and actions, evaluation passes, dashboard stats and goals.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.api.timeline_request import EvaluateRequest, StatsRequest
from recon_timeline.models.api.timeline_response import (
    AlertsListResponse,
    ClearAlertsResponse,
    EvaluateResponse,
    StatsResponse,
    TimelineAlertResponse,
    VehicleStatsResponse,
    VehicleSummary,
)
from recon_timeline.models.domain.settings_domain import TimelineGoals
from recon_timeline.models.domain.timeline_domain import AlertType, Stage, parse_timestamp
from recon_timeline.routes.dependencies import get_runtime
from recon_timeline.services.state.repository import StateStoreError
from recon_timeline.services.timeline.alert_store import AlertNotFoundError
from recon_timeline.services.timeline.evaluation_service import TimelineRuntime
from recon_timeline.services.timeline.vehicle_stats import filter_vehicles

logger = get_logger(__name__)

router = APIRouter(prefix="/timeline", tags=["timeline"])


def _state_error(e: StateStoreError, action: str) -> HTTPException:
    logger.error("Timeline state error", action=action, operation=e.operation, key=e.key, error=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}"
    )


# ----------------------------------------------------------------------
# Goals
# ----------------------------------------------------------------------


@router.get("/goals", response_model=TimelineGoals)
async def get_goals(runtime: TimelineRuntime = Depends(get_runtime)):
    """Current per-stage goals."""
    return runtime.goals


@router.put("/goals", response_model=TimelineGoals)
async def update_goals(goals: TimelineGoals, runtime: TimelineRuntime = Depends(get_runtime)):
    """Replace the per-stage goals. Applies from the next evaluation pass."""
    try:
        return await runtime.update_goals(goals)
    except StateStoreError as e:
        raise _state_error(e, "save goals")


# ----------------------------------------------------------------------
# Alerts
# ----------------------------------------------------------------------


@router.get("/alerts", response_model=AlertsListResponse)
async def list_alerts(
    step: Stage | None = Query(default=None, description="Filter by stage"),
    alert_type: AlertType | None = Query(default=None, alias="type", description="warning or overdue"),
    acknowledged: bool | None = Query(default=None),
    vehicle_id: str | None = Query(default=None),
    runtime: TimelineRuntime = Depends(get_runtime),
):
    """List stored alerts in insertion order."""
    alerts = runtime.store.filter(
        step=step, alert_type=alert_type, acknowledged=acknowledged, vehicle_id=vehicle_id
    )
    return AlertsListResponse(
        alerts=[TimelineAlertResponse.from_domain(a) for a in alerts],
        counts=runtime.store.counts(),
    )


@router.post("/alerts/{alert_id}/acknowledge", response_model=TimelineAlertResponse)
async def acknowledge_alert(alert_id: str, runtime: TimelineRuntime = Depends(get_runtime)):
    """Mark an alert as seen. Cancels any pending escalation for it."""
    try:
        alert = await runtime.acknowledge(alert_id)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StateStoreError as e:
        raise _state_error(e, "acknowledge alert")
    return TimelineAlertResponse.from_domain(alert)


@router.delete("/alerts/{alert_id}", response_model=TimelineAlertResponse)
async def dismiss_alert(alert_id: str, runtime: TimelineRuntime = Depends(get_runtime)):
    """Remove a single alert."""
    try:
        alert = await runtime.dismiss(alert_id)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StateStoreError as e:
        raise _state_error(e, "dismiss alert")
    return TimelineAlertResponse.from_domain(alert)


@router.delete("/alerts", response_model=ClearAlertsResponse)
async def clear_alerts(runtime: TimelineRuntime = Depends(get_runtime)):
    """Remove every alert."""
    try:
        cleared = await runtime.clear_all()
    except StateStoreError as e:
        raise _state_error(e, "clear alerts")
    return ClearAlertsResponse(cleared=cleared)


# ----------------------------------------------------------------------
# Evaluation and stats
# ----------------------------------------------------------------------


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate(request: EvaluateRequest, runtime: TimelineRuntime = Depends(get_runtime)):
    """Run an evaluation pass over the given vehicles."""
    vehicles = [v.to_domain() for v in request.vehicles]
    try:
        summary = await runtime.evaluate(vehicles, now=parse_timestamp(request.as_of))
    except StateStoreError as e:
        raise _state_error(e, "evaluate vehicles")

    return EvaluateResponse(
        **summary.to_dict(),
        alerts=[TimelineAlertResponse.from_domain(a) for a in summary.alerts_raised],
    )


@router.post("/stats", response_model=StatsResponse)
async def vehicle_stats(request: StatsRequest, runtime: TimelineRuntime = Depends(get_runtime)):
    """Dashboard counts for the given vehicles plus the filtered list."""
    now = parse_timestamp(request.as_of)
    vehicles = [v.to_domain() for v in request.vehicles]

    try:
        matching = filter_vehicles(
            vehicles, runtime.goals, search=request.search, status=request.status, now=now
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    stats = runtime.stats(vehicles, now=now)
    return StatsResponse(
        stats=VehicleStatsResponse(**stats.to_dict()),
        vehicles=[VehicleSummary.from_domain(v) for v in matching],
    )
