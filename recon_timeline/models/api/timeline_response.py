# recon_timeline/models/api/timeline_response.py
"""
Timeline API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from recon_timeline.models.domain.settings_domain import NotificationPreferences
from recon_timeline.models.domain.timeline_domain import (
    AlertType,
    Stage,
    TimelineAlert,
    VehicleRecord,
)
from recon_timeline.services.timeline.vehicle_stats import stage_status


class TimelineAlertResponse(BaseModel):
    id: str = Field(..., description="Alert ID")
    vehicle_id: str
    vehicle_info: str = Field(..., description="Display string for the vehicle")
    vin: str
    step: Stage
    type: AlertType
    current_days: int
    target_days: int
    message: str
    timestamp: datetime
    acknowledged: bool

    @classmethod
    def from_domain(cls, alert: TimelineAlert) -> "TimelineAlertResponse":
        return cls(**alert.to_dict())


class AlertsListResponse(BaseModel):
    alerts: list[TimelineAlertResponse]
    counts: dict[str, int] = Field(..., description="total / overdue / warning / unacknowledged")


class ClearAlertsResponse(BaseModel):
    cleared: int


class EvaluateResponse(BaseModel):
    vehicles_evaluated: int
    alerts_raised: int
    alerts_cleared: int
    overdue: int
    warning: int
    alerts: list[TimelineAlertResponse]


class VehicleStatsResponse(BaseModel):
    total: int
    completed: int
    overdue: int
    overdue_shop: int
    overdue_detail: int
    overdue_photo: int
    upcoming: int
    completed_today: int


class VehicleSummary(BaseModel):
    id: str
    vin: str
    display_name: str
    stock: str
    stages: dict[str, str] = Field(..., description="Stage name -> completed / in_progress / pending")

    @classmethod
    def from_domain(cls, vehicle: VehicleRecord) -> "VehicleSummary":
        return cls(
            id=vehicle.id,
            vin=vehicle.vin,
            display_name=vehicle.display_name,
            stock=vehicle.stock,
            stages={stage.value: stage_status(vehicle, stage).value for stage in Stage},
        )


class StatsResponse(BaseModel):
    stats: VehicleStatsResponse
    vehicles: list[VehicleSummary]


class BrowserNotificationsResponse(BaseModel):
    notifications: list[dict[str, Any]]


class ReconWebhookResponse(BaseModel):
    received: bool = True
    event: str
    evaluated: bool = False
    alerts_raised: int = 0


MASKED_SECRET = "********"


def mask_preferences(preferences: NotificationPreferences) -> NotificationPreferences:
    """Copy of the preferences safe to return over the API."""
    masked = preferences.model_copy(deep=True)
    if masked.email.smtp_password:
        masked.email.smtp_password = MASKED_SECRET
    return masked
