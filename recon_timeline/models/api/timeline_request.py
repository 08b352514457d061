# recon_timeline/models/api/timeline_request.py
"""
Timeline API request models.
Used by routes for input validation.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from recon_timeline.models.domain.timeline_domain import VehicleRecord, parse_timestamp


class VehicleInput(BaseModel):
    """Vehicle as sent by the vehicle-management system."""

    id: str | None = Field(default=None, description="Vehicle ID (defaults to VIN)")
    vin: str = Field(..., min_length=1, max_length=32, description="Vehicle identification number")
    make: str = Field(default="", max_length=100)
    model: str = Field(default="", max_length=100)
    year: int | None = Field(default=None, ge=1900, le=2100)
    stock: str = Field(default="", max_length=50, description="Stock number")
    inventory_date: datetime | None = Field(default=None, description="Arrival / intake date")
    through_shop: bool = False
    detail_complete: bool = False
    photo_complete: bool = False
    shop_done: datetime | None = None
    detail_done: datetime | None = None
    photo_done: datetime | None = None

    def to_domain(self) -> VehicleRecord:
        return VehicleRecord(
            id=self.id or self.vin,
            vin=self.vin,
            make=self.make,
            model=self.model,
            year=self.year,
            stock=self.stock,
            inventory_date=parse_timestamp(self.inventory_date),
            through_shop=self.through_shop,
            detail_complete=self.detail_complete,
            photo_complete=self.photo_complete,
            shop_done=parse_timestamp(self.shop_done),
            detail_done=parse_timestamp(self.detail_done),
            photo_done=parse_timestamp(self.photo_done),
        )


class EvaluateRequest(BaseModel):
    """Request to run an evaluation pass over a set of vehicles."""

    vehicles: list[VehicleInput] = Field(..., max_length=5000)
    as_of: datetime | None = Field(
        default=None, description="Evaluate as of this time instead of now"
    )


class StatsRequest(BaseModel):
    """Request for dashboard counts and an optional filtered vehicle list."""

    vehicles: list[VehicleInput] = Field(..., max_length=5000)
    search: str = Field(default="", max_length=100, description="Match VIN, stock, make or model")
    status: str = Field(default="all", pattern="^(all|completed|pending|overdue)$")
    as_of: datetime | None = None


class ReconWebhookEvent(BaseModel):
    """Inbound event from the vehicle-management system."""

    event: str = Field(..., min_length=1)
    data: dict = Field(default_factory=dict)
