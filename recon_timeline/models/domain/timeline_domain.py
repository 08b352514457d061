# recon_timeline/models/domain/timeline_domain.py
"""
Timeline Domain Models
Vehicles, stages and alerts used by the timeline services.
Serialisable with to_dict/from_dict so the state repository can persist them.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any


class Stage(str, Enum):
    """Reconditioning stages tracked against goals."""

    SHOP = "shop"
    DETAIL = "detail"
    PHOTO = "photo"
    TOTAL = "total"

    @property
    def label(self) -> str:
        return self.value.capitalize()


# Order matters: alerts and reports list stages in this sequence.
TRACKED_STAGES: tuple[Stage, ...] = (Stage.SHOP, Stage.DETAIL, Stage.PHOTO, Stage.TOTAL)
WORKFLOW_STAGES: tuple[Stage, ...] = (Stage.SHOP, Stage.DETAIL, Stage.PHOTO)


class AlertType(str, Enum):
    WARNING = "warning"
    OVERDUE = "overdue"


class StageStatus(str, Enum):
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"


def parse_timestamp(value: Any) -> datetime | None:
    """
    Normalise a timestamp to an aware UTC datetime.

    Naive datetimes are treated as UTC, bare dates and YYYY-MM-DD strings
    as midnight UTC. Empty values return None.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid timestamp: {value!r}") from e
        return parse_timestamp(parsed)

    raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(slots=True)
class VehicleRecord:
    """Vehicle fields the timeline cares about."""

    id: str
    vin: str
    make: str = ""
    model: str = ""
    year: int | None = None
    stock: str = ""
    inventory_date: datetime | None = None
    through_shop: bool = False
    detail_complete: bool = False
    photo_complete: bool = False
    shop_done: datetime | None = None
    detail_done: datetime | None = None
    photo_done: datetime | None = None

    @property
    def display_name(self) -> str:
        parts = [str(self.year) if self.year else "", self.make, self.model]
        name = " ".join(part for part in parts if part).strip()
        return name or self.vin

    @property
    def is_complete(self) -> bool:
        return self.through_shop and self.detail_complete and self.photo_complete

    @property
    def completed_at(self) -> datetime | None:
        """Latest stage completion date once every stage is done."""
        if not self.is_complete:
            return None
        dates = [d for d in (self.shop_done, self.detail_done, self.photo_done) if d]
        return max(dates) if dates else None

    @classmethod
    def from_dict(cls, data: dict) -> "VehicleRecord":
        vin = data.get("vin") or ""
        year = data.get("year")
        return cls(
            id=str(data.get("id") or vin),
            vin=vin,
            make=data.get("make") or "",
            model=data.get("model") or "",
            year=int(year) if year not in (None, "") else None,
            stock=data.get("stock") or "",
            inventory_date=parse_timestamp(data.get("inventory_date")),
            through_shop=bool(data.get("through_shop", False)),
            detail_complete=bool(data.get("detail_complete", False)),
            photo_complete=bool(data.get("photo_complete", False)),
            shop_done=parse_timestamp(data.get("shop_done")),
            detail_done=parse_timestamp(data.get("detail_done")),
            photo_done=parse_timestamp(data.get("photo_done")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vin": self.vin,
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "stock": self.stock,
            "inventory_date": _iso(self.inventory_date),
            "through_shop": self.through_shop,
            "detail_complete": self.detail_complete,
            "photo_complete": self.photo_complete,
            "shop_done": _iso(self.shop_done),
            "detail_done": _iso(self.detail_done),
            "photo_done": _iso(self.photo_done),
        }


@dataclass(frozen=True, slots=True)
class AlertKey:
    """Identity of an alert slot: one per vehicle and stage."""

    vehicle_id: str
    step: Stage


@dataclass(slots=True)
class AlertDraft:
    """Classified alert produced by the generator, before it is stored."""

    vehicle_id: str
    vehicle_info: str
    vin: str
    step: Stage
    type: AlertType
    current_days: int
    target_days: int
    message: str

    @property
    def key(self) -> AlertKey:
        return AlertKey(self.vehicle_id, self.step)


@dataclass(slots=True)
class TimelineAlert:
    """Stored alert record."""

    id: str
    vehicle_id: str
    vehicle_info: str
    vin: str
    step: Stage
    type: AlertType
    current_days: int
    target_days: int
    message: str
    timestamp: datetime
    acknowledged: bool = False

    @property
    def key(self) -> AlertKey:
        return AlertKey(self.vehicle_id, self.step)

    @property
    def is_critical(self) -> bool:
        """Overdue, or at least 150% of the target."""
        return self.type == AlertType.OVERDUE or self.current_days >= self.target_days * 1.5

    @classmethod
    def from_draft(cls, draft: AlertDraft, alert_id: str, timestamp: datetime) -> "TimelineAlert":
        return cls(
            id=alert_id,
            vehicle_id=draft.vehicle_id,
            vehicle_info=draft.vehicle_info,
            vin=draft.vin,
            step=draft.step,
            type=draft.type,
            current_days=draft.current_days,
            target_days=draft.target_days,
            message=draft.message,
            timestamp=timestamp,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "TimelineAlert":
        return cls(
            id=data["id"],
            vehicle_id=data["vehicle_id"],
            vehicle_info=data.get("vehicle_info", ""),
            vin=data.get("vin", ""),
            step=Stage(data["step"]),
            type=AlertType(data["type"]),
            current_days=int(data["current_days"]),
            target_days=int(data["target_days"]),
            message=data.get("message", ""),
            timestamp=parse_timestamp(data["timestamp"]),
            acknowledged=bool(data.get("acknowledged", False)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "vehicle_info": self.vehicle_info,
            "vin": self.vin,
            "step": self.step.value,
            "type": self.type.value,
            "current_days": self.current_days,
            "target_days": self.target_days,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "acknowledged": self.acknowledged,
        }


@dataclass(slots=True)
class VehicleStats:
    """Counts shown on the dashboard summary cards."""

    total: int = 0
    completed: int = 0
    overdue: int = 0
    overdue_shop: int = 0
    overdue_detail: int = 0
    overdue_photo: int = 0
    upcoming: int = 0
    completed_today: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "overdue": self.overdue,
            "overdue_shop": self.overdue_shop,
            "overdue_detail": self.overdue_detail,
            "overdue_photo": self.overdue_photo,
            "upcoming": self.upcoming,
            "completed_today": self.completed_today,
        }


@dataclass(slots=True)
class EvaluationSummary:
    """Outcome of one evaluation pass."""

    vehicles_evaluated: int = 0
    alerts_raised: list[TimelineAlert] = field(default_factory=list)
    alerts_cleared: list[AlertKey] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "vehicles_evaluated": self.vehicles_evaluated,
            "alerts_raised": len(self.alerts_raised),
            "alerts_cleared": len(self.alerts_cleared),
            "overdue": sum(1 for a in self.alerts_raised if a.type == AlertType.OVERDUE),
            "warning": sum(1 for a in self.alerts_raised if a.type == AlertType.WARNING),
        }
