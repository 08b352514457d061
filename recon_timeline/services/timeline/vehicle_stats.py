"""
Dashboard helpers: stage status, summary counts and vehicle filtering.
"""

from collections.abc import Iterable
from datetime import UTC, datetime

from recon_timeline.models.domain.settings_domain import TimelineGoals
from recon_timeline.models.domain.timeline_domain import (
    WORKFLOW_STAGES,
    AlertType,
    Stage,
    StageStatus,
    VehicleRecord,
    VehicleStats,
)
from recon_timeline.services.timeline.alert_generator import evaluate_stage

STATUS_FILTERS = ("all", "completed", "pending", "overdue")


def stage_status(vehicle: VehicleRecord, stage: Stage) -> StageStatus:
    if stage == Stage.SHOP:
        if vehicle.through_shop:
            return StageStatus.COMPLETED
        return StageStatus.IN_PROGRESS if vehicle.inventory_date else StageStatus.PENDING
    if stage == Stage.DETAIL:
        if vehicle.detail_complete:
            return StageStatus.COMPLETED
        return StageStatus.IN_PROGRESS if vehicle.through_shop else StageStatus.PENDING
    if stage == Stage.PHOTO:
        if vehicle.photo_complete:
            return StageStatus.COMPLETED
        return StageStatus.IN_PROGRESS if vehicle.detail_complete else StageStatus.PENDING
    return StageStatus.COMPLETED if vehicle.is_complete else StageStatus.IN_PROGRESS


def overdue_stages(
    vehicle: VehicleRecord, goals: TimelineGoals, now: datetime | None = None
) -> list[Stage]:
    stages = []
    for stage in WORKFLOW_STAGES:
        draft = evaluate_stage(vehicle, stage, goals, now)
        if draft is not None and draft.type == AlertType.OVERDUE:
            stages.append(stage)
    return stages


def _has_warning(vehicle: VehicleRecord, goals: TimelineGoals, now: datetime | None) -> bool:
    for stage in WORKFLOW_STAGES:
        draft = evaluate_stage(vehicle, stage, goals, now)
        if draft is not None and draft.type == AlertType.WARNING:
            return True
    return False


def calculate_stats(
    vehicles: Iterable[VehicleRecord], goals: TimelineGoals, now: datetime | None = None
) -> VehicleStats:
    now = now or datetime.now(UTC)
    stats = VehicleStats()

    for vehicle in vehicles:
        stats.total += 1
        if vehicle.is_complete:
            stats.completed += 1
            completed_at = vehicle.completed_at
            if completed_at is not None and completed_at.date() == now.date():
                stats.completed_today += 1
            continue

        late = overdue_stages(vehicle, goals, now)
        if Stage.SHOP in late:
            stats.overdue_shop += 1
        if Stage.DETAIL in late:
            stats.overdue_detail += 1
        if Stage.PHOTO in late:
            stats.overdue_photo += 1
        if late:
            stats.overdue += 1
        elif _has_warning(vehicle, goals, now):
            stats.upcoming += 1

    return stats


def matches_search(vehicle: VehicleRecord, search: str) -> bool:
    needle = search.strip().lower()
    if not needle:
        return True
    haystack = (vehicle.vin, vehicle.stock, vehicle.make, vehicle.model)
    return any(needle in value.lower() for value in haystack if value)


def filter_vehicles(
    vehicles: Iterable[VehicleRecord],
    goals: TimelineGoals,
    search: str = "",
    status: str = "all",
    now: datetime | None = None,
) -> list[VehicleRecord]:
    status = (status or "all").lower()
    if status not in STATUS_FILTERS:
        raise ValueError(f"Unknown status filter '{status}'. Available: {', '.join(STATUS_FILTERS)}")

    results = []
    for vehicle in vehicles:
        if not matches_search(vehicle, search):
            continue
        if status != "all":
            is_overdue = bool(overdue_stages(vehicle, goals, now))
            if status == "completed" and not vehicle.is_complete:
                continue
            if status == "overdue" and not is_overdue:
                continue
            if status == "pending" and (vehicle.is_complete or is_overdue):
                continue
        results.append(vehicle)
    return results
