"""
Timeline alert generation.

Decides, per vehicle and stage, whether a warning or overdue alert should
exist. Produces AlertDraft values only; storing and delivery happen in the
alert store and the notification dispatcher.
"""

from collections.abc import Iterable
from datetime import datetime

from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.domain.settings_domain import StageGoal, TimelineGoals
from recon_timeline.models.domain.timeline_domain import (
    TRACKED_STAGES,
    AlertDraft,
    AlertType,
    Stage,
    VehicleRecord,
)
from recon_timeline.services.timeline.durations import days_since

logger = get_logger(__name__)


def is_stage_active(vehicle: VehicleRecord, stage: Stage) -> bool:
    """A stage is active once it has started and until it completes."""
    if stage == Stage.SHOP:
        return not vehicle.through_shop
    if stage == Stage.DETAIL:
        return vehicle.through_shop and not vehicle.detail_complete
    if stage == Stage.PHOTO:
        return vehicle.detail_complete and not vehicle.photo_complete
    return not vehicle.is_complete


def stage_start(vehicle: VehicleRecord, stage: Stage) -> datetime | None:
    """Each stage starts when the previous one finished."""
    if stage == Stage.DETAIL:
        return vehicle.shop_done
    if stage == Stage.PHOTO:
        return vehicle.detail_done
    return vehicle.inventory_date


def stage_elapsed_days(vehicle: VehicleRecord, stage: Stage, now: datetime | None = None) -> int:
    return days_since(stage_start(vehicle, stage), now)


def classify(elapsed_days: int, goal: StageGoal) -> AlertType | None:
    """Overdue at or past target, warning at or past the warning threshold."""
    if elapsed_days >= goal.target:
        return AlertType.OVERDUE
    if elapsed_days >= goal.warning_days:
        return AlertType.WARNING
    return None


def _build_message(stage: Stage, alert_type: AlertType, elapsed: int, goal: StageGoal) -> str:
    if alert_type == AlertType.OVERDUE:
        over = elapsed - goal.target
        if over == 0:
            return f"{stage.label} stage has reached its {goal.target}-day target"
        unit = "day" if over == 1 else "days"
        return f"{stage.label} stage is {over} {unit} over the {goal.target}-day target"
    remaining = goal.target - elapsed
    unit = "day" if remaining == 1 else "days"
    return (
        f"{stage.label} stage is approaching its deadline: "
        f"{elapsed} of {goal.target} days used, {remaining} {unit} left"
    )


def evaluate_stage(
    vehicle: VehicleRecord,
    stage: Stage,
    goals: TimelineGoals,
    now: datetime | None = None,
) -> AlertDraft | None:
    """Alert draft for one vehicle stage, or None when no alert is due."""
    if not is_stage_active(vehicle, stage):
        return None

    elapsed = stage_elapsed_days(vehicle, stage, now)
    if elapsed <= 0:
        return None

    goal = goals.for_stage(stage)
    alert_type = classify(elapsed, goal)
    if alert_type is None:
        return None

    return AlertDraft(
        vehicle_id=vehicle.id,
        vehicle_info=vehicle.display_name,
        vin=vehicle.vin,
        step=stage,
        type=alert_type,
        current_days=elapsed,
        target_days=goal.target,
        message=_build_message(stage, alert_type, elapsed, goal),
    )


def generate_vehicle_alerts(
    vehicle: VehicleRecord, goals: TimelineGoals, now: datetime | None = None
) -> list[AlertDraft]:
    drafts = []
    for stage in TRACKED_STAGES:
        draft = evaluate_stage(vehicle, stage, goals, now)
        if draft is not None:
            drafts.append(draft)
    return drafts


def generate_alerts(
    vehicles: Iterable[VehicleRecord], goals: TimelineGoals, now: datetime | None = None
) -> list[AlertDraft]:
    """Alert drafts for every vehicle, in vehicle then stage order."""
    drafts: list[AlertDraft] = []
    evaluated = 0
    for vehicle in vehicles:
        evaluated += 1
        drafts.extend(generate_vehicle_alerts(vehicle, goals, now))

    logger.debug(
        "Timeline alerts generated",
        vehicles=evaluated,
        drafts=len(drafts),
        overdue=sum(1 for d in drafts if d.type == AlertType.OVERDUE),
    )
    return drafts
