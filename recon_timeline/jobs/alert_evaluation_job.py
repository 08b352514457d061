"""
Alert Evaluation Job.
Periodically pulls the vehicle feed and runs a timeline evaluation pass so
alerts are raised even when nobody has the dashboard open.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import httpx

from recon_timeline.config import Settings, settings
from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.domain.timeline_domain import VehicleRecord
from recon_timeline.services.state.repository import StateStoreError
from recon_timeline.services.timeline.evaluation_service import TimelineRuntime, build_runtime

logger = get_logger(__name__)

FEED_TIMEOUT_SECONDS = 30
ERROR_RETRY_SECONDS = 60


class VehicleFeedError(Exception):
    """Raised when the vehicle feed cannot be fetched or parsed."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class AlertEvaluationMetrics:
    """Metrics tracking for one evaluation cycle."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.vehicles_fetched = 0
        self.vehicles_skipped = 0
        self.vehicles_evaluated = 0
        self.alerts_raised = 0
        self.alerts_cleared = 0
        self.overdue = 0
        self.warning = 0
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_skipped(self, record: object, error: str):
        self.vehicles_skipped += 1
        vin = record.get("vin") if isinstance(record, dict) else None
        self.errors.append({"vin": vin, "error": error})
        logger.warning("Vehicle record skipped", vin=vin, error=error, job_run="alert_evaluation")

    def record_summary(self, summary: dict):
        self.vehicles_evaluated = summary["vehicles_evaluated"]
        self.alerts_raised = summary["alerts_raised"]
        self.alerts_cleared = summary["alerts_cleared"]
        self.overdue = summary["overdue"]
        self.warning = summary["warning"]

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "alert_evaluation",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "vehicles_fetched": self.vehicles_fetched,
            "vehicles_skipped": self.vehicles_skipped,
            "vehicles_evaluated": self.vehicles_evaluated,
            "alerts_raised": self.alerts_raised,
            "alerts_cleared": self.alerts_cleared,
            "overdue": self.overdue,
            "warning": self.warning,
            "errors_count": len(self.errors),
        }


def parse_feed(payload: object) -> list:
    """Accept either a bare list or {"vehicles": [...]}."""
    if isinstance(payload, dict):
        payload = payload.get("vehicles")
    if not isinstance(payload, list):
        raise VehicleFeedError(
            "Vehicle feed must be a list or an object with a 'vehicles' list",
            operation="parse_feed",
            recoverable=False,
        )
    return payload


class AlertEvaluationJob:
    """
    Background job that evaluates the whole vehicle feed on an interval.
    """

    def __init__(
        self,
        runtime: TimelineRuntime,
        feed_url: str | None,
        feed_token: str | None = None,
        interval_minutes: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.runtime = runtime
        self.feed_url = feed_url
        self.feed_token = feed_token
        self.interval_minutes = interval_minutes
        self._client = client
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = AlertEvaluationMetrics()

        if not feed_url:
            raise VehicleFeedError(
                "VEHICLE_FEED_URL not configured", operation="configure", recoverable=False
            )
        if interval_minutes < 1:
            logger.warning(
                "Alert evaluation interval is very short", interval_minutes=interval_minutes
            )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=FEED_TIMEOUT_SECONDS)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_vehicles(self) -> list[VehicleRecord]:
        """
        Fetch and parse the vehicle feed.

        Raises:
            VehicleFeedError: If the feed is unreachable or malformed
        """
        headers = {"Accept": "application/json"}
        if self.feed_token:
            headers["Authorization"] = f"Bearer {self.feed_token}"

        client = await self._get_client()
        try:
            response = await client.get(self.feed_url, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise VehicleFeedError(
                f"Vehicle feed returned HTTP {e.response.status_code}", operation="fetch"
            ) from e
        except httpx.HTTPError as e:
            raise VehicleFeedError(f"Vehicle feed request failed: {e}", operation="fetch") from e
        except ValueError as e:
            raise VehicleFeedError(
                f"Vehicle feed returned invalid JSON: {e}", operation="parse_feed", recoverable=False
            ) from e

        records = parse_feed(payload)
        self.job_metrics.vehicles_fetched = len(records)

        vehicles = []
        for record in records:
            if not isinstance(record, dict) or not record.get("vin"):
                self.job_metrics.record_skipped(record, "missing vin")
                continue
            try:
                vehicles.append(VehicleRecord.from_dict(record))
            except (ValueError, TypeError) as e:
                self.job_metrics.record_skipped(record, str(e))
        return vehicles

    async def run_once(self) -> dict:
        """
        Run a single evaluation cycle.

        Raises:
            VehicleFeedError: If the feed cannot be fetched
            StateStoreError: If alerts cannot be persisted
        """
        if self.is_running:
            logger.warning("Alert evaluation already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            vehicles = await self.fetch_vehicles()
            summary = await self.runtime.evaluate(vehicles)
            self.job_metrics.record_summary(summary.to_dict())

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            metrics = self.job_metrics.to_dict()
            logger.info("Alert evaluation job completed", **metrics)
            return metrics
        finally:
            self.is_running = False

    def get_job_status(self) -> dict:
        return {
            "job_name": "alert_evaluation",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_minutes": self.interval_minutes,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }


async def run_evaluation_loop(
    job: AlertEvaluationJob,
    max_cycles: int | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """
    Run evaluation cycles until cancelled (or max_cycles is reached).

    A failed cycle is logged and retried after a short pause.
    Returns the number of cycles attempted.
    """
    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        cycles += 1
        delay = job.interval_minutes * 60
        try:
            await job.run_once()
        except (VehicleFeedError, StateStoreError) as e:
            logger.error(
                "Alert evaluation cycle failed",
                error=str(e),
                error_type=type(e).__name__,
                operation=getattr(e, "operation", None),
            )
            delay = min(delay, ERROR_RETRY_SECONDS)
        except Exception as e:
            logger.error(
                "Unexpected error in alert evaluation cycle", error=str(e), error_type=type(e).__name__
            )
            delay = min(delay, ERROR_RETRY_SECONDS)

        if max_cycles is None or cycles < max_cycles:
            await sleep(delay)
    return cycles


async def start_alert_evaluation_scheduler(config: Settings | None = None) -> None:
    """Worker entrypoint: build the runtime from settings and loop forever."""
    config = config or settings
    logger.info(
        "Starting alert evaluation scheduler",
        interval_minutes=config.EVALUATION_INTERVAL_MINUTES,
        feed_configured=bool(config.VEHICLE_FEED_URL),
    )

    runtime = await build_runtime(config)
    job = None
    try:
        job = AlertEvaluationJob(
            runtime,
            feed_url=config.VEHICLE_FEED_URL,
            feed_token=config.VEHICLE_FEED_TOKEN,
            interval_minutes=config.EVALUATION_INTERVAL_MINUTES,
        )
        await run_evaluation_loop(job)
    finally:
        if job is not None:
            await job.close()
        await runtime.shutdown()
        logger.info("Alert evaluation scheduler stopped")


async def run_alert_evaluation_once(config: Settings | None = None) -> dict:
    """
    Worker entrypoint for a single pass, for cron-style deployments.

    Pending deliveries are drained before the runtime closes. Escalation
    timers do not survive the process, so they only apply to the scheduler.
    """
    config = config or settings
    runtime = await build_runtime(config)
    job = None
    try:
        job = AlertEvaluationJob(
            runtime,
            feed_url=config.VEHICLE_FEED_URL,
            feed_token=config.VEHICLE_FEED_TOKEN,
            interval_minutes=config.EVALUATION_INTERVAL_MINUTES,
        )
        return await job.run_once()
    finally:
        if job is not None:
            await job.close()
        await runtime.shutdown()
