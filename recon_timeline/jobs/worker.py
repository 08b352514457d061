"""
Background worker runner for timeline alert jobs.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the matching job:

- timeline_alerts: evaluate the vehicle feed every EVALUATION_INTERVAL_MINUTES
- timeline_alerts_once: evaluate the feed a single time and exit
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from recon_timeline.config import settings
from recon_timeline.infrastructure.observability.logging import get_logger, setup_logging
from recon_timeline.jobs.alert_evaluation_job import (
    VehicleFeedError,
    run_alert_evaluation_once,
    start_alert_evaluation_scheduler,
)
from recon_timeline.services.state.repository import StateStoreError

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[object]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "timeline_alerts": start_alert_evaluation_scheduler,
    "timeline_alerts_once": run_alert_evaluation_once,
}

DEFAULT_JOB = "timeline_alerts"


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", DEFAULT_JOB).strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info(
        "Starting background worker",
        job=name,
        feed_configured=bool(settings.VEHICLE_FEED_URL),
        state_backend=settings.state_backend(),
    )
    await JOB_REGISTRY[name]()
    logger.info("Background worker finished", job=name)


def main() -> int:
    """CLI entrypoint. Returns the process exit code."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    if job_name not in JOB_REGISTRY:
        logger.error(
            "Unknown worker job", job=job_name, available=sorted(JOB_REGISTRY.keys())
        )
        return 2
    try:
        asyncio.run(run_worker(job_name))
    except (VehicleFeedError, StateStoreError) as e:
        logger.error("Worker job failed", job=job_name, error=str(e), error_type=type(e).__name__)
        return 1
    except KeyboardInterrupt:
        logger.info("Worker interrupted", job=job_name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
