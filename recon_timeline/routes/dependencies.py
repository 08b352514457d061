"""
Shared route dependencies.
"""

from fastapi import HTTPException, Request, status

from recon_timeline.services.timeline.evaluation_service import TimelineRuntime


def get_runtime(request: Request) -> TimelineRuntime:
    """Runtime built by the application lifespan (or injected by create_app)."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Timeline runtime not ready"
        )
    return runtime
