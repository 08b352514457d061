"""
Delayed escalation timers keyed by (vehicle, stage).

Scheduling a key that already has a timer cancels the old one first, so
one slot never stacks duplicate escalations. With keep_deadline the
replacement timer inherits the pending deadline, so re-raising an open
alert does not push its escalation further out.
"""

import asyncio
from collections.abc import Awaitable, Callable

from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.domain.timeline_domain import AlertKey

logger = get_logger(__name__)

EscalationCallback = Callable[[], Awaitable[None]]


class EscalationScheduler:
    def __init__(self):
        self._timers: dict[AlertKey, asyncio.Task] = {}
        self._deadlines: dict[AlertKey, float] = {}

    def __contains__(self, key: AlertKey) -> bool:
        return key in self._timers

    @property
    def pending_keys(self) -> list[AlertKey]:
        return list(self._timers)

    def remaining_seconds(self, key: AlertKey) -> float | None:
        deadline = self._deadlines.get(key)
        if deadline is None:
            return None
        return max(0.0, deadline - asyncio.get_running_loop().time())

    def schedule(
        self,
        key: AlertKey,
        delay_seconds: float,
        callback: EscalationCallback,
        keep_deadline: bool = False,
    ) -> asyncio.Task:
        """Start (or restart) the timer for key. Needs a running event loop."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay_seconds
        if keep_deadline and key in self._deadlines:
            deadline = min(deadline, self._deadlines[key])

        self.cancel(key)
        task = loop.create_task(self._run(key, deadline, callback))
        self._timers[key] = task
        self._deadlines[key] = deadline
        logger.info(
            "Escalation scheduled",
            vehicle_id=key.vehicle_id,
            step=key.step.value,
            delay_seconds=round(max(0.0, deadline - loop.time()), 3),
        )
        return task

    def cancel(self, key: AlertKey) -> bool:
        self._deadlines.pop(key, None)
        task = self._timers.pop(key, None)
        if task is None:
            return False
        if not task.done():
            task.cancel()
            logger.debug("Escalation cancelled", vehicle_id=key.vehicle_id, step=key.step.value)
        return True

    def cancel_all(self) -> int:
        keys = list(self._timers)
        for key in keys:
            self.cancel(key)
        return len(keys)

    async def _run(self, key: AlertKey, deadline: float, callback: EscalationCallback) -> None:
        loop = asyncio.get_running_loop()
        await asyncio.sleep(max(0.0, deadline - loop.time()))

        # Timer is spent; drop it before the callback so the callback may reschedule.
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
            self._deadlines.pop(key, None)

        try:
            await callback()
        except Exception as e:
            logger.error(
                "Escalation callback failed",
                vehicle_id=key.vehicle_id,
                step=key.step.value,
                error=str(e),
            )
