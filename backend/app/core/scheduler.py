import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Set

log = logging.getLogger(__name__)

ANALYZE_UPLOAD = "vision.analyze_upload"
PROCESS_COMPLETED_ANALYSIS = "recipe_pipeline.process_completed_analysis"

Handler = Callable[..., Awaitable[Any]]


class Scheduler:
    """Runs named background steps now or after a delay.

    Each enqueued step runs once. A step that raises is logged and dropped;
    anything that should be retried re-enqueues itself.
    """

    def __init__(self):
        self.handlers: Dict[str, Handler] = {}
        self.tasks: Set[asyncio.Task] = set()

    def register(self, name: str, handler: Handler) -> None:
        self.handlers[name] = handler

    def run_after(self, delay: float, name: str, **payload: Any) -> asyncio.Task:
        if name not in self.handlers:
            raise KeyError(f"No handler registered for task {name!r}")

        task = asyncio.create_task(self._run(delay, name, payload))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        log.debug(f"Scheduled {name} in {delay}s with {payload}")
        return task

    async def _run(self, delay: float, name: str, payload: Dict[str, Any]) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            await self.handlers[name](**payload)
        except Exception:
            log.exception(f"Background task {name} failed")

    async def drain(self) -> None:
        """Wait until no scheduled task is left, including ones scheduled meanwhile."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self.tasks):
            task.cancel()
        await asyncio.gather(*list(self.tasks), return_exceptions=True)
        self.tasks.clear()
