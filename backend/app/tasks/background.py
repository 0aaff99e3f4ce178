"""
In-Process-Worker für Zeitkonto-Anpassungen.

Begrenzte asyncio-Queue: dispatch() blockiert nie, eine volle Queue
verwirft den Job mit Warnung. Ausnahmen des Handlers werden zu
AdjustmentResult(status="failed") und landen wie jedes andere Ergebnis
im Result-Callback, nie beim Aufrufer von dispatch().
"""
import asyncio
import logging
from typing import Awaitable, Callable, Protocol

from app.services.time_account_service import AdjustmentResult, TimeAccountAdjustmentJob

logger = logging.getLogger(__name__)

AdjustmentHandler = Callable[[TimeAccountAdjustmentJob], Awaitable[AdjustmentResult]]
ResultCallback = Callable[[TimeAccountAdjustmentJob, AdjustmentResult], None]


class AdjustmentDispatcher(Protocol):
    def dispatch(self, job: TimeAccountAdjustmentJob) -> bool:
        ...


class BackgroundWorker:

    def __init__(
        self,
        handler: AdjustmentHandler,
        on_result: ResultCallback | None = None,
        maxsize: int = 500,
    ):
        self.handler = handler
        self.on_result = on_result
        self.queue: asyncio.Queue[TimeAccountAdjustmentJob] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="adjustment-worker")

    def dispatch(self, job: TimeAccountAdjustmentJob) -> bool:
        try:
            self.queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.warning(
                "Adjustment queue full, dropping job for violation %s", job.violation_id
            )
            return False
        return True

    async def join(self) -> None:
        """Wartet bis alle eingereihten Jobs abgearbeitet sind."""
        await self.queue.join()

    async def stop(self) -> None:
        if self._task is None:
            return
        await self.join()
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _run(self) -> None:
        while True:
            job = await self.queue.get()
            try:
                result = await self._execute(job)
                if self.on_result is not None:
                    self.on_result(job, result)
            except Exception:
                logger.exception("Result callback for violation %s failed", job.violation_id)
            finally:
                self.queue.task_done()

    async def _execute(self, job: TimeAccountAdjustmentJob) -> AdjustmentResult:
        try:
            return await self.handler(job)
        except Exception as e:
            return AdjustmentResult.failed(e)
