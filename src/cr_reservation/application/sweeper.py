"""Background loop that expires abandoned holds.

Started from the FastAPI lifespan and cancelled on shutdown. A failed tick is
logged and the loop carries on; the next tick picks the holds up again.
"""

import asyncio
import logging

from config.settings import settings
from src.cr_reservation.application.service import ReservationManager

logger = logging.getLogger(__name__)


class HoldSweeper:
    def __init__(
        self,
        manager: ReservationManager,
        interval_seconds: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._manager = manager
        self._interval = (
            interval_seconds
            if interval_seconds is not None
            else settings.HOLD_SWEEP_INTERVAL_SECONDS
        )
        self._batch_size = batch_size or settings.HOLD_SWEEP_BATCH_SIZE
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> int:
        """Run sweeps until a batch comes back short; returns holds canceled."""
        total = 0
        while True:
            result = await self._manager.sweep_expired_holds(limit=self._batch_size)
            total += result.canceled
            if result.scanned < self._batch_size or result.canceled == 0:
                return total

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Hold sweep tick failed")

    def start(self) -> None:
        if self._interval <= 0 or self.running:
            return
        self._task = asyncio.create_task(self._run(), name="hold-sweeper")
        logger.info("Hold sweeper started: interval=%ss", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Hold sweeper stopped")
