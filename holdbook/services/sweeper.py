import asyncio
import logging
from typing import Optional

from holdbook.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)


class ReservationSweeper:
    """Periodic worker that reclaims capacity from lapsed holds.

    "Lapsed" is judged by the service clock, so tests drive it with
    ``run_once()`` after moving a manual clock instead of sleeping.
    """

    def __init__(self, reservations: ReservationService, interval_seconds: float = 300):
        self.reservations = reservations
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        return await self.reservations.expire_lapsed()

    async def _loop(self):
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                # A failing tick must not kill the worker
                logger.exception("Reservation sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Reservation sweeper started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
