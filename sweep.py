"""
Scheduled sweep: orders left in RECEIVED for AUTO_COMPLETE_DAYS are completed.

``SweepJob`` is started and stopped by the application; runs are not
serialized against each other.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi.concurrency import run_in_threadpool

import config
from database import get_db, now_utc
from schemas import OrderStatus

logger = logging.getLogger(__name__)


def auto_complete_orders(now: Optional[datetime] = None) -> int:
    now = now or now_utc()
    cutoff = now - timedelta(days=config.AUTO_COMPLETE_DAYS)
    result = get_db()["order"].update_many(
        {"status": OrderStatus.RECEIVED.value, "timestamps.received_at": {"$lte": cutoff}},
        {"$set": {"status": OrderStatus.COMPLETED.value, "timestamps.completed_at": now, "updated_at": now}},
    )
    return result.modified_count


class SweepJob:
    def __init__(self, interval: Optional[float] = None):
        self.interval = interval if interval is not None else config.SWEEP_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Sweep job scheduled every %ss", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Sweep job stopped")

    async def run_once(self) -> int:
        try:
            count = await run_in_threadpool(auto_complete_orders)
        except Exception:
            logger.exception("Error running sweep job")
            return 0
        if count:
            logger.info("Auto-completed %s orders", count)
        return count

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()
