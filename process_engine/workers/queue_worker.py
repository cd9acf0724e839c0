"""
Periodic queue worker.

Drains the execution queue on a fixed interval as a safety net for drains
that were never triggered (crashed requests, service tasks completed
outside a request).
"""

import asyncio
import logging
import signal
import uuid
from typing import Optional

from process_engine.config import get_settings
from process_engine.orchestrator.engine import ProcessEngine
from process_engine.orchestrator.factory import build_engine
from process_engine.orchestrator.processor import DrainResult

logger = logging.getLogger(__name__)


class QueueWorker:
    """Calls ``drain_queue`` every ``poll_interval`` seconds until stopped."""

    def __init__(
        self,
        engine: ProcessEngine,
        poll_interval: Optional[float] = None,
        worker_id: Optional[str] = None,
    ):
        self.engine = engine
        self.poll_interval = poll_interval or engine.settings.queue.poll_interval
        self.worker_id = worker_id or f"queue-worker-{uuid.uuid4().hex[:8]}"

        self._running = False
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> DrainResult:
        """Drain the queue once, logging rather than raising on errors."""
        try:
            return await self.engine.process_queue()
        except Exception as e:
            logger.error(f"Queue drain failed in {self.worker_id}: {e}", exc_info=True)
            return DrainResult()

    async def run(self) -> None:
        """Run until ``stop`` is called."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        logger.info(f"Starting {self.worker_id} (interval {self.poll_interval}s)")

        try:
            while self._running:
                await self.run_once()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info(f"{self.worker_id} stopped")

    def stop(self) -> None:
        self._running = False
        self._stop_event.set()


async def run_worker():
    """Entry point for running the queue worker."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    resources = await build_engine(settings)
    worker = QueueWorker(resources.engine)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.run()
    finally:
        await resources.close()


if __name__ == "__main__":
    asyncio.run(run_worker())
