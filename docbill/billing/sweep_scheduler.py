"""Background pending sweep.

Runs `ReconciliationService.sweep_pending` on a fixed interval inside the API
process, so intents whose callback was deferred or never arrived get re-queried
without an operator calling the admin endpoint.
"""

import asyncio
from typing import AsyncContextManager, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docbill.billing.reconciliation import ReconciliationService, reconciliation_service
from docbill.core.config import settings
from docbill.core.logging import LoggerConfigurator
from docbill.db.session import get_db_context

logger = LoggerConfigurator.configure_logger(__name__, dimensions={"component": "sweep_scheduler"})


class PendingSweepScheduler:
    """Periodically re-queries unresolved payment intents."""

    def __init__(
        self,
        service: Optional[ReconciliationService] = None,
        interval_seconds: Optional[float] = None,
        session_context: Callable[[], AsyncContextManager[AsyncSession]] = get_db_context,
    ):
        """Initialize the scheduler.

        Args:
            service: Reconciliation service whose sweep is run.
            interval_seconds: Pause between sweeps. Defaults to settings.
            session_context: Factory of database session contexts, one per sweep.
        """
        self.service = service or reconciliation_service
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.PENDING_SWEEP_INTERVAL_SECONDS
        )
        self.session_context = session_context
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the sweep loop."""
        if self.running:
            logger.warning("Pending sweep scheduler is already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Pending sweep scheduler started, every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Stop the sweep loop and wait for it to finish."""
        if not self.running:
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                logger.debug("Pending sweep task cancelled")
            self.task = None
        logger.info("Pending sweep scheduler stopped")

    async def run_once(self) -> int:
        """Run one sweep in a fresh session. Returns how many intents were checked."""
        async with self.session_context() as db:
            results = await self.service.sweep_pending(db)
        return len(results)

    async def _sweep_loop(self) -> None:
        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                # the loop outlives a failed sweep; the next tick tries again
                logger.error(f"Pending sweep failed: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)


pending_sweep_scheduler = PendingSweepScheduler()
