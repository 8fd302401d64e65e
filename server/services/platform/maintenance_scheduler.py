import logging
from datetime import datetime, timedelta, timezone
from typing import Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]

from server.config import config
from server.services.orchestration.in_memory_job_engine import job_engine
from server.services.platform.maintenance_pause import MaintenancePauseController, maintenance_pause


class MaintenanceEnginePort(Protocol):
    def run_maintenance(self, retention: timedelta) -> int:
        ...


class MaintenanceScheduler:
    """
    Background service running periodic engine maintenance sweeps.

    Responsibilities:
    - Periodically purge completed jobs past their retention window.
    - Expose its scheduler to the pause controller so job commands can
      suspend new sweeps while they mutate state.
    """

    def __init__(self, engine: MaintenanceEnginePort, pause_controller: MaintenancePauseController) -> None:
        self.scheduler = AsyncIOScheduler()
        self._engine = engine
        self._pause_controller = pause_controller
        self._job_added = False

    def start(self) -> None:
        interval_seconds = int(config.MAINTENANCE.INTERVAL_SECONDS)
        if interval_seconds <= 0:
            logger.info("Maintenance scheduler disabled (interval <= 0)")
            return
        if self.scheduler.running:
            return
        try:
            self._add_sweep_job(interval_seconds)
            self.scheduler.start()
        except RuntimeError:
            # Recreate scheduler if previous event loop was closed (repeated app lifespans in tests).
            self.scheduler = AsyncIOScheduler()
            self._job_added = False
            self._add_sweep_job(interval_seconds)
            self.scheduler.start()
        self._pause_controller.attach(self.scheduler)
        logger.info("Maintenance scheduler started: interval=%ss", interval_seconds)

    def shutdown(self) -> None:
        self._pause_controller.attach(None)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def run_sweep(self) -> int:
        retention_hours = int(config.MAINTENANCE.COMPLETED_JOB_RETENTION_HOURS)
        if retention_hours <= 0:
            logger.info("Completed job purge disabled (retention <= 0)")
            return 0
        logger.info("Maintenance sweep started at %s", datetime.now(timezone.utc).isoformat())
        purged = self._engine.run_maintenance(timedelta(hours=retention_hours))
        if purged:
            logger.info("Maintenance sweep purged jobs=%s", purged)
        return purged

    def _add_sweep_job(self, interval_seconds: int) -> None:
        if self._job_added:
            return
        self.scheduler.add_job(
            self.run_sweep,
            "interval",
            seconds=interval_seconds,
            coalesce=True,
            max_instances=1,
        )
        self._job_added = True


maintenance_scheduler = MaintenanceScheduler(job_engine, maintenance_pause)

logger = logging.getLogger(__name__)
