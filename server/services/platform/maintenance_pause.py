import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from apscheduler.schedulers.base import BaseScheduler, STATE_RUNNING, STATE_PAUSED  # type: ignore[import-untyped]


class MaintenancePauseController:
    """
    Advisory pause bracket over the background maintenance scheduler.

    Requests open a bracket around engine work that must not interleave with a
    new maintenance sweep. Brackets from concurrent requests overlap freely:
    the scheduler is paused when the first one opens and resumed when the last
    one closes. A sweep already running is not interrupted, and no request
    ever waits on another.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._depth = 0
        self._scheduler: BaseScheduler | None = None

    def attach(self, scheduler: BaseScheduler | None) -> None:
        with self._lock:
            self._scheduler = scheduler
            if self._depth > 0:
                self._pause_scheduler()

    def pause(self) -> None:
        with self._lock:
            self._depth += 1
            if self._depth == 1:
                self._pause_scheduler()

    def resume(self) -> None:
        with self._lock:
            if self._depth == 0:
                logger.warning("Maintenance resume requested without a matching pause")
                return
            self._depth -= 1
            if self._depth == 0:
                self._resume_scheduler()

    @contextmanager
    def paused(self) -> Iterator[None]:
        self.pause()
        try:
            yield
        finally:
            self.resume()

    def is_paused(self) -> bool:
        with self._lock:
            return self._depth > 0

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            scheduler = self._scheduler
            return {
                "depth": self._depth,
                "scheduler_attached": scheduler is not None,
                "scheduler_paused": scheduler is not None and scheduler.state == STATE_PAUSED,
            }

    def _pause_scheduler(self) -> None:
        scheduler = self._scheduler
        if scheduler is None or scheduler.state != STATE_RUNNING:
            return
        scheduler.pause()
        logger.debug("Maintenance scheduler paused")

    def _resume_scheduler(self) -> None:
        scheduler = self._scheduler
        if scheduler is None or scheduler.state != STATE_PAUSED:
            return
        scheduler.resume()
        logger.debug("Maintenance scheduler resumed")


maintenance_pause = MaintenancePauseController()

logger = logging.getLogger(__name__)
