"""Process-wide owner of the periodic MIA sweep.

``mia_scheduler`` is the one instance per process. ``start()`` may be called
from any boot hook any number of times; only the first call triggers the boot
sweep. ``run_once()`` never lets two sweeps overlap inside this process;
overlap across processes is tolerated by the sweep's own ledgers.
"""

from __future__ import annotations

import logging
import threading

from .mia_alerts import MiaAlertSweep, SweepReport

logger = logging.getLogger(__name__)


class MiaSweepScheduler:
    def __init__(self, sweep_factory=MiaAlertSweep):
        self.sweep_factory = sweep_factory
        self._started = False
        self._start_lock = threading.Lock()
        self._run_lock = threading.Lock()

    @property
    def started(self) -> bool:
        return self._started

    def start(self, runner=None) -> bool:
        """Trigger the boot sweep once per process.

        ``runner`` replaces the inline sweep, e.g. a task's ``delay`` so the
        caller is not blocked while the sweep runs.
        """
        with self._start_lock:
            if self._started:
                return False
            self._started = True
        logger.info("MIA scheduler started, triggering boot sweep")
        (runner or self.run_once)()
        return True

    def run_once(self) -> SweepReport | None:
        if not self._run_lock.acquire(blocking=False):
            logger.warning("MIA sweep already running in this process, skipping")
            return None
        try:
            return self.sweep_factory().run()
        finally:
            self._run_lock.release()


mia_scheduler = MiaSweepScheduler()


def run_sweep_once() -> None:
    mia_scheduler.run_once()
