import threading
from types import SimpleNamespace

from apps.worker import main as worker
from still_alive.services.mia_alerts import SweepReport
from still_alive.services.scheduler import MiaSweepScheduler


class CountingSweep:
    runs = 0

    def run(self):
        CountingSweep.runs += 1
        return SweepReport(users_scanned=1)


def test_start_runs_boot_sweep_only_once():
    CountingSweep.runs = 0
    scheduler = MiaSweepScheduler(sweep_factory=CountingSweep)

    assert scheduler.start() is True
    assert scheduler.start() is False
    assert scheduler.started
    assert CountingSweep.runs == 1

    report = scheduler.run_once()
    assert report.users_scanned == 1
    assert CountingSweep.runs == 2


def test_overlapping_run_is_skipped():
    entered = threading.Event()
    release = threading.Event()

    class SlowSweep:
        def run(self):
            entered.set()
            release.wait(timeout=5)
            return SweepReport()

    scheduler = MiaSweepScheduler(sweep_factory=SlowSweep)
    results = []
    worker = threading.Thread(target=lambda: results.append(scheduler.run_once()))
    worker.start()
    assert entered.wait(timeout=5)

    assert scheduler.run_once() is None

    release.set()
    worker.join(timeout=5)
    assert isinstance(results[0], SweepReport)


def test_lock_is_released_after_a_failing_sweep():
    class BrokenSweep:
        def run(self):
            raise RuntimeError("db down")

    scheduler = MiaSweepScheduler(sweep_factory=BrokenSweep)
    for _ in range(2):
        try:
            scheduler.run_once()
        except RuntimeError:
            pass
    scheduler.sweep_factory = CountingSweep
    assert scheduler.run_once() is not None


def test_start_with_runner_does_not_sweep_inline():
    CountingSweep.runs = 0
    enqueued = []
    scheduler = MiaSweepScheduler(sweep_factory=CountingSweep)

    assert scheduler.start(runner=lambda: enqueued.append("boot")) is True
    assert scheduler.start(runner=lambda: enqueued.append("again")) is False
    assert enqueued == ["boot"]
    assert CountingSweep.runs == 0


def test_worker_ready_enqueues_one_boot_sweep(monkeypatch):
    CountingSweep.runs = 0
    enqueued = []
    monkeypatch.setattr(worker, "mia_scheduler", MiaSweepScheduler(sweep_factory=CountingSweep))
    monkeypatch.setattr(worker, "mia_sweep", SimpleNamespace(delay=lambda: enqueued.append(1)))

    worker.start_mia_scheduler()
    worker.start_mia_scheduler()

    assert enqueued == [1]
    assert CountingSweep.runs == 0
