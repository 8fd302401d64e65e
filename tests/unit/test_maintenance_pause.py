import threading

from apscheduler.schedulers.base import STATE_PAUSED, STATE_RUNNING, STATE_STOPPED  # type: ignore[import-untyped]

from server.services.platform.maintenance_pause import MaintenancePauseController


class FakeScheduler:
    def __init__(self, state=STATE_RUNNING):
        self.state = state
        self.pauses = 0
        self.resumes = 0

    def pause(self):
        self.pauses += 1
        self.state = STATE_PAUSED

    def resume(self):
        self.resumes += 1
        self.state = STATE_RUNNING


def test_overlapping_brackets_pause_once():
    scheduler = FakeScheduler()
    controller = MaintenancePauseController()
    controller.attach(scheduler)

    with controller.paused():
        with controller.paused():
            assert controller.snapshot()["depth"] == 2
        assert scheduler.state == STATE_PAUSED
    assert scheduler.state == STATE_RUNNING
    assert (scheduler.pauses, scheduler.resumes) == (1, 1)
    assert controller.is_paused() is False


def test_bracket_released_on_error():
    scheduler = FakeScheduler()
    controller = MaintenancePauseController()
    controller.attach(scheduler)

    try:
        with controller.paused():
            raise ValueError("boom")
    except ValueError:
        pass
    assert scheduler.state == STATE_RUNNING
    assert controller.is_paused() is False


def test_unbalanced_resume_is_ignored():
    scheduler = FakeScheduler()
    controller = MaintenancePauseController()
    controller.attach(scheduler)
    controller.resume()
    assert scheduler.resumes == 0
    assert controller.snapshot()["depth"] == 0


def test_works_without_scheduler_and_with_stopped_scheduler():
    controller = MaintenancePauseController()
    with controller.paused():
        assert controller.snapshot() == {"depth": 1, "scheduler_attached": False, "scheduler_paused": False}

    stopped = FakeScheduler(state=STATE_STOPPED)
    controller.attach(stopped)
    with controller.paused():
        pass
    assert stopped.pauses == 0


def test_scheduler_attached_during_bracket_is_paused():
    controller = MaintenancePauseController()
    scheduler = FakeScheduler()
    controller.pause()
    controller.attach(scheduler)
    assert scheduler.state == STATE_PAUSED
    controller.resume()
    assert scheduler.state == STATE_RUNNING


def test_concurrent_brackets_balance():
    scheduler = FakeScheduler()
    controller = MaintenancePauseController()
    controller.attach(scheduler)
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        for _ in range(50):
            with controller.paused():
                pass

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert controller.snapshot()["depth"] == 0
    assert scheduler.state == STATE_RUNNING
    assert scheduler.pauses == scheduler.resumes
