# tests/unit/test_worker.py
from notifier.worker import run_worker


class CountingDispatcher:
    enabled = True

    def __init__(self, fail_first=False):
        self.cycles = 0
        self.fail_first = fail_first

    def process_queue(self):
        self.cycles += 1
        if self.fail_first and self.cycles == 1:
            raise RuntimeError("database is locked")
        return {"processed": 0}


def test_runs_cycles_and_sleeps_between_them(app):
    dispatcher = CountingDispatcher()
    app.config["DISPATCHER"] = dispatcher
    app.config["QUEUE_POLL_INTERVAL_SECONDS"] = 5
    sleeps = []

    assert run_worker(app, max_cycles=3, sleep=sleeps.append) == 3
    assert dispatcher.cycles == 3
    assert sleeps == [5, 5]


def test_failed_cycle_does_not_stop_the_loop(app):
    dispatcher = CountingDispatcher(fail_first=True)
    app.config["DISPATCHER"] = dispatcher

    assert run_worker(app, max_cycles=2, sleep=lambda s: None) == 2
    assert dispatcher.cycles == 2
