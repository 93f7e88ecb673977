import numpy as np
import pytest

from radonct.scheduling import DevicePool, DeviceResult
from radonct.utils import DeviceError


class FakeEvent:
    def __init__(self, log, name, fail=False):
        self.log = log
        self.name = name
        self.fail = fail

    def synchronize(self):
        self.log.append(("wait", self.name))
        if self.fail:
            raise RuntimeError("device lost")


class FakeWorker:
    def __init__(self, name, log):
        self.name = name
        self.log = log
        self.in_flight = 0

    def dispatch(self, job, fail_wait=False):
        assert self.in_flight == 0, "worker received work before its result was consumed"
        self.in_flight += 1
        self.log.append(("issue", self.name, job))
        worker = self

        class _Event(FakeEvent):
            def synchronize(self):
                worker.in_flight -= 1
                super().synchronize()

        return DeviceResult(np.array([job]), _Event(self.log, self.name, fail_wait))


def test_empty_pool_rejected():
    with pytest.raises(ValueError):
        DevicePool([])


def test_results_in_issue_order_round_robin():
    log = []
    workers = [FakeWorker("a", log), FakeWorker("b", log)]
    pool = DevicePool(workers)
    results = list(pool.imap(lambda w, job: w.dispatch(job), range(5)))

    assert [job for job, _ in results] == list(range(5))
    assert [int(buf[0]) for _, buf in results] == list(range(5))
    issued = [entry[1] for entry in log if entry[0] == "issue"]
    assert issued == ["a", "b", "a", "b", "a"]


def test_one_in_flight_per_worker():
    log = []
    workers = [FakeWorker("a", log), FakeWorker("b", log), FakeWorker("c", log)]
    pool = DevicePool(workers)
    for _ in pool.imap(lambda w, job: w.dispatch(job), range(10)):
        assert sum(w.in_flight for w in workers) <= len(workers)
    assert all(w.in_flight == 0 for w in workers)


def test_dispatch_failure_is_wrapped_and_drained():
    log = []
    workers = [FakeWorker("a", log), FakeWorker("b", log)]
    pool = DevicePool(workers)

    def dispatch(worker, job):
        if job == 3:
            raise KeyError("bad job")
        return worker.dispatch(job)

    seen = []
    with pytest.raises(DeviceError):
        for job, _ in pool.imap(dispatch, range(6)):
            seen.append(job)
    assert seen == [0, 1]
    # job 2 was in flight when job 3 failed and must have been waited for
    assert ("wait", "a") in log[log.index(("issue", "a", 2)):]
    assert all(w.in_flight == 0 for w in workers)


def test_wait_failure_raises_device_error():
    log = []
    worker = FakeWorker("a", log)
    pool = DevicePool([worker])
    with pytest.raises(DeviceError):
        list(pool.imap(lambda w, job: w.dispatch(job, fail_wait=(job == 1)), range(3)))


def test_device_result_without_event():
    buf = np.zeros(3)
    assert DeviceResult(buf).result() is buf
