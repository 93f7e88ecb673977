"""Round-robin scheduling of asynchronous work across compute devices.

Every worker owns its stream and buffers exclusively. A dispatch returns a
:class:`DeviceResult` immediately; the pool keeps at most one unfinished
result per worker and consumes it before handing that worker new work, so
issuing on one device overlaps with computing on the others.
"""

import logging
from collections import deque

from .utils import DeviceError

logger = logging.getLogger(__name__)


class DeviceResult:
    """Host buffer that becomes valid once a CUDA event has completed.

    Parameters
    ----------
    host_buffer : numpy.ndarray
        Destination of the asynchronous copy. It is owned by the worker and
        overwritten by its next dispatch.
    event : numba.cuda.cudadrv.driver.Event, optional
        Event recorded after the copy. ``None`` marks an already valid buffer.
    """

    def __init__(self, host_buffer, event=None):
        self._buffer = host_buffer
        self._event = event

    def result(self):
        """Block until the device work is done and return the host buffer."""
        if self._event is not None:
            try:
                self._event.synchronize()
            except Exception as exc:
                raise DeviceError(f"Waiting for device result failed: {exc}") from exc
            self._event = None
        return self._buffer


class DevicePool:
    """Fixed set of device workers with a one-in-flight admission rule.

    Parameters
    ----------
    workers : sequence
        Worker objects. They are handed to the dispatch callable unchanged.

    Raises
    ------
    ValueError
        If `workers` is empty.
    """

    def __init__(self, workers):
        self._workers = list(workers)
        if not self._workers:
            raise ValueError("A device pool needs at least one worker")

    def __len__(self):
        return len(self._workers)

    def __iter__(self):
        return iter(self._workers)

    def __getitem__(self, idx):
        return self._workers[idx]

    def imap(self, dispatch, jobs):
        """Run ``dispatch(worker, job)`` for every job, round-robin over workers.

        Parameters
        ----------
        dispatch : callable
            ``dispatch(worker, job) -> DeviceResult``. Must issue the work and
            return without waiting for it.
        jobs : iterable
            Jobs in issue order.

        Yields
        ------
        tuple
            ``(job, host_buffer)`` in issue order. The buffer is only valid
            until the generator is resumed.

        Raises
        ------
        DeviceError
            If a dispatch or a wait fails. Remaining in-flight work is
            drained before the error propagates.
        """
        in_flight = deque()
        n_dispatched = 0
        try:
            for idx, job in enumerate(jobs):
                worker = self._workers[idx % len(self._workers)]
                if len(in_flight) == len(self._workers):
                    prev_job, prev = in_flight.popleft()
                    yield prev_job, prev.result()
                try:
                    pending = dispatch(worker, job)
                except DeviceError:
                    raise
                except Exception as exc:
                    raise DeviceError(f"Dispatch of {job!r} failed: {exc}") from exc
                in_flight.append((job, pending))
                n_dispatched += 1

            while in_flight:
                prev_job, prev = in_flight.popleft()
                yield prev_job, prev.result()
        finally:
            for _, pending in in_flight:
                try:
                    pending.result()
                except DeviceError:
                    logger.exception("Discarding failed in-flight device result")
            logger.debug("Device pool processed %d dispatches on %d workers",
                         n_dispatched, len(self._workers))
