"""
Bounded-concurrency fan-out of (address, port) units.

Units are launched address-major, port-minor. A unit takes an admission slot
before it is created and gives it back when its result has been queued, so
in-flight work never exceeds the capacity and a slow consumer applies
backpressure to the launcher. Results come back in completion order.
"""

import asyncio
import logging
from typing import AsyncIterator, Iterable, Sequence

from .prober import ProbeResult

log = logging.getLogger(__name__)

_DONE = object()


class AdmissionControl:
    """Counting semaphore that also tracks how many slots are held."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"concurrency must be positive, got {capacity}")
        self.capacity = capacity
        self._sem = asyncio.Semaphore(capacity)
        self.in_flight = 0
        self.peak = 0

    async def acquire(self):
        await self._sem.acquire()
        self.in_flight += 1
        if self.in_flight > self.peak:
            self.peak = self.in_flight

    def release(self):
        self.in_flight -= 1
        self._sem.release()

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.release()


class ProbeScheduler:
    def __init__(self, prober, admission: AdmissionControl):
        self.prober = prober
        self.admission = admission
        self.launched = 0
        self.completed = 0

    async def _unit(self, address, port: int, queue: asyncio.Queue):
        try:
            try:
                result = await self.prober.probe(address, port)
            except Exception as e:
                # prober contract is to never raise; keep siblings alive if it does
                log.error("probe %s:%s crashed: %r", address, port, e)
                result = ProbeResult(address, port, reason="error")
            await queue.put(result)
        finally:
            self.admission.release()

    async def _launch(self, addresses: Iterable, ports: Sequence[int], queue: asyncio.Queue, pending: set):
        try:
            for address in addresses:
                for port in ports:
                    await self.admission.acquire()
                    task = asyncio.create_task(self._unit(address, port, queue))
                    pending.add(task)
                    task.add_done_callback(pending.discard)
                    self.launched += 1
            if pending:
                await asyncio.gather(*list(pending))
        except Exception:
            # wake the consumer so run() can re-raise from the launcher task
            await queue.put(_DONE)
            raise
        await queue.put(_DONE)

    async def run(self, addresses: Iterable, ports: Sequence[int]) -> AsyncIterator[ProbeResult]:
        """
        Yield every unit's ProbeResult as soon as it completes.
        Closing the generator early cancels everything still running.
        """
        queue = asyncio.Queue(maxsize=self.admission.capacity)
        pending = set()
        launcher = asyncio.create_task(self._launch(addresses, ports, queue, pending))
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                self.completed += 1
                yield item
            # surface a launcher failure, if any
            await launcher
        finally:
            if not launcher.done():
                launcher.cancel()
            for task in list(pending):
                task.cancel()
            await asyncio.gather(launcher, *pending, return_exceptions=True)
