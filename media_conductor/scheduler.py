# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from itertools import islice
from logging import getLogger
from typing import Callable, Dict, Iterable, Iterator, Optional

from attrs import define, field

from .tasks import Outcome, Task

logger = getLogger(__name__)

# Leave a quarter of the machine for everything else
CAPACITY_FRACTION = 0.75


def available_threads() -> int:
    try:
        return len(os.sched_getaffinity(0))
    except AttributeError:
        logger.info(
            "Failed to determine number of available CPUs using"
            " os.sched_getaffinity(), falling back to os.cpu_count()."
        )
        return os.cpu_count() or 1


def capacity_for(threads: int) -> int:
    return max(1, int(threads * CAPACITY_FRACTION))


def clamp_capacity(max_concurrent: Optional[int]) -> int:
    """An empty pool would never finish anything, so it always has a slot"""
    return max(1, max_concurrent or 0)


class SchedulerException(Exception):
    pass


@define
class Scheduler:
    """Runs conversions with at most max_concurrent of them at once.

    Tasks are dispatched in the order given and outcomes are yielded in the
    order the conversions finish. Only the generator returned by run() ever
    touches the in-flight mapping, completions reach it through futures.
    """

    max_concurrent: int = field(converter=clamp_capacity)
    thread_name_prefix: str = "convert"
    _cancelled: threading.Event = field(factory=threading.Event, init=False)
    _in_flight: Dict[Future, Task] = field(factory=dict, init=False)
    _running: bool = field(default=False, init=False)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def cancel(self) -> None:
        """Stop dispatching in the active run, tasks already running are still
        reported. The next run starts uncancelled."""
        logger.info("Cancelling, waiting for %d conversions", self.in_flight)
        self._cancelled.set()

    @staticmethod
    def _outcome(task: Task, future: Future) -> Outcome:
        e = future.exception()
        if e is not None:
            # Workers return failures, but an escaped exception must not
            #  lose the task
            logger.error("Worker for %s raised", str(task.input_path), exc_info=e)
            return Outcome.failure(task, f"{e.__class__.__name__}: {e}")
        return future.result()

    def run(
        self, tasks: Iterable[Task], convert: Callable[[Task], Outcome]
    ) -> Iterator[Outcome]:
        if self._running:
            raise SchedulerException("A run is already in progress.")
        self._running = True
        self._cancelled.clear()

        pending = iter(tasks)
        in_flight = self._in_flight
        pool = ThreadPoolExecutor(
            max_workers=self.max_concurrent, thread_name_prefix=self.thread_name_prefix
        )
        # Leaving the with block waits for running conversions, so closing the
        #  generator early never leaves encoders running behind our back
        try:
            with pool:
                while True:
                    if not self._cancelled.is_set():
                        free = self.max_concurrent - len(in_flight)
                        for task in islice(pending, free):
                            logger.debug("Dispatching %s", str(task.input_path))
                            in_flight[pool.submit(convert, task)] = task
                    if not in_flight:
                        return

                    logger.debug("Waiting for %d conversions.", len(in_flight))
                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        task = in_flight.pop(future)
                        yield self._outcome(task, future)
        finally:
            in_flight.clear()
            self._running = False


def run(
    tasks: Iterable[Task],
    max_concurrent: int,
    convert: Callable[[Task], Outcome],
) -> Iterator[Outcome]:
    return Scheduler(max_concurrent).run(tasks, convert)
