"""Bounded-concurrency task pool.

Submit-on-demand pattern: at most ``limit`` tasks are handed to the executor,
and the next one is submitted only after an in-flight task settles. Results
are written into the slot matching the task's input position, by the calling
thread only, so completion order never leaks into the output.
"""

import concurrent.futures
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class TaskOutcome(Generic[R]):
    """Settled result for one input slot: either a value or the worker's error."""

    index: int
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_bounded(
    tasks: Sequence[T],
    limit: int,
    worker: Callable[[T], R],
    on_submitted: Optional[Callable[[int, T], Any]] = None,
    on_settled: Optional[Callable[[TaskOutcome[R]], Any]] = None,
) -> List[TaskOutcome[R]]:
    """Run ``worker`` over ``tasks`` with at most ``limit`` in flight.

    A worker exception settles only its own slot. ``limit <= 0`` removes the
    bound. Callbacks run on the calling thread.
    """
    items = list(tasks)
    if not items:
        return []

    bounded = limit > 0
    max_workers = limit if bounded else len(items)
    outcomes: List[Optional[TaskOutcome[R]]] = [None] * len(items)
    pending: Deque[Tuple[int, T]] = deque(enumerate(items))
    in_flight: Dict[concurrent.futures.Future, int] = {}
    interrupted = False

    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=max_workers,
        thread_name_prefix="scanimg-probe",
    )

    def submit_available():
        """Submit tasks until the in-flight limit is reached."""
        while pending and (not bounded or len(in_flight) < limit):
            index, item = pending.popleft()
            if on_submitted:
                on_submitted(index, item)
            in_flight[executor.submit(worker, item)] = index

    try:
        submit_available()

        while in_flight:
            done, _ = concurrent.futures.wait(
                set(in_flight.keys()),
                return_when=concurrent.futures.FIRST_COMPLETED,
            )

            for future in done:
                index = in_flight.pop(future)
                try:
                    outcome = TaskOutcome(index=index, value=future.result())
                except Exception as e:
                    logger.error(f"Task {index} failed with exception: {e!r}")
                    outcome = TaskOutcome(index=index, error=e)
                outcomes[index] = outcome
                if on_settled:
                    on_settled(outcome)

            submit_available()

    except KeyboardInterrupt:
        # Running probes are left to their own deadlines; nothing new starts.
        logger.info("Ctrl+C detected - cancelling queued probes...")
        interrupted = True
        pending.clear()
        for future in list(in_flight.keys()):
            if not future.done():
                future.cancel()
        raise
    finally:
        executor.shutdown(wait=not interrupted, cancel_futures=True)

    return outcomes  # every slot settled by the loop above
