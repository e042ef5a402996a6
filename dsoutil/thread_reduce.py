"""Parallel reduction of a function over chunks of an index range."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Generic, Iterator, Optional, TypeVar

from dsoutil.numtypes import NUM_THREADS

R = TypeVar("R")


class IndexThreadReduce(Generic[R]):
    """Split [first, end) into chunks, evaluate them on worker threads and sum the results.

    ``zero`` builds the neutral value of the accumulated type; partial results
    are combined with ``+=``. A worker that gets no chunk is called once with
    the empty range (0, 0).
    """

    def __init__(self, zero: Callable[[], R], num_threads: int = NUM_THREADS) -> None:
        if num_threads < 1:
            raise ValueError("num_threads must be at least 1")
        self._zero = zero
        self.num_threads = num_threads
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(max_workers=num_threads)
        self.stats: R = zero()

    def reduce(
        self,
        call_per_index: Callable[[int, int, int], R],
        first: int,
        end: int,
        step_size: int = 0,
    ) -> R:
        """Call ``call_per_index(start, stop, thread_id)`` for every chunk and return the sum."""
        if self._executor is None:
            raise RuntimeError("reduce called on a closed IndexThreadReduce")
        if step_size < 0:
            raise ValueError("step_size must not be negative")
        if step_size == 0:
            step_size = (end - first + self.num_threads - 1) // self.num_threads

        starts: Iterator[int] = iter(range(first, end, step_size)) if first < end else iter(())
        lock = threading.Lock()

        def work(tid: int) -> R:
            total = self._zero()
            got_one = False
            while True:
                with lock:
                    start = next(starts, None)
                if start is None:
                    break
                total += call_per_index(start, min(start + step_size, end), tid)
                got_one = True
            if not got_one:
                total += call_per_index(0, 0, tid)
            return total

        futures = [self._executor.submit(work, tid) for tid in range(self.num_threads)]
        stats = self._zero()
        for future in futures:
            stats += future.result()
        self.stats = stats
        return stats

    def close(self) -> None:
        """Stop the worker threads."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "IndexThreadReduce[R]":
        return self

    def __exit__(self, *args) -> None:
        self.close()