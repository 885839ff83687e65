"""Jobs, their futures and the per-thread queue of jobs that may be shared."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """The result of running a job: either a value or the exception it raised."""

    value: Optional[T] = None
    error: Optional[BaseException] = None

    def unwrap(self) -> Optional[T]:
        """Return the value, or re-raise the exception the job raised."""
        if self.error is not None:
            raise self.error
        return self.value


class Future(Generic[T]):
    """A one-shot slot that a job's outcome is delivered through."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._ready = False
        self._outcome: Optional[Outcome[T]] = None

    def poll(self) -> bool:
        """Return True once the outcome has been delivered."""
        return self._ready

    def wait(self) -> Optional[Outcome[T]]:
        """Block until completed, then take the outcome.

        The outcome can be taken only once; later calls return None.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._ready)
            outcome, self._outcome = self._outcome, None
            return outcome

    def complete(self, outcome: Outcome[T]) -> None:
        """Deliver the outcome and wake any waiting thread."""
        with self._cond:
            if self._ready:
                raise RuntimeError("future has already been completed")
            self._outcome = outcome
            self._ready = True
            self._cond.notify_all()


class JobStack(Generic[T]):
    """Holds the callable of a job until it is taken out exactly once."""

    def __init__(self, f: Callable[[Any], T]) -> None:
        self._f: Optional[Callable[[Any], T]] = f

    def take_once(self) -> Callable[[Any], T]:
        """Take the callable out; a second call raises RuntimeError."""
        f = self._f
        if f is None:
            raise RuntimeError("job callable has already been taken")
        self._f = None
        return f


class Job(Generic[T]):
    """A unit of work that may be run by another thread.

    A job gets its future when it is popped from the front of a queue; only
    then can it be executed or waited upon.
    """

    def __init__(self, stack: JobStack[T]) -> None:
        self._stack = stack
        self._future: Optional[Future[T]] = None

    def _attach_future(self) -> None:
        self._future = Future()

    def is_waiting(self) -> bool:
        """Return True while the job has not been handed out for sharing."""
        return self._future is None

    def poll(self) -> bool:
        """Return True once a shared job has finished running."""
        return self._future is not None and self._future.poll()

    def wait(self) -> Optional[Outcome[T]]:
        """Wait for a shared job and take its outcome, or None if not shared."""
        future = self._future
        if future is None:
            return None
        outcome = future.wait()
        self._future = None
        return outcome

    def discard(self) -> None:
        """Release the future of a shared job that will never be run."""
        self._future = None

    def execute(self, scope: Any) -> None:
        """Run the job's callable with scope and complete its future."""
        future = self._future
        if future is None:
            raise RuntimeError("only a job popped from a queue can be executed")
        f = self._stack.take_once()
        try:
            outcome: Outcome[T] = Outcome(value=f(scope))
        except Exception as exc:  # delivered to the waiting thread
            outcome = Outcome(error=exc)
        future.complete(outcome)


class JobQueue:
    """A double-ended queue of jobs owned by one thread."""

    def __init__(self) -> None:
        self._jobs: Deque[Job[Any]] = deque()

    def __len__(self) -> int:
        return len(self._jobs)

    def push_back(self, job: Job[Any]) -> None:
        """Add a job at the back."""
        self._jobs.append(job)

    def pop_back(self) -> None:
        """Drop the job at the back, if any."""
        if self._jobs:
            self._jobs.pop()

    def pop_front(self) -> Optional[Job[Any]]:
        """Remove the oldest job and give it a future so it can be shared."""
        if not self._jobs:
            return None
        job = self._jobs.popleft()
        job._attach_future()
        return job