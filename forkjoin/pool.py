"""Thread pools and the scopes that run fork-join workloads on them."""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, List, Optional, Tuple, TypeVar

from forkjoin.context import Context, HeartbeatFlag
from forkjoin.job import Job, JobQueue, JobStack, Outcome

RA = TypeVar("RA")
RB = TypeVar("RB")

_DEFAULT_HEARTBEAT_EVERY = 64


def _execute_worker(context: Context, barrier: threading.Barrier) -> None:
    """Run shared jobs until the pool stops."""
    scope = Scope._from_worker(context, JobQueue())
    first_run = True

    while True:
        with context.lock:
            job = context.state.pop_earliest_shared_job()

        if job is not None:
            job.execute(scope)

        if first_run:
            first_run = False
            barrier.wait()

        with context.job_is_ready:
            if context.state.is_stopping:
                break
            context.job_is_ready.wait()


def _execute_heartbeat(
    context: Context, heartbeat_interval: float, num_workers: int
) -> None:
    """Periodically raise the heartbeat flags of all live scopes."""
    state = context.state
    condition = context.scope_created_from_thread_pool

    while True:
        with condition:
            condition.wait_for(
                lambda: len(state.heartbeats) != num_workers or state.is_stopping
            )
            if state.is_stopping:
                break

            now = time.monotonic()
            for key, heartbeat in list(state.heartbeats.items()):
                flag = heartbeat.flag_ref()
                if flag is None:
                    del state.heartbeats[key]
                elif now - heartbeat.last_heartbeat >= heartbeat_interval:
                    flag.set()
                    heartbeat.last_heartbeat = now

            count = len(state.heartbeats)
            pause = heartbeat_interval / count if count else None

        if pause is not None:
            time.sleep(pause)


class Scope:
    """An object that fork-join workloads are run on.

    Scopes are obtained from ``ThreadPool.scope`` or ``Scope.global_scope``.
    """

    def __init__(
        self, context: Context, job_queue: JobQueue, heartbeat: HeartbeatFlag
    ) -> None:
        self._context = context
        self._job_queue = job_queue
        self._heartbeat = heartbeat
        self._join_count = 0

    @classmethod
    def global_scope(cls) -> "Scope":
        """Return a new scope on the global thread pool."""
        return ThreadPool.global_pool().scope()

    @classmethod
    def _from_thread_pool(cls, pool: "ThreadPool") -> "Scope":
        context = pool._context
        with context.scope_created_from_thread_pool:
            heartbeat = context.state.new_heartbeat()
            context.scope_created_from_thread_pool.notify()
        return cls(context, JobQueue(), heartbeat)

    @classmethod
    def _from_worker(cls, context: Context, job_queue: JobQueue) -> "Scope":
        with context.lock:
            heartbeat = context.state.new_heartbeat()
        return cls(context, job_queue, heartbeat)

    @property
    def _heartbeat_id(self) -> int:
        return id(self._heartbeat)

    def _wait_for_sent_job(self, job: Job[Any]) -> Optional[Outcome[Any]]:
        context = self._context
        with context.lock:
            entry = context.state.shared_jobs.pop(self._heartbeat_id, None)
        if entry is not None:
            _, unclaimed = entry
            unclaimed.discard()
            return None

        while not job.poll():
            with context.lock:
                other = context.state.pop_earliest_shared_job()
            if other is None:
                break
            other.execute(self)

        return job.wait()

    def _share_job(self) -> None:
        context = self._context
        with context.lock:
            state = context.state
            if self._heartbeat_id not in state.shared_jobs:
                job = self._job_queue.pop_front()
                if job is not None:
                    state.shared_jobs[self._heartbeat_id] = (state.time, job)
                    state.time += 1
                    context.job_is_ready.notify()
            self._heartbeat.clear()

    def _join_seq(
        self, a: Callable[["Scope"], RA], b: Callable[["Scope"], RB]
    ) -> Tuple[RA, RB]:
        rb = b(self)
        ra = a(self)
        return ra, rb

    def _join_heartbeat(
        self, a: Callable[["Scope"], RA], b: Callable[["Scope"], RB]
    ) -> Tuple[RA, RB]:
        def with_heartbeat(scope: Scope) -> RA:
            if scope._heartbeat.is_set():
                scope._share_job()
            return a(scope)

        stack: JobStack[RA] = JobStack(with_heartbeat)
        job: Job[RA] = Job(stack)
        self._job_queue.push_back(job)

        try:
            rb = b(self)
        except BaseException:
            if job.is_waiting():
                self._job_queue.pop_back()
            else:
                self._wait_for_sent_job(job)
            raise

        if job.is_waiting():
            self._job_queue.pop_back()
            return stack.take_once()(self), rb

        outcome = self._wait_for_sent_job(job)
        if outcome is None:
            ra = stack.take_once()(self)
        else:
            ra = outcome.unwrap()
        return ra, rb

    def join(
        self, a: Callable[["Scope"], RA], b: Callable[["Scope"], RB]
    ) -> Tuple[RA, RB]:
        """Run ``a`` and ``b``, potentially in parallel, and return both results.

        Checks for a heartbeat on one call in 64.
        """
        return self.join_with_heartbeat_every(_DEFAULT_HEARTBEAT_EVERY, a, b)

    def join_with_heartbeat_every(
        self,
        times: int,
        a: Callable[["Scope"], RA],
        b: Callable[["Scope"], RB],
    ) -> Tuple[RA, RB]:
        """Like ``join``, but check for a heartbeat on one call in ``times``.

        ``times`` must lie between 1 and 255.
        """
        if not 1 <= times <= 255:
            raise ValueError("times must be between 1 and 255")

        self._join_count = ((self._join_count + 1) & 0xFF) % times

        if self._join_count == 0 or len(self._job_queue) < 3:
            return self._join_heartbeat(a, b)
        return self._join_seq(a, b)


@dataclass(frozen=True)
class Config:
    """Thread pool configuration.

    ``thread_count`` is the number of threads, counting the calling thread,
    or None to use the number of CPUs. ``heartbeat_interval`` is in seconds.
    """

    thread_count: Optional[int] = None
    heartbeat_interval: float = 100e-6

    def __post_init__(self) -> None:
        if self.thread_count is not None and self.thread_count < 1:
            raise ValueError("thread_count must be at least 1")
        if self.heartbeat_interval < 0:
            raise ValueError("heartbeat_interval must not be negative")


class ThreadPool:
    """A pool of worker threads for fork-join workloads."""

    _global: ClassVar[Optional["ThreadPool"]] = None
    _global_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, config: Optional[Config] = None) -> None:
        config = config if config is not None else Config()
        parallelism = config.thread_count or os.cpu_count()
        thread_count = parallelism - 1 if parallelism else 0

        self._context = Context()
        self._closed = False

        barrier = threading.Barrier(thread_count + 1)
        self._workers: List[threading.Thread] = [
            threading.Thread(
                target=_execute_worker,
                args=(self._context, barrier),
                name=f"forkjoin-worker-{index}",
                daemon=True,
            )
            for index in range(thread_count)
        ]
        for worker in self._workers:
            worker.start()
        barrier.wait()

        self._heartbeat_thread: Optional[threading.Thread] = threading.Thread(
            target=_execute_heartbeat,
            args=(self._context, config.heartbeat_interval, thread_count),
            name="forkjoin-heartbeat",
            daemon=True,
        )
        self._heartbeat_thread.start()

    def set_global(self) -> None:
        """Make this pool the global one; raise RuntimeError if one is set."""
        with ThreadPool._global_lock:
            if ThreadPool._global is not None:
                raise RuntimeError("the global thread pool has already been set")
            ThreadPool._global = self

    @classmethod
    def global_pool(cls) -> "ThreadPool":
        """Return the global thread pool, creating a default one if needed."""
        with ThreadPool._global_lock:
            if ThreadPool._global is None:
                ThreadPool._global = cls()
            return ThreadPool._global

    def scope(self) -> Scope:
        """Return a new scope to run fork-join workloads on."""
        if self._closed:
            raise RuntimeError("the thread pool has been closed")
        return Scope._from_thread_pool(self)

    def close(self) -> None:
        """Stop and join all threads of the pool; safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        context = self._context
        with context.lock:
            context.state.is_stopping = True
            context.job_is_ready.notify_all()
            context.scope_created_from_thread_pool.notify_all()

        for worker in self._workers:
            worker.join()
        self._workers.clear()

        if self._heartbeat_thread is not None:
            self._heartbeat_thread.join()
            self._heartbeat_thread = None

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()