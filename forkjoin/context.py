"""State shared between the threads of a pool, guarded by a single lock."""

from __future__ import annotations

import threading
import time
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from forkjoin.job import Job


class HeartbeatFlag:
    """A flag the heartbeat thread raises to ask a scope to share work."""

    __slots__ = ("_value", "__weakref__")

    def __init__(self, value: bool = True) -> None:
        self._value = value

    def is_set(self) -> bool:
        """Return whether the flag is raised."""
        return self._value

    def set(self) -> None:
        """Raise the flag."""
        self._value = True

    def clear(self) -> None:
        """Lower the flag."""
        self._value = False


@dataclass
class Heartbeat:
    """The heartbeat thread's record of one scope's flag."""

    flag_ref: "weakref.ReferenceType[HeartbeatFlag]"
    last_heartbeat: float = field(default_factory=time.monotonic)


@dataclass
class LockContext:
    """Everything that is only touched while the pool's lock is held."""

    time: int = 0
    is_stopping: bool = False
    shared_jobs: Dict[int, Tuple[int, Job[Any]]] = field(default_factory=dict)
    heartbeats: Dict[int, Heartbeat] = field(default_factory=dict)
    heartbeat_index: int = 0

    def new_heartbeat(self) -> HeartbeatFlag:
        """Register a new raised flag with the heartbeat thread and return it."""
        flag = HeartbeatFlag(True)
        self.heartbeats[self.heartbeat_index] = Heartbeat(weakref.ref(flag))
        self.heartbeat_index += 1
        return flag

    def pop_earliest_shared_job(self) -> Optional[Job[Any]]:
        """Remove and return the shared job with the smallest key, if any."""
        if not self.shared_jobs:
            return None
        _, job = self.shared_jobs.pop(min(self.shared_jobs))
        return job


class Context:
    """The lock, its guarded state and the conditions that wait on it."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.state = LockContext()
        self.job_is_ready = threading.Condition(self.lock)
        self.scope_created_from_thread_pool = threading.Condition(self.lock)