# forkjoin

Fork-join parallelism for many small, recursive tasks.

A `Scope` runs two callables "potentially in parallel" with `join`. Work goes
to other threads only when a periodic heartbeat fires. Between heartbeats,
joins run one after the other on the calling thread. Deep recursive splits stay
cheap, and you never have to estimate how much work is left on a branch.

The work runs on ordinary Python threads. CPU-bound pure-Python code is still
subject to the interpreter's global lock. The pool helps most when the
callables release it, for example during I/O or in extension code.

## Installation

```
pip install forkjoin
```

## Usage

Each callable passed to `join` receives a `Scope`. Use that scope for any
nested joins. `join` returns a tuple of both results in the order `(a, b)`.

```python
from dataclasses import dataclass

from forkjoin.pool import Scope


@dataclass
class Node:
    val: int
    left: "Node | None" = None
    right: "Node | None" = None


def tree(layers: int) -> Node:
    if layers == 1:
        return Node(1)
    return Node(1, tree(layers - 1), tree(layers - 1))


def total(node: "Node | None", scope: Scope) -> int:
    if node is None:
        return 0
    left, right = scope.join(
        lambda s: total(node.left, s),
        lambda s: total(node.right, s),
    )
    return node.val + left + right


assert total(tree(10), Scope.global_scope()) == 1023
```

### Thread pools

`Scope.global_scope()` returns a new scope on a process-wide pool. That pool
is created with default settings the first time it is needed. You can also
create a pool of your own. A pool is a context manager and stops its threads
on exit. You can also stop it yourself with `close()`, and calling `close()`
more than once is safe.

```python
from forkjoin.pool import Config, ThreadPool

with ThreadPool(Config(thread_count=2, heartbeat_interval=50e-6)) as pool:
    scope = pool.scope()
    a, b = scope.join(lambda _: 1, lambda _: 2)
    assert (a, b) == (1, 2)
```

- `Config.thread_count` is the total number of threads that take part,
  counting the caller, so the pool starts `thread_count - 1` worker threads.
  The default of `None` uses `os.cpu_count()`. Values below 1 raise
  `ValueError`.
- `Config.heartbeat_interval` is the time between heartbeats on any one
  thread, in seconds. The default is 100 microseconds. Negative values raise
  `ValueError`.

Calling `scope()` on a closed pool raises `RuntimeError`.

`ThreadPool.set_global()` makes a pool the global one. This works only once:
if a global pool already exists, it raises `RuntimeError`.
`ThreadPool.global_pool()` returns the global pool and creates a default one if
none is set.

### Tuning heartbeat checks

By default, `Scope.join` checks for a heartbeat on one call in 64.
`Scope.join_with_heartbeat_every(times, a, b)` lets you choose the rate. With
`times=1`, every call checks. `times` must lie between 1 and 255; other values
raise `ValueError`.

### Errors

If a callable raises an exception, `join` raises that same exception in the
caller. This also happens when the callable ran on a worker thread.

### Modules

- `forkjoin.pool`: `ThreadPool`, `Config` and `Scope`, the public interface.
- `forkjoin.job`: jobs, their one-shot futures and the per-thread job queue.
- `forkjoin.context`: the lock-guarded state shared by the threads of a pool.

## Running the tests

```
pip install -e .[test]
pytest
```