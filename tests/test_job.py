import threading
import time

import pytest

from forkjoin.job import Future, Job, JobQueue, JobStack, Outcome


def make_job(f):
    return Job(JobStack(f))


def test_outcome_unwrap_value():
    assert Outcome(value="done").unwrap() == "done"


def test_outcome_unwrap_raises_error():
    err = ValueError("boom")
    with pytest.raises(ValueError, match="boom"):
        Outcome(error=err).unwrap()


def test_future_poll_and_wait():
    fut = Future()
    assert fut.poll() is False
    fut.complete(Outcome(value=7))
    assert fut.poll() is True
    outcome = fut.wait()
    assert outcome.unwrap() == 7
    assert fut.wait() is None


def test_future_complete_twice_raises():
    fut = Future()
    fut.complete(Outcome(value=1))
    with pytest.raises(RuntimeError):
        fut.complete(Outcome(value=2))


def test_future_wait_blocks_until_completed_elsewhere():
    fut = Future()

    def deliver():
        time.sleep(0.01)
        fut.complete(Outcome(value="late"))

    t = threading.Thread(target=deliver)
    t.start()
    outcome = fut.wait()
    t.join()
    assert outcome.value == "late"
    assert fut.poll() is True


def test_job_stack_take_once():
    def f(scope):
        return scope

    stack = JobStack(f)
    assert stack.take_once() is f
    with pytest.raises(RuntimeError):
        stack.take_once()


def test_new_job_is_waiting():
    job = make_job(lambda s: 1)
    assert job.is_waiting() is True
    assert job.poll() is False
    assert job.wait() is None


def test_execute_requires_pop():
    job = make_job(lambda s: 1)
    with pytest.raises(RuntimeError):
        job.execute(None)


def test_popped_job_executes_with_scope():
    job = make_job(lambda s: ("ran", s))
    queue = JobQueue()
    queue.push_back(job)
    popped = queue.pop_front()
    assert popped is job
    assert job.is_waiting() is False
    assert job.poll() is False
    job.execute("scope")
    assert job.poll() is True
    assert job.wait().unwrap() == ("ran", "scope")


def test_execute_captures_exception():
    def fail(scope):
        raise KeyError("missing")

    job = make_job(fail)
    queue = JobQueue()
    queue.push_back(job)
    queue.pop_front()
    job.execute(None)
    outcome = job.wait()
    assert isinstance(outcome.error, KeyError)
    with pytest.raises(KeyError):
        outcome.unwrap()


def test_execute_on_other_thread():
    job = make_job(lambda s: s * 2)
    queue = JobQueue()
    queue.push_back(job)
    shared = queue.pop_front()
    t = threading.Thread(target=shared.execute, args=(21,))
    t.start()
    outcome = job.wait()
    t.join()
    assert outcome.unwrap() == 42


def test_discard_releases_future():
    job = make_job(lambda s: 1)
    queue = JobQueue()
    queue.push_back(job)
    queue.pop_front()
    job.discard()
    assert job.wait() is None
    assert job.poll() is False


def test_queue_is_fifo_from_front():
    queue = JobQueue()
    jobs = [make_job(lambda s: None) for _ in range(3)]
    for job in jobs:
        queue.push_back(job)
    assert len(queue) == 3
    assert queue.pop_front() is jobs[0]
    assert queue.pop_front() is jobs[1]
    assert len(queue) == 1


def test_queue_pop_back_removes_newest():
    queue = JobQueue()
    first, second = make_job(lambda s: None), make_job(lambda s: None)
    queue.push_back(first)
    queue.push_back(second)
    queue.pop_back()
    assert len(queue) == 1
    assert queue.pop_front() is first
    assert second.is_waiting() is True


def test_queue_empty_pops():
    queue = JobQueue()
    queue.pop_back()
    assert queue.pop_front() is None
    assert len(queue) == 0