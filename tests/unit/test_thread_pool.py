"""
Unit tests for the bounded thread pool.
"""

import threading

import pytest

from simplehttp.core.thread_pool import ThreadPool, Task

from conftest import wait_for


@pytest.fixture
def pool():
    """A small pool: 1 core, 2 max, 2 queued. Forced down after the test."""
    p = ThreadPool(core_workers=1, max_workers=2, queue_size=2)
    p.start()
    yield p
    p.shutdown_now()
    p.await_termination(2.0)


class Gate:
    """Lets tests hold workers busy and release them on demand."""

    def __init__(self):
        self.started = threading.Semaphore(0)
        self.release = threading.Event()

    def task(self):
        self.started.release()
        self.release.wait(5.0)


class TestSizing:
    """Tests for pool construction."""

    def test_for_thread_limit(self):
        """Test sizing derived from a thread limit."""
        pool = ThreadPool.for_thread_limit(4)

        assert pool.core_workers == 2
        assert pool.max_workers == 4
        assert pool.queue_capacity == 40
        assert pool.keep_alive == 30.0

    def test_for_thread_limit_one(self):
        """Test that a limit of 1 gives zero core workers."""
        pool = ThreadPool.for_thread_limit(1)

        assert pool.core_workers == 0
        assert pool.max_workers == 1
        assert pool.queue_capacity == 10

    @pytest.mark.parametrize("kwargs", [
        {"core_workers": 1, "max_workers": 0, "queue_size": 1},
        {"core_workers": 3, "max_workers": 2, "queue_size": 1},
        {"core_workers": -1, "max_workers": 2, "queue_size": 1},
        {"core_workers": 1, "max_workers": 2, "queue_size": 0},
    ])
    def test_invalid_sizes(self, kwargs):
        """Test that impossible sizes are rejected."""
        with pytest.raises(ValueError):
            ThreadPool(**kwargs)

    def test_start_prestarts_core_workers(self, pool: ThreadPool):
        """Test that start() creates the core workers."""
        assert pool.active_workers == 1


class TestSubmit:
    """Tests for the submission policy."""

    def test_runs_task(self, pool: ThreadPool):
        """Test that a submitted task runs with its arguments."""
        done = threading.Event()
        results = []

        def work(a, b=0):
            results.append(a + b)
            done.set()

        assert pool.submit(work, args=(1,), kwargs={"b": 2}) is True
        assert done.wait(2.0)
        assert results == [3]

    def test_saturation_rejects_immediately(self, pool: ThreadPool):
        """Test that max workers + full queue rejects, without blocking."""
        gate = Gate()

        # First task occupies the core worker
        assert pool.submit(gate.task)
        assert gate.started.acquire(timeout=2.0)

        # Next two fill the queue
        assert pool.submit(gate.task)
        assert pool.submit(gate.task)
        assert pool.queued_tasks == 2

        # Queue full: one extra worker is spawned for this one
        assert pool.submit(gate.task)
        assert gate.started.acquire(timeout=2.0)
        assert pool.active_workers == 2

        # Queue full and max workers busy
        assert pool.submit(gate.task) is False

        gate.release.set()
        assert wait_for(lambda: pool.stats["tasks"]["completed"] == 4)

    def test_queue_used_before_extra_workers(self, pool: ThreadPool):
        """Test that the queue fills before the pool grows past core size."""
        gate = Gate()

        pool.submit(gate.task)
        assert gate.started.acquire(timeout=2.0)
        pool.submit(gate.task)

        assert pool.active_workers == 1
        assert pool.queued_tasks == 1
        gate.release.set()

    def test_zero_core_workers_still_runs(self):
        """Test that queueing with no workers starts one."""
        pool = ThreadPool(core_workers=0, max_workers=1, queue_size=1)
        done = threading.Event()

        try:
            assert pool.submit(done.set)
            assert done.wait(2.0)
        finally:
            pool.shutdown(wait=True, timeout=2.0)

    def test_failing_task_does_not_kill_worker(self, pool: ThreadPool):
        """Test that an exception in a task is logged and counted."""
        done = threading.Event()

        def boom():
            raise RuntimeError("boom")

        pool.submit(boom)
        pool.submit(done.set)

        assert done.wait(2.0)
        assert wait_for(lambda: pool.stats["tasks"]["failed"] == 1)

    def test_submit_after_shutdown(self, pool: ThreadPool):
        """Test that a shut down pool rejects new tasks."""
        pool.shutdown()
        assert pool.submit(lambda: None) is False


class TestRetirement:
    """Tests for idle worker retirement."""

    def test_extra_worker_retires(self):
        """Test that a worker above core size retires after keep_alive."""
        pool = ThreadPool(core_workers=0, max_workers=1, queue_size=1, keep_alive=0.2)
        done = threading.Event()

        try:
            pool.submit(done.set)
            assert done.wait(2.0)
            assert wait_for(lambda: pool.active_workers == 0, timeout=3.0)
        finally:
            pool.shutdown(wait=True, timeout=2.0)

    def test_core_worker_stays(self):
        """Test that core workers do not retire."""
        pool = ThreadPool(core_workers=1, max_workers=1, queue_size=1, keep_alive=0.1)
        pool.start()

        try:
            assert not wait_for(lambda: pool.active_workers == 0, timeout=0.5)
        finally:
            pool.shutdown(wait=True, timeout=2.0)


class TestShutdown:
    """Tests for graceful and forced shutdown."""

    def test_graceful_shutdown_runs_queued_tasks(self):
        """Test that shutdown() lets queued tasks finish."""
        pool = ThreadPool(core_workers=1, max_workers=1, queue_size=5)
        pool.start()
        results = []

        for i in range(4):
            pool.submit(results.append, args=(i,))

        assert pool.shutdown(wait=True, timeout=2.0) is True
        assert sorted(results) == [0, 1, 2, 3]
        assert pool.is_terminated

    def test_await_termination_times_out(self, pool: ThreadPool):
        """Test that await_termination reports busy workers."""
        gate = Gate()
        pool.submit(gate.task)
        assert gate.started.acquire(timeout=2.0)

        pool.shutdown()
        assert pool.await_termination(0.2) is False

        gate.release.set()
        assert pool.await_termination(2.0) is True

    def test_shutdown_now_interrupts(self, pool: ThreadPool):
        """Test that shutdown_now() calls the hooks of running and queued tasks."""
        gate = Gate()
        interrupted = []

        pool.submit(gate.task, on_interrupt=lambda: (interrupted.append("running"), gate.release.set()))
        assert gate.started.acquire(timeout=2.0)
        pool.submit(gate.task, on_interrupt=lambda: interrupted.append("queued"))

        dropped = pool.shutdown_now()

        assert len(dropped) == 1
        assert isinstance(dropped[0], Task)
        assert sorted(interrupted) == ["queued", "running"]
        assert pool.await_termination(2.0) is True

    def test_interrupt_hook_errors_are_contained(self, pool: ThreadPool):
        """Test that a failing interrupt hook doesn't break shutdown."""
        gate = Gate()

        def bad_hook():
            gate.release.set()
            raise RuntimeError("hook failed")

        pool.submit(gate.task, on_interrupt=bad_hook)
        assert gate.started.acquire(timeout=2.0)

        pool.shutdown_now()
        assert pool.await_termination(2.0) is True

    def test_shutdown_idle_pool(self):
        """Test that an idle pool terminates promptly."""
        pool = ThreadPool(core_workers=2, max_workers=2, queue_size=1)
        pool.start()

        assert pool.shutdown(wait=True, timeout=2.0) is True
        assert pool.active_workers == 0

    def test_shutdown_never_started(self):
        """Test that a pool with no workers is terminated immediately."""
        pool = ThreadPool(core_workers=1, max_workers=1, queue_size=1)
        pool.shutdown()
        assert pool.is_terminated


class TestStats:
    """Tests for monitoring."""

    def test_stats_shape(self, pool: ThreadPool):
        """Test the stats dictionary."""
        stats = pool.stats

        assert stats["workers"]["total"] == 1
        assert stats["workers"]["busy"] == 0
        assert stats["tasks"] == {"queued": 0, "completed": 0, "failed": 0}

    def test_busy_workers(self, pool: ThreadPool):
        """Test that a running task counts as busy."""
        gate = Gate()
        pool.submit(gate.task)
        assert gate.started.acquire(timeout=2.0)

        assert pool.busy_workers == 1
        gate.release.set()
        assert wait_for(lambda: pool.busy_workers == 0)
