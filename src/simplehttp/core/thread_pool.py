"""
=============================================================================
THREAD POOL IMPLEMENTATION
=============================================================================

A bounded pool of worker threads fed by a bounded task queue. Every live
client connection occupies one worker for its whole session, so the pool
size is also the server's concurrency limit.

=============================================================================
SIZING
=============================================================================

Everything derives from a single "thread limit":

    core workers   = thread_limit // 2     always kept alive
    max workers    = thread_limit          extra workers spawned under load
    queue capacity = thread_limit * 10     sessions waiting for a worker
    keep-alive     = 30 seconds            idle time before an extra
                                           (above-core) worker retires

    thread_limit = 4  →  2 core, 4 max, 40 queued  →  44 sessions in flight

=============================================================================
SUBMISSION POLICY
=============================================================================

    submit(task)
        │
        ├── fewer than core workers? ──► new worker runs the task directly
        │
        ├── room in the queue? ────────► enqueue (an idle worker picks it up)
        │
        ├── fewer than max workers? ───► new worker runs the task directly
        │
        └── otherwise ─────────────────► REJECT (return False, immediately)

Note the order: the queue fills up BEFORE extra workers are spawned. Extra
workers are for bursts the queue can't absorb, not for the steady state.

submit() never blocks. A caller that gets False must deal with the task
itself; the listener answers 500 and closes the socket.

=============================================================================
SHUTDOWN
=============================================================================

Two levels, usually used one after the other:

    shutdown()         stop accepting tasks; queued tasks still run;
                       workers exit once the queue is empty

    shutdown_now()     stop accepting tasks; drop queued tasks; call each
                       task's interrupt hook so blocked work can bail out

    await_termination(timeout) → True once every worker has exited

Python threads cannot be killed from outside. "Interrupting" a task means
calling the on_interrupt hook it was submitted with. For a connection
session that hook shuts the client socket down, which wakes the blocked
read with an error and lets the session end on its own.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any, List
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


# How often an idle worker wakes up to check for shutdown/retirement
_POLL_INTERVAL = 0.1


class WorkerState(Enum):
    """Worker thread states, for monitoring."""
    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call, plus the hook that can cut it short.

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        on_interrupt: Called (from another thread) by shutdown_now() to
                      make a blocked call return early. Optional.
        submitted_at: Time the task was submitted.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    on_interrupt: Optional[Callable[[], None]] = None
    submitted_at: float = field(default_factory=time.time)

    def run(self):
        self.func(*self.args, **self.kwargs)

    def interrupt(self):
        """Run the interrupt hook, if any. Errors are logged, not raised."""
        if self.on_interrupt is None:
            return
        try:
            self.on_interrupt()
        except Exception as e:
            logger.warning(f"Interrupt hook failed: {e}")


class Worker(threading.Thread):
    """
    Worker thread that runs tasks until the pool lets it go.

    Each worker:

    ┌─────────────────────────────────────────────────────────────────────┐
    │   1. Run the first task, if it was created with one                 │
    │   2. Ask the pool for the next task (blocks, polling for shutdown)  │
    │          ├── got a task → run it, go back to 2                      │
    │          └── got None   → pool is done with us, exit                │
    │   3. Tell the pool we exited                                        │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, pool: "ThreadPool", worker_id: int, first_task: Optional[Task] = None):
        # daemon=True: a stuck session can't keep the process alive
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.worker_id = worker_id
        self.state = WorkerState.IDLE

        self._pool = pool
        self._first_task = first_task
        self._current_task: Optional[Task] = None
        self._task_lock = threading.Lock()

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        task = self._first_task
        self._first_task = None

        try:
            while True:
                if task is None:
                    task = self._pool._next_task(self)
                    if task is None:
                        break
                self._execute_task(task)
                task = None
        finally:
            self.state = WorkerState.STOPPED
            self._pool._worker_exited(self)
            logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """Run one task; a failing task never takes the worker down."""
        with self._task_lock:
            self._current_task = task
        self.state = WorkerState.BUSY
        start_time = time.time()

        # Picked up while shutdown_now() was running: it may have missed us
        if self._pool._stopping_now.is_set():
            task.interrupt()

        try:
            task.run()

            elapsed = time.time() - start_time
            logger.debug(f"Worker {self.worker_id} completed task in {elapsed:.3f}s")
            self._pool._record_result(succeeded=True)

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self._pool._record_result(succeeded=False)

        finally:
            with self._task_lock:
                self._current_task = None
            self.state = WorkerState.IDLE

    def interrupt(self):
        """Interrupt the task this worker is running right now, if any."""
        with self._task_lock:
            task = self._current_task
        if task is not None:
            task.interrupt()


class ThreadPool:
    """
    Bounded thread pool with immediate rejection on saturation.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   pool = ThreadPool.for_thread_limit(4)                             │
    │   pool.start()                          # pre-start core workers    │
    │                                                                     │
    │   if not pool.submit(session.run, on_interrupt=session.abort):      │
    │       reject(session)                   # saturated                 │
    │                                                                     │
    │   pool.shutdown()                                                   │
    │   if not pool.await_termination(2.0):                               │
    │       pool.shutdown_now()                                           │
    │       pool.await_termination(2.0)                                   │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        core_workers: int = 2,
        max_workers: int = 4,
        queue_size: int = 40,
        keep_alive: float = 30.0,
    ):
        """
        Initialize the thread pool.

        Args:
            core_workers: Workers kept alive even when idle (may be 0).
            max_workers: Hard cap on worker threads.
            queue_size: Capacity of the task queue. Submissions beyond
                        queue + max_workers are rejected.
            keep_alive: Seconds an above-core worker may sit idle before
                        it retires.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if not 0 <= core_workers <= max_workers:
            raise ValueError("core_workers must be between 0 and max_workers")
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        self.core_workers = core_workers
        self.max_workers = max_workers
        self.queue_capacity = queue_size
        self.keep_alive = keep_alive

        self._task_queue: "queue.Queue[Task]" = queue.Queue(maxsize=queue_size)

        # Worker management; _lock guards _workers and the submit decision
        self._workers: set = set()
        self._lock = threading.Lock()
        self._next_worker_id = 0

        # Lifecycle flags, read from worker threads
        self._shutdown = threading.Event()
        self._stopping_now = threading.Event()
        self._terminated = threading.Event()

        # Metrics
        self._tasks_completed = 0
        self._tasks_failed = 0

    @classmethod
    def for_thread_limit(cls, thread_limit: int, keep_alive: float = 30.0) -> "ThreadPool":
        """Pool sized from a single limit: limit//2 core, limit max, limit*10 queued."""
        return cls(
            core_workers=thread_limit // 2,
            max_workers=thread_limit,
            queue_size=thread_limit * 10,
            keep_alive=keep_alive,
        )

    def start(self):
        """Pre-start the core workers so the first connections don't wait."""
        with self._lock:
            if self._shutdown.is_set():
                raise RuntimeError("Thread pool is shut down")

            logger.info(
                f"Starting thread pool: {self.core_workers} core, "
                f"{self.max_workers} max workers, queue of {self.queue_capacity}"
            )
            while len(self._workers) < self.core_workers:
                self._add_worker()

    def _add_worker(self, first_task: Optional[Task] = None) -> Worker:
        """Spawn a worker. Caller must hold self._lock."""
        worker = Worker(self, self._next_worker_id, first_task)
        self._next_worker_id += 1
        self._workers.add(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        on_interrupt: Optional[Callable[[], None]] = None,
    ) -> bool:
        """
        Submit a task for execution. Never blocks.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            kwargs: Keyword arguments for the function.
            on_interrupt: Hook shutdown_now() calls to cut the task short.

        Returns:
            True if the task was accepted, False if the pool is saturated
            or shut down.
        """
        task = Task(func=func, args=args, kwargs=kwargs or {}, on_interrupt=on_interrupt)

        with self._lock:
            if self._shutdown.is_set():
                logger.warning("Thread pool is shut down, rejecting task")
                return False

            if len(self._workers) < self.core_workers:
                self._add_worker(task)
                return True

            try:
                self._task_queue.put_nowait(task)
            except queue.Full:
                if len(self._workers) < self.max_workers:
                    logger.debug(
                        f"Queue full, scaling up: {len(self._workers)} -> "
                        f"{len(self._workers) + 1} workers"
                    )
                    self._add_worker(task)
                    return True

                logger.warning(
                    f"Thread pool saturated ({len(self._workers)} workers busy, "
                    f"{self.queue_capacity} queued), rejecting task"
                )
                return False

            # A pool with zero core workers still needs someone to drain the queue
            if not self._workers:
                self._add_worker()
            return True

    def _next_task(self, worker: Worker) -> Optional[Task]:
        """
        Block until there is work for `worker`, or tell it to exit (None).

        A worker is let go when:
        - shutdown_now() was called, or
        - shutdown() was called and the queue is empty, or
        - it sat idle for keep_alive seconds and the pool is above core size.
        """
        idle_since = time.monotonic()

        while not self._stopping_now.is_set():
            try:
                return self._task_queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                pass

            # Once shut down nothing new is enqueued, so empty stays empty
            if self._shutdown.is_set() and self._task_queue.empty():
                return None

            if time.monotonic() - idle_since >= self.keep_alive:
                with self._lock:
                    # Enqueueing happens under the lock, so this check can't race a submit
                    if len(self._workers) > self.core_workers and self._task_queue.empty():
                        self._workers.discard(worker)
                        logger.debug(f"Worker {worker.worker_id} idle for {self.keep_alive}s, retiring")
                        return None
                idle_since = time.monotonic()

        return None

    def _worker_exited(self, worker: Worker):
        with self._lock:
            self._workers.discard(worker)
            if self._shutdown.is_set() and not self._workers:
                self._terminated.set()

    def _record_result(self, succeeded: bool):
        with self._lock:
            if succeeded:
                self._tasks_completed += 1
            else:
                self._tasks_failed += 1

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting tasks; let queued and running tasks finish.

        Args:
            wait: Block until all workers have exited (or timeout).
            timeout: Maximum seconds to wait when wait=True.

        Returns:
            True if the pool has terminated by the time this returns.
        """
        with self._lock:
            if not self._shutdown.is_set():
                logger.info("Shutting down thread pool...")
            self._shutdown.set()
            if not self._workers:
                self._terminated.set()

        if wait:
            return self.await_termination(timeout)
        return self.is_terminated

    def shutdown_now(self) -> List[Task]:
        """
        Stop accepting tasks, drop the queue and interrupt running tasks.

        Dropped tasks are interrupted too, so whatever they hold (client
        sockets) is released even though they never ran.

        Returns:
            The tasks that were still queued and will never run.
        """
        with self._lock:
            logger.info("Forcing thread pool shutdown")
            self._shutdown.set()
            self._stopping_now.set()

            pending: List[Task] = []
            while True:
                try:
                    pending.append(self._task_queue.get_nowait())
                except queue.Empty:
                    break

            workers = list(self._workers)
            if not workers:
                self._terminated.set()

        for task in pending:
            task.interrupt()
        for worker in workers:
            worker.interrupt()

        return pending

    def await_termination(self, timeout: Optional[float] = None) -> bool:
        """Wait for every worker to exit. True if they did within timeout."""
        return self._terminated.wait(timeout)

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown.is_set()

    @property
    def is_terminated(self) -> bool:
        return self._terminated.is_set()

    @property
    def active_workers(self) -> int:
        """Count of live (non-stopped) workers."""
        with self._lock:
            return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        """Count of workers currently running a task."""
        with self._lock:
            return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queued_tasks(self) -> int:
        """Tasks waiting in the queue."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts, for log lines and debugging."""
        with self._lock:
            workers = list(self._workers)
            completed = self._tasks_completed
            failed = self._tasks_failed

        busy = sum(1 for w in workers if w.state == WorkerState.BUSY)
        return {
            "workers": {
                "total": len(workers),
                "busy": busy,
                "idle": len(workers) - busy,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": completed,
                "failed": failed,
            },
        }
