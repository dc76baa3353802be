"""
=============================================================================
CONNECTION WORKER POOL
=============================================================================

Accepted connections are handed to a fixed-then-growing set of worker
threads through a bounded queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──► submit(fn, conn) ──► [ queue.Queue(maxsize) ]     │
    │                                               │                      │
    │                          ┌────────────────────┼──────────────┐       │
    │                          ▼                    ▼              ▼       │
    │                      Worker-0             Worker-1   ...  Worker-N   │
    │                                                                      │
    │   min_workers start with the pool. When every worker is busy and     │
    │   the queue is not empty, one more is added, up to max_workers.     │
    │   shutdown() puts one None ("poison pill") per worker.              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A task that raises is logged; the worker keeps running.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args)."""

    func: Callable[..., Any]
    args: tuple = ()
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """Pulls tasks off the shared queue until it receives None."""

    def __init__(self, task_queue: queue.Queue, worker_id: int, idle_timeout: float = 1.0):
        super().__init__(name=f"jsonhttp-worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0
        self._stop_event = threading.Event()

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task):
        self.state = WorkerState.BUSY
        start = time.time()
        try:
            task.func(*task.args)
            self.tasks_completed += 1
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def stop(self):
        self._stop_event.set()


class ThreadPool:
    """
    Bounded pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()
        pool.submit(handle_connection, conn)
        pool.shutdown()
    """

    def __init__(self, min_workers: int = 4, max_workers: int = 16, queue_size: int = 256):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._closing = False
        self._next_worker_id = 0

    def start(self):
        if self._started:
            return
        logger.info(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker_locked()
        self._closing = False
        self._started = True

    def _add_worker_locked(self) -> Worker:
        worker = Worker(self._task_queue, self._next_worker_id)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], *args: Any) -> None:
        """
        Queue func(*args). Blocks while the queue is full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._closing:
            raise RuntimeError("Thread pool is not running")

        self._task_queue.put(Task(func=func, args=args))
        self._maybe_scale_up()

    def _maybe_scale_up(self):
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            if self.busy_workers == len(self._workers) and not self._task_queue.empty():
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker_locked()

    def shutdown(self, timeout: float = 5.0):
        """Let queued tasks finish (up to `timeout`), then stop every worker."""
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._closing = True

        deadline = time.time() + timeout
        while self._task_queue.unfinished_tasks and time.time() < deadline:
            time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for worker in workers:
            worker.stop()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass
        for worker in workers:
            worker.join(timeout=2.0)

        self._started = False
        logger.info("Thread pool shutdown complete")

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def stats(self) -> dict:
        return {
            "workers": len(self._workers),
            "busy": self.busy_workers,
            "queued": self._task_queue.qsize(),
            "completed": sum(w.tasks_completed for w in self._workers),
            "failed": sum(w.tasks_failed for w in self._workers),
        }
