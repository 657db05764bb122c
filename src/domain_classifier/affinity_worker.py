"""
Background worker threads with optional CPU affinity.

An AffinityWorker runs one coroutine function in a dedicated thread with its
own event loop. The thread may be pinned to a set of processor cores. The
worker supports a graceful join and a forced cancel, which cancels the
coroutine (and any request it is awaiting) at its next suspension point.
"""

import asyncio
import os
import threading
from typing import Any, Awaitable, Callable, Iterable, Optional

from .exceptions import WorkerError


CpuSet = frozenset[int]


def apply_cpu_affinity(cpu_set: Iterable[int]) -> bool:
    """
    Pin the calling thread to a set of cores.

    Args:
        cpu_set: Core ids; an empty set leaves affinity unchanged

    Returns:
        True if affinity was applied, False if the set is empty or the
        platform offers no affinity API

    Raises:
        OSError: If the kernel rejects the core set
        ValueError: If a core id is negative or too large
    """
    cpus = set(cpu_set)
    if not cpus or not hasattr(os, "sched_setaffinity"):
        return False
    os.sched_setaffinity(0, cpus)
    return True


class AffinityWorker:
    """
    Thread hosting one coroutine on a private event loop.

    Lifecycle: running from construction until the coroutine returns, raises
    or is cancelled; join() waits for that end.
    """

    def __init__(
        self,
        target: Callable[..., Awaitable[Any]],
        *args: Any,
        cpu_set: Optional[Iterable[int]] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Start the worker thread.

        Args:
            target: Coroutine function run in the worker thread
            *args: Arguments passed to target
            cpu_set: Cores the thread may run on; None or empty for no pinning
            name: Thread name

        Raises:
            WorkerError: If the core set cannot be applied or the event
                loop and task cannot be set up
        """
        self._target = target
        self._args = args
        self._cpu_set: CpuSet = frozenset(cpu_set or ())
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._loop_lock = threading.Lock()
        self._started = threading.Event()
        self._startup_error: Optional[tuple[str, BaseException]] = None
        self._exception: Optional[BaseException] = None
        self._cancelled = False

        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()
        self._started.wait()

        if self._startup_error is not None:
            self._thread.join()
            code, error = self._startup_error
            if code == "affinity_error":
                message = f"Cannot pin worker to CPUs {sorted(self._cpu_set)}: {error}"
            else:
                message = f"Cannot start worker: {type(error).__name__}: {error}"
            raise WorkerError(
                code=code,
                message=message,
                details={"cpu_set": sorted(self._cpu_set)},
            ) from error

    @property
    def cpu_set(self) -> CpuSet:
        return self._cpu_set

    @property
    def name(self) -> str:
        return self._thread.name

    @property
    def exception(self) -> Optional[BaseException]:
        """Exception raised by the target, if it failed."""
        return self._exception

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        try:
            apply_cpu_affinity(self._cpu_set)
        except (OSError, ValueError) as e:
            self._fail_startup("affinity_error", e)
            return

        loop: Optional[asyncio.AbstractEventLoop] = None
        try:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            task = loop.create_task(self._target(*self._args))
        except Exception as e:
            if loop is not None:
                loop.close()
            self._fail_startup("startup_error", e)
            return

        with self._loop_lock:
            self._loop = loop
            self._task = task
        self._started.set()

        try:
            loop.run_until_complete(task)
        except asyncio.CancelledError:
            self._cancelled = True
        except Exception as e:
            self._exception = e
        finally:
            with self._loop_lock:
                self._loop = None
            try:
                loop.run_until_complete(loop.shutdown_asyncgens())
            finally:
                loop.close()

    def _fail_startup(self, code: str, error: BaseException) -> None:
        self._startup_error = (code, error)
        self._started.set()

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> bool:
        """
        Schedule a callback on the worker's loop from any thread.

        Returns:
            False if the worker has already finished
        """
        with self._loop_lock:
            if self._loop is None:
                return False
            self._loop.call_soon_threadsafe(callback, *args)
            return True

    def cancel(self) -> bool:
        """
        Forcefully stop the worker by cancelling its coroutine.

        Returns:
            False if the worker has already finished
        """
        with self._loop_lock:
            if self._loop is None or self._task is None:
                return False
            self._loop.call_soon_threadsafe(self._task.cancel)
            return True

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the worker to finish.

        Returns:
            True if the worker thread has ended
        """
        self._thread.join(timeout)
        return not self._thread.is_alive()


def spawn_per_core(
    cpu_set: Iterable[int],
    target: Callable[..., Awaitable[Any]],
    *args: Any,
    name: Optional[str] = None,
) -> list[AffinityWorker]:
    """
    Start one worker per core in a set, each pinned to its own core.

    With an empty set a single unpinned worker is started.

    Args:
        cpu_set: Cores to start workers on
        target: Coroutine function run by every worker
        *args: Arguments passed to target
        name: Base thread name; the core id is appended

    Returns:
        The started workers
    """
    cpus = sorted(set(cpu_set))
    if not cpus:
        return [AffinityWorker(target, *args, name=name)]

    workers = []
    try:
        for cpu in cpus:
            worker_name = f"{name}-{cpu}" if name else None
            workers.append(AffinityWorker(target, *args, cpu_set={cpu}, name=worker_name))
    except WorkerError:
        for worker in workers:
            worker.cancel()
        raise
    return workers
