"""Background task helpers for ftpsession.

Runs a long transfer on a worker thread so the calling thread stays free,
with progress updates passed back through a thread-safe queue.
"""

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar


T = TypeVar("T")


class TaskStatus(Enum):
    """Status of a background task."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TaskResult(Generic[T]):
    """Result of a background task."""
    status: TaskStatus
    result: Optional[T] = None
    error: Optional[Exception] = None


class ThreadedTask(Generic[T]):
    """
    Runs a callable in a background thread with progress reporting.

    Usage:
        task = ThreadedTask(session.put, args=("remote.bin", "local.bin"))
        task.start()

        while task.is_running:
            for progress in task.get_all_progress():
                show(progress.percent)

        result = task.get_result()
    """

    def __init__(
        self,
        target: Callable[..., T],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        on_complete: Optional[Callable[[TaskResult[T]], None]] = None,
        progress_kwarg: Optional[str] = None
    ):
        """
        Initialize a threaded task.

        Args:
            target: Callable to run in background
            args: Positional arguments for target
            kwargs: Keyword arguments for target
            on_complete: Callback when task finishes (called from worker thread)
            progress_kwarg: Name of the target's progress callback argument;
                when set and not given in kwargs, report_progress is passed
        """
        self._target = target
        self._args = args
        self._kwargs = dict(kwargs or {})
        self._on_complete = on_complete
        if progress_kwarg and self._kwargs.get(progress_kwarg) is None:
            self._kwargs[progress_kwarg] = self.report_progress

        self._thread: Optional[threading.Thread] = None
        self._progress_queue: queue.Queue[Any] = queue.Queue()
        self._result: Optional[TaskResult[T]] = None
        self._status = TaskStatus.PENDING

    @property
    def status(self) -> TaskStatus:
        """Current task status."""
        return self._status

    @property
    def is_running(self) -> bool:
        """True if task is currently running."""
        return self._status == TaskStatus.RUNNING

    def start(self) -> None:
        """Start the background task."""
        if self._status != TaskStatus.PENDING:
            raise RuntimeError("Task already started")

        self._status = TaskStatus.RUNNING
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        """Internal method that runs in the background thread."""
        try:
            result = self._target(*self._args, **self._kwargs)
            self._result = TaskResult(status=TaskStatus.COMPLETED, result=result)
            self._status = TaskStatus.COMPLETED
        except Exception as e:
            self._result = TaskResult(status=TaskStatus.FAILED, error=e)
            self._status = TaskStatus.FAILED

        if self._on_complete:
            self._on_complete(self._result)

    def report_progress(self, progress: Any) -> None:
        """
        Report progress from within the task.

        Args:
            progress: Progress value (a TransferProgress for transfers)
        """
        self._progress_queue.put(progress)

    def get_progress(self) -> Optional[Any]:
        """
        Get the oldest pending progress update.

        Returns:
            Progress value or None if no update available
        """
        try:
            return self._progress_queue.get_nowait()
        except queue.Empty:
            return None

    def get_all_progress(self) -> list:
        """Get all pending progress updates."""
        updates = []
        while True:
            try:
                updates.append(self._progress_queue.get_nowait())
            except queue.Empty:
                break
        return updates

    def get_result(self, timeout: Optional[float] = None) -> TaskResult[T]:
        """
        Wait for task completion and return result.

        Args:
            timeout: Maximum time to wait (None = forever)

        Returns:
            TaskResult with status and result/error

        Raises:
            TimeoutError: If timeout expires before task completes
        """
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                raise TimeoutError("Task did not complete within timeout")

        return self._result or TaskResult(status=TaskStatus.PENDING)
