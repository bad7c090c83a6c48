"""
Worker base classes for computing deltas off the UI thread.

A worker owns one computation. It reports its result, failure or
cancellation through `WorkerSignals`; the receiving side decides whether
the result is still wanted.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Optional

from PyQt6.QtCore import Qt, QObject, QThread, pyqtSignal, pyqtSlot, QMutex, QMutexLocker

from deltamerge.core.errors import CancelledException


class WorkerState(Enum):
    """Lifecycle of a worker."""
    PENDING = auto()
    RUNNING = auto()
    CANCELLING = auto()
    CANCELLED = auto()
    COMPLETED = auto()
    FAILED = auto()


class WorkerSignals(QObject):
    """
    Signals a worker emits from its own thread.

    Receivers in other threads get them queued.
    """
    started = pyqtSignal()
    status = pyqtSignal(str)

    # Result object of `do_work`
    finished = pyqtSignal(object)

    # (error_type, message)
    error = pyqtSignal(str, str)

    cancelled = pyqtSignal()


class WorkerMeta(type(QObject), type(ABC)):
    pass


class BaseWorker(QObject, ABC, metaclass=WorkerMeta):
    """
    A single background computation.

    Subclasses implement `do_work`, which either returns the result or
    raises. Cancellation is cooperative: `cancel` only sets a flag that
    `do_work` is expected to look at.
    """

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.signals = WorkerSignals()
        self._mutex = QMutex()
        self._state = WorkerState.PENDING
        self._cancel_requested = False
        self._result: Any = None
        self._error: Optional[tuple[str, str]] = None

    @property
    def state(self) -> WorkerState:
        with QMutexLocker(self._mutex):
            return self._state

    def _set_state(self, state: WorkerState) -> None:
        with QMutexLocker(self._mutex):
            self._state = state

    @property
    def is_cancelled(self) -> bool:
        """True once `cancel` has been called."""
        with QMutexLocker(self._mutex):
            return self._cancel_requested

    @property
    def result(self) -> Any:
        """Result of a completed run, else None."""
        return self._result

    @property
    def error(self) -> Optional[tuple[str, str]]:
        """(error_type, message) of a failed run, else None."""
        return self._error

    def cancel(self) -> None:
        """Ask the computation to stop; safe to call from any thread."""
        with QMutexLocker(self._mutex):
            self._cancel_requested = True
            if self._state == WorkerState.RUNNING:
                self._state = WorkerState.CANCELLING

    @pyqtSlot()
    def run(self) -> None:
        """Run `do_work` and report how it ended."""
        self._set_state(WorkerState.RUNNING)
        self.signals.started.emit()

        try:
            result = self.do_work()
        except CancelledException:
            logging.debug(f"{type(self).__name__} - Cancelled during work")
            self._abort()
            return
        except Exception as e:
            logging.error(f"{type(self).__name__} - Failed: {e}")
            self._fail(type(e).__name__, str(e))
            return

        if self.is_cancelled:
            self._abort()
        else:
            self._complete(result)

    def _complete(self, result: Any) -> None:
        self._result = result
        self._set_state(WorkerState.COMPLETED)
        self.signals.finished.emit(result)

    def _fail(self, error_type: str, message: str) -> None:
        self._error = (error_type, message)
        self._set_state(WorkerState.FAILED)
        self.signals.error.emit(error_type, message)

    def _abort(self) -> None:
        self._set_state(WorkerState.CANCELLED)
        self.signals.cancelled.emit()

    @abstractmethod
    def do_work(self) -> Any:
        """
        Compute the result.

        Raise `CancelledException` (see `check_cancelled`) to stop early.
        """

    def report_status(self, message: str) -> None:
        self.signals.status.emit(message)

    def check_cancelled(self) -> None:
        """Raise `CancelledException` if cancellation was requested."""
        if self.is_cancelled:
            raise CancelledException("Operation cancelled")


class CancellableWorker(BaseWorker):
    """
    Worker that hands a cancellation poll to library code.

    The diff provider and the delta builder call `poll_cancelled` once per
    unit of work and stop when it returns True. The calls are counted.
    """

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._poll_count = 0

    @property
    def poll_count(self) -> int:
        return self._poll_count

    def poll_cancelled(self) -> bool:
        """`cancel_check` callback for the provider and builder."""
        self._poll_count += 1
        return self.is_cancelled


class WorkerThread(QThread):
    """
    Thread running exactly one worker.

    The thread quits as soon as the worker reports an outcome, so `wait()`
    returns without an event loop running in the caller.
    """

    def __init__(self, worker: BaseWorker, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.worker = worker
        self.worker.moveToThread(self)

        self.started.connect(self.worker.run)
        direct = Qt.ConnectionType.DirectConnection
        for outcome in (worker.signals.finished, worker.signals.error, worker.signals.cancelled):
            outcome.connect(self.quit, direct)

    def cancel(self) -> None:
        self.worker.cancel()
