"""
Background recomputation of delta lists.

DiffWorker runs a full diff of two texts off the UI thread;
DiffRecomputeScheduler feeds its results into a FileDiffModel, making
sure only the result of the latest request for the current texts lands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from PyQt6.QtCore import QObject, pyqtSignal, pyqtSlot

from deltamerge.core.diff.change_delta import ChangeDelta
from deltamerge.core.diff.delta_builder import DeltaBuilder
from deltamerge.core.diff.edit_script import EditScriptProvider
from deltamerge.core.diff.file_diff import FileDiffModel
from deltamerge.core.models import EditOperation
from deltamerge.workers.base_worker import CancellableWorker, WorkerSignals, WorkerThread


@dataclass
class DiffBuildResult:
    """Deltas computed for one pair of texts."""
    generation: int
    old_text: str
    new_text: str
    edit_script: list[EditOperation]
    deltas: list[ChangeDelta]


class DiffWorkerSignals(WorkerSignals):
    """Worker signals with failures stamped by generation."""

    # (generation, error_type, message)
    generation_failed = pyqtSignal(int, str, str)


class DiffWorker(CancellableWorker):
    """
    Worker computing the edit script and deltas of two texts.

    Cancellation is polled between anchor gaps of the diff and once per
    edit script entry while building deltas.
    """

    def __init__(
        self,
        old_text: str,
        new_text: str,
        generation: int = 0,
        provider: Optional[EditScriptProvider] = None,
        word_diff_line_limit: int = 20,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent=parent)
        self.signals = DiffWorkerSignals()
        self.old_text = old_text
        self.new_text = new_text
        self.generation = generation
        self.provider = provider or EditScriptProvider()
        self.word_diff_line_limit = word_diff_line_limit

    def do_work(self) -> DiffBuildResult:
        """Diff the texts and build the delta list."""
        self.report_status("Computing differences...")
        edit_script = self.provider.compute_texts(self.old_text, self.new_text, self.poll_cancelled)
        self.check_cancelled()

        self.report_status("Building deltas...")
        deltas = DeltaBuilder().build(
            self.old_text,
            self.new_text,
            edit_script,
            cancel_check=self.poll_cancelled,
            word_diff_line_limit=self.word_diff_line_limit,
        )

        self.report_status("Complete")
        return DiffBuildResult(self.generation, self.old_text, self.new_text, edit_script, deltas)

    def _fail(self, error_type: str, message: str) -> None:
        super()._fail(error_type, message)
        self.signals.generation_failed.emit(self.generation, error_type, message)


class DiffRecomputeScheduler(QObject):
    """
    Runs full recomputes of a diff model in the background.

    Every request gets a new generation number and cancels the request
    before it. A finished result is installed only when it belongs to the
    latest generation and was computed from the model's current texts;
    anything else is dropped. Failures are reported for the latest
    generation only.
    """

    # Model version after a result was installed
    recompute_applied = pyqtSignal(int)

    # (error_type, message)
    recompute_failed = pyqtSignal(str, str)

    def __init__(self, model: FileDiffModel, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.model = model
        self._generation = 0
        self._current: Optional[DiffWorker] = None
        self._threads: list[WorkerThread] = []

    @property
    def generation(self) -> int:
        """Generation of the latest request."""
        return self._generation

    @property
    def current_worker(self) -> Optional[DiffWorker]:
        return self._current

    def create_worker(self) -> DiffWorker:
        """
        Start a new generation and return its worker for the model's texts.

        The previous generation's worker is cancelled.
        """
        if self._current is not None:
            self._current.cancel()

        self._generation += 1
        snapshot = self.model.snapshot
        worker = DiffWorker(
            snapshot.old_text,
            snapshot.new_text,
            generation=self._generation,
            provider=self.model.provider,
            word_diff_line_limit=self.model.word_diff_line_limit,
        )
        worker.signals.finished.connect(self._on_worker_finished)
        worker.signals.generation_failed.connect(self._on_worker_error)
        self._current = worker
        logging.debug(f"DiffRecomputeScheduler - Requested generation {self._generation}")
        return worker

    def request(self) -> DiffWorker:
        """Schedule a recompute of the model on a worker thread."""
        worker = self.create_worker()
        thread = WorkerThread(worker)
        thread.finished.connect(self._on_thread_finished)
        self._threads.append(thread)
        thread.start()
        return worker

    def cancel(self) -> None:
        """Cancel the outstanding request, if any."""
        if self._current is not None:
            self._current.cancel()
            self._current = None

    def wait(self, timeout_ms: int = 5000) -> bool:
        """Block until all started threads have finished."""
        return all(thread.wait(timeout_ms) for thread in list(self._threads))

    @pyqtSlot(object)
    def _on_worker_finished(self, result: DiffBuildResult) -> bool:
        """Install a worker's result unless a newer request or edit superseded it."""
        if result.generation != self._generation:
            logging.debug(
                f"DiffRecomputeScheduler - Dropped generation {result.generation}, "
                f"latest is {self._generation}"
            )
            return False

        snapshot = self.model.snapshot
        if result.old_text != snapshot.old_text or result.new_text != snapshot.new_text:
            logging.warning(
                f"DiffRecomputeScheduler - Dropped generation {result.generation}, texts changed meanwhile"
            )
            return False

        self.model.install_deltas(result.deltas)
        self._current = None
        logging.debug(f"DiffRecomputeScheduler - Installed {len(result.deltas)} deltas, version {self.model.version}")
        self.recompute_applied.emit(self.model.version)
        return True

    @pyqtSlot(int, str, str)
    def _on_worker_error(self, generation: int, error_type: str, message: str) -> bool:
        """Report a worker's failure unless a newer request superseded it."""
        if generation != self._generation:
            logging.debug(
                f"DiffRecomputeScheduler - Dropped failure of generation {generation}, "
                f"latest is {self._generation}"
            )
            return False

        self._current = None
        logging.warning(f"DiffRecomputeScheduler - Recompute failed: {error_type}: {message}")
        self.recompute_failed.emit(error_type, message)
        return True

    @pyqtSlot()
    def _on_thread_finished(self) -> None:
        self._threads = [thread for thread in self._threads if not thread.isFinished()]
