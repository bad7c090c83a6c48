"""
Background workers for non-blocking delta computation.

Provides QThread-based workers for:
- Full recomputation of a diff model's delta list
- Scheduling recomputes so only the latest result is installed

All workers use Qt signals for thread-safe communication
with the UI thread.
"""

from deltamerge.workers.base_worker import (
    BaseWorker,
    WorkerSignals,
    WorkerState,
    CancellableWorker,
    WorkerThread,
)
from deltamerge.workers.diff_worker import (
    DiffWorker,
    DiffBuildResult,
    DiffRecomputeScheduler,
)

__all__ = [
    # Base
    'BaseWorker',
    'WorkerSignals',
    'WorkerState',
    'CancellableWorker',
    'WorkerThread',
    # Diff
    'DiffWorker',
    'DiffBuildResult',
    'DiffRecomputeScheduler',
]
