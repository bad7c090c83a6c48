"""
Diff module for two-way delta tracking.

Provides:
- Edit script computation (difflib based, several anchoring strategies)
- Conversion of edit scripts into change deltas
- The FileDiffModel holding a delta list between two texts
"""

from deltamerge.core.diff.change_delta import (
    ChangeDelta,
    change_type_for_lengths,
)
from deltamerge.core.diff.delta_builder import (
    DeltaBuilder,
)
from deltamerge.core.diff.edit_script import (
    EditScriptProvider,
    DiffAlgorithm,
    DiffOptions,
    WhitespaceMode,
)
from deltamerge.core.diff.file_diff import (
    FileDiffModel,
    DiffModelSignals,
    realign_lines,
    shift_following,
)

__all__ = [
    # Deltas
    'ChangeDelta',
    'change_type_for_lengths',
    'DeltaBuilder',
    # Edit scripts
    'EditScriptProvider',
    'DiffAlgorithm',
    'DiffOptions',
    'WhitespaceMode',
    # Model
    'FileDiffModel',
    'DiffModelSignals',
    'realign_lines',
    'shift_following',
]
