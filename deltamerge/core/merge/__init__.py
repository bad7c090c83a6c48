"""
Merge module for three-way delta tracking.

Provides:
- The MergeModel coupling two diff models over a shared base
- Conflict analysis and resolution suggestions
"""

from deltamerge.core.merge.conflict_resolver import (
    ConflictAnalyzer,
    ResolutionSuggestion,
)
from deltamerge.core.merge.merge_model import (
    MergeModel,
    MergeModelSignals,
)

__all__ = [
    'ConflictAnalyzer',
    'ResolutionSuggestion',
    'MergeModel',
    'MergeModelSignals',
]
