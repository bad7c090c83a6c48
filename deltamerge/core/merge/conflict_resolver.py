"""
Conflict analysis for merge deltas.

Decides whether a pair of conflicting deltas (one per merge side) can be
resolved without asking the user, and ranks resolution suggestions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from deltamerge.core.diff.change_delta import ChangeDelta
from deltamerge.core.models import ChangeSide, ConflictSide, ResolveOption


@dataclass
class ResolutionSuggestion:
    """A suggested resolution for a conflicting pair."""
    option: ResolveOption
    accept_side: Optional[ConflictSide]  # None: accept both
    confidence: float  # 0.0 to 1.0
    reason: str


class ConflictAnalyzer:
    """Analyzes conflicting delta pairs."""

    @staticmethod
    def resolve_option(yours: ChangeDelta, theirs: ChangeDelta) -> ResolveOption:
        """
        Classify a conflicting pair.

        Deltas must be attached to their diff models so their texts can
        be read.
        """
        if yours.is_same_change(theirs):
            return ResolveOption.SAME
        if ConflictAnalyzer.enclosing_side(yours, theirs) is not None:
            return ResolveOption.ENCLOSED
        if ConflictAnalyzer.words_independent(yours, theirs):
            return ResolveOption.WORD_BASED
        return ResolveOption.NONE

    @staticmethod
    def enclosing_side(yours: ChangeDelta, theirs: ChangeDelta) -> Optional[ConflictSide]:
        """
        Side whose change contains the other's.

        One delta encloses the other when its base range covers the
        other's base range and its new text contains the other's new text.
        """
        if _encloses(yours, theirs):
            return ConflictSide.YOURS
        if _encloses(theirs, yours):
            return ConflictSide.THEIRS
        return None

    @staticmethod
    def words_independent(yours: ChangeDelta, theirs: ChangeDelta) -> bool:
        """True when no word-level change of one side touches one of the other side."""
        yours_parts = yours.line_part_deltas
        theirs_parts = theirs.line_part_deltas
        if not yours_parts or not theirs_parts:
            return False
        return not any(
            own.is_conflicting_with(other, ChangeSide.OLD)
            for own in yours_parts
            for other in theirs_parts
        )

    @staticmethod
    def suggestions(yours: ChangeDelta, theirs: ChangeDelta) -> list[ResolutionSuggestion]:
        """
        Suggested resolutions for a conflicting pair.

        Returns suggestions sorted by confidence (highest first).
        """
        suggestions: list[ResolutionSuggestion] = []
        yours_text = yours.get_text(ChangeSide.NEW)
        theirs_text = theirs.get_text(ChangeSide.NEW)

        if yours.is_same_change(theirs):
            suggestions.append(ResolutionSuggestion(
                option=ResolveOption.SAME,
                accept_side=ConflictSide.YOURS,
                confidence=1.0,
                reason="Both sides made the same change",
            ))

        enclosing = ConflictAnalyzer.enclosing_side(yours, theirs)
        if enclosing is not None:
            suggestions.append(ResolutionSuggestion(
                option=ResolveOption.ENCLOSED,
                accept_side=enclosing,
                confidence=0.8,
                reason=f"{enclosing.name.capitalize()} change contains the other change",
            ))

        if ConflictAnalyzer.words_independent(yours, theirs):
            suggestions.append(ResolutionSuggestion(
                option=ResolveOption.WORD_BASED,
                accept_side=None,
                confidence=0.6,
                reason="Changes touch different words",
            ))

        if yours_text.split() == theirs_text.split() and yours_text != theirs_text:
            suggestions.append(ResolutionSuggestion(
                option=ResolveOption.NONE,
                accept_side=ConflictSide.YOURS,
                confidence=0.5,
                reason="Difference is whitespace only",
            ))

        if not yours_text and theirs_text:
            suggestions.append(ResolutionSuggestion(
                option=ResolveOption.NONE,
                accept_side=ConflictSide.THEIRS,
                confidence=0.3,
                reason="Yours deletes what theirs modifies",
            ))
        elif not theirs_text and yours_text:
            suggestions.append(ResolutionSuggestion(
                option=ResolveOption.NONE,
                accept_side=ConflictSide.YOURS,
                confidence=0.3,
                reason="Theirs deletes what yours modifies",
            ))

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions


def _encloses(outer: ChangeDelta, inner: ChangeDelta) -> bool:
    outer_text = outer.get_text(ChangeSide.NEW)
    inner_text = inner.get_text(ChangeSide.NEW)
    return (
        outer.start_text_old <= inner.start_text_old
        and inner.end_text_old <= outer.end_text_old
        and bool(inner_text)
        and len(outer_text) > len(inner_text)
        and inner_text in outer_text
    )
