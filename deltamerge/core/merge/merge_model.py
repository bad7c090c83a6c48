"""
Three-way merge model.

Couples two FileDiffModels that share the same OLD text (the fork point):
one from the base to your version, one from the base to theirs. Accepting
a delta on one side rewrites the shared base, so the other side's deltas
are re-indexed through offset propagation. Deltas of both sides whose
base ranges overlap are flagged as conflicting.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from deltamerge.core.diff.change_delta import ChangeDelta
from deltamerge.core.diff.edit_script import EditScriptProvider
from deltamerge.core.diff.file_diff import FileDiffModel
from deltamerge.core.errors import BaseMismatchError, RangeError
from deltamerge.core.merge.conflict_resolver import ConflictAnalyzer
from deltamerge.core.models import (
    ChangeSide,
    ChangeStatus,
    ConflictPair,
    ConflictSide,
    ConflictType,
    ResolveOption,
    TextChangeEvent,
)

if TYPE_CHECKING:
    from deltamerge.services.settings import MergeSettings


class MergeModelSignals(QObject):
    """Signals for merge view observers."""
    # Splice applied to the shared base text: TextChangeEvent
    base_changed = pyqtSignal(object)

    # Conflicting pairs after re-marking: tuple[ConflictPair, ...]
    conflicts_changed = pyqtSignal(object)


class MergeModel:
    """
    Merge of two branches against their common base.

    The YOURS and THEIRS diff models must have identical OLD texts; every
    operation keeps them identical.
    """

    def __init__(
        self,
        yours_diff: FileDiffModel,
        theirs_diff: FileDiffModel,
        settings: Optional[MergeSettings] = None
    ):
        if yours_diff.get_text(ChangeSide.OLD) != theirs_diff.get_text(ChangeSide.OLD):
            raise BaseMismatchError(
                "Merge sides do not share the same base text",
                {
                    'yours_base_length': len(yours_diff.get_text(ChangeSide.OLD)),
                    'theirs_base_length': len(theirs_diff.get_text(ChangeSide.OLD)),
                }
            )

        self.signals = MergeModelSignals()
        self.settings = settings
        self._diffs = {
            ConflictSide.YOURS: yours_diff,
            ConflictSide.THEIRS: theirs_diff,
        }
        self._pairs: tuple[ConflictPair, ...] = ()
        self.mark_conflicting()

    @classmethod
    def from_texts(
        cls,
        base: str,
        yours: str,
        theirs: str,
        provider: Optional[EditScriptProvider] = None,
        settings: Optional[MergeSettings] = None,
        word_diff_line_limit: int = 20
    ) -> MergeModel:
        """Diff both branches against the base and couple the results."""
        provider = provider or EditScriptProvider()
        yours_diff = FileDiffModel(base, yours, provider=provider, word_diff_line_limit=word_diff_line_limit)
        theirs_diff = FileDiffModel(base, theirs, provider=provider, word_diff_line_limit=word_diff_line_limit)
        return cls(yours_diff, theirs_diff, settings)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_diff(self, side: ConflictSide) -> FileDiffModel:
        return self._diffs[side]

    @property
    def base_text(self) -> str:
        return self._diffs[ConflictSide.YOURS].get_text(ChangeSide.OLD)

    @property
    def conflict_pairs(self) -> tuple[ConflictPair, ...]:
        return self._pairs

    @property
    def apply_resolve_options(self) -> bool:
        return self.settings is None or self.settings.apply_resolve_options

    def get_conflict_pair(self, delta: ChangeDelta, side: ConflictSide) -> Optional[ConflictPair]:
        """First conflicting pair the delta belongs to, if any."""
        index = self._diffs[side].index_of(delta)
        return self._pair_at(index, side)

    @property
    def has_unresolved(self) -> bool:
        """True while a conflicting pair has a pending member and no accepted one."""
        for pair in self._pairs:
            yours = self._diffs[ConflictSide.YOURS].deltas[pair.yours_index]
            theirs = self._diffs[ConflictSide.THEIRS].deltas[pair.theirs_index]
            statuses = (yours.change_status, theirs.change_status)
            if ChangeStatus.PENDING in statuses and ChangeStatus.ACCEPTED not in statuses:
                return True
        return False

    # =========================================================================
    # Operations
    # =========================================================================

    def accept_delta(self, delta: ChangeDelta, side: ConflictSide) -> Optional[TextChangeEvent]:
        """
        Take a branch's change into the base.

        The other branch follows the base splice. A conflicting counterpart
        is marked accepted as well when the splice resolves it: the base now
        reads as its own text, or it was enclosed by the accepted change.

        Returns:
            The base splice, or None when the delta was already accepted
        """
        owner = self._diffs[side]
        other = self._diffs[side.opposite]
        index = owner.index_of(delta)
        pair = self._pair_at(index, side)
        enclosing = self._enclosing_side(pair) if pair is not None else None

        event = owner.accept_delta(delta)
        if event is None:
            return None

        index_map = other.apply_external_edit(
            event.offset, event.deleted_length, event.inserted_text, ChangeSide.OLD
        )
        if pair is not None and self.apply_resolve_options:
            self._resolve_counterpart(pair, side, index_map, enclosing is side)

        logging.debug(f"MergeModel - Accepted {side.name} delta {index}")
        self.signals.base_changed.emit(event)
        self.mark_conflicting()
        return event

    def discard_change(self, delta: ChangeDelta, side: ConflictSide) -> None:
        """Reject a branch's change; the base stays as it is."""
        self._diffs[side].discard_change(delta, revert=False)
        logging.debug(f"MergeModel - Discarded {side.name} delta")
        self.mark_conflicting()

    def append_delta(self, delta: ChangeDelta, side: ConflictSide) -> TextChangeEvent:
        """
        Add a branch's change behind the base text it replaces.

        Used to keep both changes of a conflict once the other branch's
        change was accepted.
        """
        event = self._diffs[side].append_delta(delta)
        self._diffs[side.opposite].apply_external_edit(
            event.offset, event.deleted_length, event.inserted_text, ChangeSide.OLD
        )
        logging.debug(f"MergeModel - Appended {side.name} delta")
        self.signals.base_changed.emit(event)
        self.mark_conflicting()
        return event

    def modify_text(self, text: str, length: int, offset: int) -> TextChangeEvent:
        """
        Apply a live edit to the base.

        Raises:
            RangeError: The edit lies outside the base text
        """
        base = self.base_text
        if offset < 0 or length < 0 or offset + length > len(base):
            logging.warning(f"MergeModel - Edit {offset}+{length} outside base of length {len(base)}")
            raise RangeError(
                f"Edit at {offset} with length {length} outside [0, {len(base)}]",
                {'offset': offset, 'length': length, 'text_length': len(base)}
            )

        event = TextChangeEvent(offset, length, text or '', ChangeSide.OLD)
        for diff in self._diffs.values():
            diff.apply_external_edit(offset, length, text, ChangeSide.OLD)

        self.signals.base_changed.emit(event)
        self.mark_conflicting()
        return event

    def mark_conflicting(self) -> tuple[ConflictPair, ...]:
        """
        Flag every pair of YOURS and THEIRS deltas whose base ranges collide.

        Returns:
            The conflicting pairs, each with how it could be resolved
        """
        yours = self._diffs[ConflictSide.YOURS].deltas
        theirs = self._diffs[ConflictSide.THEIRS].deltas
        yours_flags = [ConflictType.NONE] * len(yours)
        theirs_flags = [ConflictType.NONE] * len(theirs)
        pairs: list[ConflictPair] = []

        # Both lists are ordered by base offset
        first_candidate = 0
        for i, own in enumerate(yours):
            while first_candidate < len(theirs) and theirs[first_candidate].end_text_old < own.start_text_old:
                first_candidate += 1
            for j in range(first_candidate, len(theirs)):
                candidate = theirs[j]
                if candidate.start_text_old > own.end_text_old:
                    break
                if own.is_conflicting_with(candidate, ChangeSide.OLD):
                    yours_flags[i] = ConflictType.CONFLICTING
                    theirs_flags[j] = ConflictType.CONFLICTING
                    pairs.append(ConflictPair(i, j, ConflictAnalyzer.resolve_option(own, candidate)))

        self._diffs[ConflictSide.YOURS].mark_conflicts(yours_flags)
        self._diffs[ConflictSide.THEIRS].mark_conflicts(theirs_flags)
        self._pairs = tuple(pairs)
        self.signals.conflicts_changed.emit(self._pairs)
        return self._pairs

    def auto_resolve(self) -> int:
        """
        Accept everything that needs no decision.

        That is every pending delta without a conflict, and for conflicting
        pairs the side that makes the pair resolvable: either branch for an
        identical change, the enclosing branch for an enclosed one.

        Returns:
            Number of deltas accepted
        """
        accepted = 0
        while True:
            target = self._next_resolvable()
            if target is None:
                break
            delta, side = target
            self.accept_delta(delta, side)
            accepted += 1

        logging.debug(f"MergeModel - Auto-resolved {accepted} deltas")
        return accepted

    def reset(self) -> None:
        """Return both branches and the base to their initial state."""
        previous = self.base_text
        for diff in self._diffs.values():
            diff.reset()
        self.signals.base_changed.emit(TextChangeEvent(0, len(previous), self.base_text, ChangeSide.OLD))
        self.mark_conflicting()

    # =========================================================================
    # Internals
    # =========================================================================

    def _pair_at(self, index: int, side: ConflictSide) -> Optional[ConflictPair]:
        for pair in self._pairs:
            if pair.index(side) == index:
                return pair
        return None

    def _resolve_counterpart(
        self,
        pair: ConflictPair,
        side: ConflictSide,
        index_map: list[Optional[int]],
        enclosed: bool
    ) -> None:
        """
        Mark the other member of a pair accepted when the base splice settled it.

        A counterpart the splice swallowed is UNDEFINED; it is still
        accepted when the accepted change encloses it.
        """
        other = self._diffs[side.opposite]
        new_index = index_map[pair.index(side.opposite)]
        if new_index is None:
            return

        counterpart = other.deltas[new_index]
        if counterpart.change_status is ChangeStatus.UNDEFINED:
            if not enclosed:
                return
        elif counterpart.change_status is not ChangeStatus.PENDING:
            return

        settled = counterpart.get_text(ChangeSide.OLD) == counterpart.get_text(ChangeSide.NEW)
        if settled or enclosed:
            other.set_change_status(counterpart, ChangeStatus.ACCEPTED)
            logging.debug(f"MergeModel - {side.opposite.name} delta {new_index} resolved by {side.name} accept")

    def _enclosing_side(self, pair: ConflictPair) -> Optional[ConflictSide]:
        yours = self._diffs[ConflictSide.YOURS].deltas[pair.yours_index]
        theirs = self._diffs[ConflictSide.THEIRS].deltas[pair.theirs_index]
        return ConflictAnalyzer.enclosing_side(yours, theirs)

    def _next_resolvable(self) -> Optional[tuple[ChangeDelta, ConflictSide]]:
        for side in ConflictSide:
            for delta in self._diffs[side].deltas:
                if delta.change_status is ChangeStatus.PENDING and delta.conflict_type is ConflictType.NONE:
                    return delta, side

        for pair in self._pairs:
            if pair.resolve_option is ResolveOption.SAME:
                side = ConflictSide.YOURS
            elif pair.resolve_option is ResolveOption.ENCLOSED:
                side = self._enclosing_side(pair)
            else:
                continue
            if side is None:
                continue
            delta = self._diffs[side].deltas[pair.index(side)]
            counterpart = self._diffs[side.opposite].deltas[pair.index(side.opposite)]
            if delta.change_status is ChangeStatus.PENDING and counterpart.change_status is ChangeStatus.PENDING:
                return delta, side
        return None
