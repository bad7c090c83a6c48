"""
The atomic unit of change between two text versions.

A ChangeDelta records one contiguous region of difference in line and
character coordinates on both sides. Deltas are immutable: every
operation returns a new delta, which lets models publish whole delta
lists as snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Callable, Optional

from deltamerge.core.errors import DeltaStateError
from deltamerge.core.models import (
    ChangeSide,
    ChangeStatus,
    ChangeType,
    ConflictType,
    LinePartDelta,
    ranges_conflict,
)
from deltamerge.core.text_lines import split_lines


# Returns the current full text of a side
TextProvider = Callable[[ChangeSide], str]

_SUFFIX = {ChangeSide.OLD: 'old', ChangeSide.NEW: 'new'}


def change_type_for_lengths(old_length: int, new_length: int) -> ChangeType:
    """Change type implied by the extent of each side."""
    if old_length == 0:
        return ChangeType.ADD
    if new_length == 0:
        return ChangeType.DELETE
    return ChangeType.MODIFY


@dataclass(frozen=True)
class ChangeDelta:
    """
    A contiguous, typed region of difference.

    Line ranges are end-exclusive line indices; text ranges are absolute,
    end-exclusive character offsets into each side's full text. A range
    whose start equals its end is an insertion point on that side.
    """
    start_line_old: int
    end_line_old: int
    start_line_new: int
    end_line_new: int
    start_text_old: int
    end_text_old: int
    start_text_new: int
    end_text_new: int
    change_type: ChangeType
    change_status: ChangeStatus = ChangeStatus.PENDING
    conflict_type: ConflictType = ConflictType.NONE
    text_provider: Optional[TextProvider] = field(default=None, compare=False, repr=False)
    word_diff_line_limit: int = field(default=20, compare=False, repr=False)

    # -------------------------------------------------------------------------
    # Coordinates
    # -------------------------------------------------------------------------

    def start_line(self, side: ChangeSide) -> int:
        return self.start_line_old if side is ChangeSide.OLD else self.start_line_new

    def end_line(self, side: ChangeSide) -> int:
        return self.end_line_old if side is ChangeSide.OLD else self.end_line_new

    def start_text_index(self, side: ChangeSide) -> int:
        return self.start_text_old if side is ChangeSide.OLD else self.start_text_new

    def end_text_index(self, side: ChangeSide) -> int:
        return self.end_text_old if side is ChangeSide.OLD else self.end_text_new

    def line_count(self, side: ChangeSide) -> int:
        return self.end_line(side) - self.start_line(side)

    def text_length(self, side: ChangeSide) -> int:
        return self.end_text_index(side) - self.start_text_index(side)

    @property
    def is_empty(self) -> bool:
        """True when neither side covers any text."""
        return self.text_length(ChangeSide.OLD) == 0 and self.text_length(ChangeSide.NEW) == 0

    def is_part_of_delta(self, text_index: int, side: ChangeSide) -> bool:
        return self.start_text_index(side) <= text_index <= self.end_text_index(side)

    # -------------------------------------------------------------------------
    # Text access
    # -------------------------------------------------------------------------

    def get_text(self, side: ChangeSide) -> str:
        """Text the delta covers on a side of its owning model."""
        if self.text_provider is None:
            raise DeltaStateError("Delta is not attached to a diff model", {'delta': self})
        return self.text_provider(side)[self.start_text_index(side):self.end_text_index(side)]

    def is_same_change(self, other: ChangeDelta) -> bool:
        """Both deltas replace the same OLD range with the same NEW text."""
        return (
            self.start_text_old == other.start_text_old
            and self.end_text_old == other.end_text_old
            and self.get_text(ChangeSide.NEW) == other.get_text(ChangeSide.NEW)
        )

    @cached_property
    def line_part_deltas(self) -> tuple[LinePartDelta, ...]:
        """
        Word-level changes inside this delta.

        Small deltas are diffed word by word, deltas spanning at least
        word_diff_line_limit lines line by line. Computed once per delta
        instance.
        """
        if self.text_provider is None:
            return ()

        # Imported here, the builder depends on this module
        from deltamerge.core.diff.delta_builder import DeltaBuilder
        from deltamerge.core.diff.edit_script import EditScriptProvider, tokenize_words

        old_text = self.get_text(ChangeSide.OLD)
        new_text = self.get_text(ChangeSide.NEW)
        provider = EditScriptProvider()

        if max(self.line_count(ChangeSide.OLD), self.line_count(ChangeSide.NEW)) < self.word_diff_line_limit:
            old_tokens = tokenize_words(old_text)
            new_tokens = tokenize_words(new_text)
            script = provider.compute_tokens(old_tokens, new_tokens)
        else:
            old_tokens = split_lines(old_text)
            new_tokens = split_lines(new_text)
            script = provider.compute(old_tokens, new_tokens)

        parts = DeltaBuilder().build_parts(
            old_tokens, new_tokens, script, self.start_text_old, self.start_text_new
        )
        return tuple(parts)

    def get_line_part_changes(self) -> list[LinePartDelta]:
        return list(self.line_part_deltas)

    # -------------------------------------------------------------------------
    # Transformations
    # -------------------------------------------------------------------------

    def apply_offset(
        self,
        line_offset: int,
        text_offset: int,
        side: Optional[ChangeSide] = None
    ) -> ChangeDelta:
        """
        Shift the delta by a line and text offset.

        Args:
            line_offset: Lines to add to start and end line
            text_offset: Characters to add to start and end text index
            side: Side to shift; both sides when None

        Returns:
            The shifted delta (self when both offsets are zero)
        """
        if line_offset == 0 and text_offset == 0:
            return self

        sides = (ChangeSide.OLD, ChangeSide.NEW) if side is None else (side,)
        changes = {}
        for current in sides:
            changes.update(self._side_values(
                current,
                start_line=self.start_line(current) + line_offset,
                end_line=self.end_line(current) + line_offset,
                start_text=self.start_text_index(current) + text_offset,
                end_text=self.end_text_index(current) + text_offset,
            ))
        shifted = replace(self, **changes)

        # Word-level parts only move, they do not need a new diff
        if 'line_part_deltas' in self.__dict__ and text_offset:
            shifted.__dict__['line_part_deltas'] = tuple(
                part.apply_offset(text_offset, side) for part in self.line_part_deltas
            )
        return shifted

    def with_lines(self, side: ChangeSide, start_line: int, end_line: int) -> ChangeDelta:
        """Copy with one side's line range replaced; text ranges are kept."""
        if start_line == self.start_line(side) and end_line == self.end_line(side):
            return self
        updated = replace(self, **self._side_values(side, start_line=start_line, end_line=end_line))
        if 'line_part_deltas' in self.__dict__:
            updated.__dict__['line_part_deltas'] = self.line_part_deltas
        return updated

    def is_conflicting_with(self, other: ChangeDelta, side: ChangeSide = ChangeSide.NEW) -> bool:
        """
        Check whether two deltas write to overlapping text.

        The deltas conflict when their text ranges on the given side
        intersect, or both insert at the same offset.
        """
        return ranges_conflict(
            self.start_text_index(side), self.end_text_index(side),
            other.start_text_index(side), other.end_text_index(side),
        )

    def accept_change(self, changed_side: Optional[ChangeSide] = None) -> ChangeDelta:
        """
        Mark the delta ACCEPTED.

        When changed_side is given, that side's range is resized to the
        other side's extent, mirroring the splice the owning model makes.
        """
        delta = self._mirrored(changed_side) if changed_side is not None else self
        return replace(delta, change_status=ChangeStatus.ACCEPTED)

    def discard_change(self, changed_side: Optional[ChangeSide] = None) -> ChangeDelta:
        """Mark the delta DISCARDED, optionally resizing the reverted side."""
        delta = self._mirrored(changed_side) if changed_side is not None else self
        return replace(delta, change_status=ChangeStatus.DISCARDED)

    def append_change(self) -> ChangeDelta:
        """Mark ACCEPTED after the NEW text was inserted behind the OLD range."""
        return replace(
            self,
            end_line_old=self.end_line_old + self.line_count(ChangeSide.NEW),
            end_text_old=self.end_text_old + self.text_length(ChangeSide.NEW),
            change_status=ChangeStatus.ACCEPTED,
        )

    def with_status(self, status: ChangeStatus) -> ChangeDelta:
        if status is self.change_status:
            return self
        return replace(self, change_status=status)

    def with_conflict(self, conflict_type: ConflictType) -> ChangeDelta:
        if conflict_type is self.conflict_type:
            return self
        return replace(self, conflict_type=conflict_type)

    def process_text_event(
        self,
        offset: int,
        length: int,
        num_newlines_before: int,
        num_newlines: int,
        is_insert: bool,
        side: ChangeSide = ChangeSide.NEW,
        absorb_boundary: bool = False
    ) -> ChangeDelta:
        """
        Absorb a single insert or delete made on one side's text.

        Edits that do not reach into the delta return it unchanged; the
        caller shifts deltas lying after the edit with apply_offset. An
        insert exactly at the start is such a preceding edit, an insert at
        the end extends the delta. With absorb_boundary an insert at
        either boundary extends the delta.

        A delete inside the range shrinks it; one crossing a boundary
        clips it to what survives; one that spans the whole range and
        more leaves the delta UNDEFINED at the edit offset.

        Text indices are exact. Line numbers are moved by the newline
        counts given, which misses a line gained or lost when the edit
        touches the unterminated end of the text; the owning model derives
        lines from the text indices again after every edit.

        Args:
            offset: Character offset of the edit
            length: Characters inserted or deleted
            num_newlines_before: Newlines deleted before the delta start
            num_newlines: Newlines inserted, or deleted inside the delta
            is_insert: True for an insert, False for a delete
            side: Side the edit was made on
            absorb_boundary: Treat inserts at either boundary as interior

        Returns:
            The updated delta, or self when the edit is disjoint
        """
        if length == 0:
            return self

        start = self.start_text_index(side)
        end = self.end_text_index(side)

        if is_insert:
            interior = start < offset <= end or (absorb_boundary and offset == start)
            if not interior:
                return self
            return self._resized(
                side,
                start_line=self.start_line(side),
                end_line=self.end_line(side) + num_newlines,
                start_text=start,
                end_text=end + length,
            )

        delete_end = offset + length
        if start == end:
            touches = offset < start < delete_end
        else:
            touches = offset < end and delete_end > start
        if not touches:
            return self

        new_start_line = self.start_line(side) - num_newlines_before
        spans_delta = offset <= start and delete_end >= end
        exact = offset == start and delete_end == end

        if spans_delta and not exact:
            return self._resized(
                side,
                start_line=new_start_line,
                end_line=new_start_line,
                start_text=offset,
                end_text=offset,
                status=ChangeStatus.UNDEFINED,
            )

        removed_inside = min(end, delete_end) - max(start, offset)
        new_start = min(start, offset)
        return self._resized(
            side,
            start_line=new_start_line,
            end_line=self.end_line(side) - num_newlines_before - num_newlines,
            start_text=new_start,
            end_text=new_start + (end - start) - removed_inside,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _side_values(self, side: ChangeSide, **values: int) -> dict[str, int]:
        """Map start_line/end_line/start_text/end_text to the side's field names."""
        suffix = _SUFFIX[side]
        return {f"{name}_{suffix}": value for name, value in values.items()}

    def _resized(
        self,
        side: ChangeSide,
        start_line: int,
        end_line: int,
        start_text: int,
        end_text: int,
        status: Optional[ChangeStatus] = None
    ) -> ChangeDelta:
        """Copy with one side's range replaced and the change type re-derived."""
        resized = replace(
            self,
            change_status=status or self.change_status,
            **self._side_values(
                side,
                start_line=start_line,
                end_line=end_line,
                start_text=start_text,
                end_text=end_text,
            )
        )
        if resized.is_empty:
            return resized
        return replace(resized, change_type=change_type_for_lengths(
            resized.text_length(ChangeSide.OLD), resized.text_length(ChangeSide.NEW)
        ))

    def _mirrored(self, side: ChangeSide) -> ChangeDelta:
        """Copy whose range on one side has the other side's extent."""
        other = side.other
        return replace(self, **self._side_values(
            side,
            start_line=self.start_line(side),
            end_line=self.start_line(side) + self.line_count(other),
            start_text=self.start_text_index(side),
            end_text=self.start_text_index(side) + self.text_length(other),
        ))
