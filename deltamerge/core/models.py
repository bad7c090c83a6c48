"""
Core data models for the delta engine.

Contains:
- Enumerations for sides, change types, statuses and conflicts
- Edit script entries as produced by a diff provider
- Word-level sub-deltas, text change events and delta list snapshots
- File metadata carried alongside a diff
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import TYPE_CHECKING, NamedTuple, Optional, Sequence

if TYPE_CHECKING:
    from deltamerge.core.diff.change_delta import ChangeDelta


# =============================================================================
# Enumerations
# =============================================================================

class ChangeSide(Enum):
    """Coordinate axis of a range: the original or the changed text."""
    OLD = auto()
    NEW = auto()

    @property
    def other(self) -> ChangeSide:
        return ChangeSide.NEW if self is ChangeSide.OLD else ChangeSide.OLD


class ChangeType(Enum):
    """Kind of change a delta describes."""
    ADD = auto()
    DELETE = auto()
    MODIFY = auto()
    SAME = auto()       # Gap between deltas, never stored as a delta


class ChangeStatus(Enum):
    """Lifecycle state of a delta."""
    PENDING = auto()
    ACCEPTED = auto()
    DISCARDED = auto()
    UNDEFINED = auto()  # Extent no longer reliable, needs a recompute


class ConflictType(Enum):
    """Whether a merge delta overlaps a delta of the other side."""
    NONE = auto()
    CONFLICTING = auto()


class ConflictSide(Enum):
    """Branch a merge delta belongs to."""
    YOURS = auto()
    THEIRS = auto()

    @property
    def opposite(self) -> ConflictSide:
        return ConflictSide.THEIRS if self is ConflictSide.YOURS else ConflictSide.YOURS


class EditType(Enum):
    """Edit script operation, valued by the difflib opcode tags."""
    EQUAL = 'equal'
    INSERT = 'insert'
    DELETE = 'delete'
    REPLACE = 'replace'

    def to_change_type(self) -> ChangeType:
        if self is EditType.INSERT:
            return ChangeType.ADD
        elif self is EditType.DELETE:
            return ChangeType.DELETE
        elif self is EditType.REPLACE:
            return ChangeType.MODIFY
        return ChangeType.SAME


class ResolveOption(Enum):
    """How a conflicting pair could be resolved without user input."""
    NONE = auto()
    SAME = auto()          # Both sides made the identical change
    ENCLOSED = auto()      # One side's text contains the other's
    WORD_BASED = auto()    # Word-level changes do not overlap


class LineEnding(Enum):
    """Line ending style."""
    LF = auto()      # Unix: \n
    CRLF = auto()    # Windows: \r\n
    CR = auto()      # Old Mac: \r
    MIXED = auto()   # Mixed endings
    NONE = auto()    # No line endings (single line)

    @property
    def separator(self) -> str:
        if self is LineEnding.CRLF:
            return '\r\n'
        elif self is LineEnding.CR:
            return '\r'
        return '\n'


# =============================================================================
# Edit Script
# =============================================================================

class EditOperation(NamedTuple):
    """One entry of a line-level edit script (line indices, end-exclusive)."""
    type: EditType
    old_start: int
    old_end: int
    new_start: int
    new_end: int

    @classmethod
    def from_opcode(cls, opcode: Sequence) -> EditOperation:
        """Create from a difflib style ``(tag, i1, i2, j1, j2)`` tuple."""
        tag, old_start, old_end, new_start, new_end = opcode
        edit_type = tag if isinstance(tag, EditType) else EditType(tag)
        return cls(edit_type, old_start, old_end, new_start, new_end)


# =============================================================================
# Deltas and Events
# =============================================================================

@dataclass(frozen=True)
class LinePartDelta:
    """
    Word-granularity change inside a delta.

    Only text indices are tracked, as absolute offsets into each side's
    full text.
    """
    change_type: ChangeType
    start_text_old: int
    end_text_old: int
    start_text_new: int
    end_text_new: int

    def start_text_index(self, side: ChangeSide) -> int:
        return self.start_text_old if side is ChangeSide.OLD else self.start_text_new

    def end_text_index(self, side: ChangeSide) -> int:
        return self.end_text_old if side is ChangeSide.OLD else self.end_text_new

    def apply_offset(self, text_offset: int, side: Optional[ChangeSide] = None) -> LinePartDelta:
        """Shift the part on one side, or both when side is None."""
        if text_offset == 0:
            return self
        old_shift = text_offset if side in (None, ChangeSide.OLD) else 0
        new_shift = text_offset if side in (None, ChangeSide.NEW) else 0
        return replace(
            self,
            start_text_old=self.start_text_old + old_shift,
            end_text_old=self.end_text_old + old_shift,
            start_text_new=self.start_text_new + new_shift,
            end_text_new=self.end_text_new + new_shift,
        )

    def is_conflicting_with(self, other: LinePartDelta, side: ChangeSide) -> bool:
        return ranges_conflict(
            self.start_text_index(side), self.end_text_index(side),
            other.start_text_index(side), other.end_text_index(side),
        )


@dataclass(frozen=True)
class TextChangeEvent:
    """
    Splice a text buffer must perform to stay in sync with a model.

    The event replaces ``deleted_length`` characters at ``offset`` of the
    given side's text with ``inserted_text``.
    """
    offset: int
    deleted_length: int
    inserted_text: str
    side: ChangeSide

    @property
    def text_offset(self) -> int:
        """Net change of the text length."""
        return len(self.inserted_text) - self.deleted_length

    def apply(self, text: str) -> str:
        """Apply the splice to a string."""
        return text[:self.offset] + self.inserted_text + text[self.offset + self.deleted_length:]


@dataclass(frozen=True)
class DeltaSnapshot:
    """
    Immutable view of a diff model at one version.

    Models publish a new snapshot per mutation; readers holding an older
    snapshot keep a consistent view.
    """
    version: int
    deltas: tuple[ChangeDelta, ...]
    old_text: str
    new_text: str

    def text(self, side: ChangeSide) -> str:
        return self.old_text if side is ChangeSide.OLD else self.new_text

    def with_status(self, status: ChangeStatus) -> tuple[ChangeDelta, ...]:
        return tuple(d for d in self.deltas if d.change_status is status)


# =============================================================================
# File Metadata
# =============================================================================

@dataclass(frozen=True)
class FileContentInfo:
    """Encoding details of one side, used to reconstruct it on output."""
    encoding: str = 'utf-8'
    line_ending: LineEnding = LineEnding.LF
    bom: bool = False
    path: Optional[str] = None


@dataclass(frozen=True)
class FileDiffHeader:
    """Paths of a file pair; a missing path means the file does not exist on that side."""
    old_path: Optional[str] = None
    new_path: Optional[str] = None

    def path(self, side: ChangeSide) -> Optional[str]:
        return self.old_path if side is ChangeSide.OLD else self.new_path

    @property
    def change_type(self) -> ChangeType:
        if self.old_path is None and self.new_path is not None:
            return ChangeType.ADD
        if self.new_path is None and self.old_path is not None:
            return ChangeType.DELETE
        return ChangeType.MODIFY

    @property
    def display_path(self) -> str:
        return self.new_path or self.old_path or ""


@dataclass(frozen=True)
class ConflictPair:
    """Indices of two conflicting merge deltas and how they could be resolved."""
    yours_index: int
    theirs_index: int
    resolve_option: ResolveOption = ResolveOption.NONE

    def index(self, side: ConflictSide) -> int:
        return self.yours_index if side is ConflictSide.YOURS else self.theirs_index


def ranges_conflict(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """
    Check whether two end-exclusive ranges collide.

    Ranges collide when they intersect, or when both are insertion points
    at the same offset.
    """
    if start_a == end_a and start_b == end_b:
        return start_a == start_b
    return start_a < end_b and start_b < end_a
