"""
Line-level edit script provider.

Produces the ordered EQUAL/INSERT/DELETE/REPLACE operations consumed by
the delta builder. Supports:
- difflib's sequence matcher, with or without the autojunk heuristic
- Patience anchoring on lines unique to both sides
- Histogram anchoring on low-frequency lines
- Whitespace and case normalization (for matching only, never offsets)
"""

from __future__ import annotations

import difflib
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, Sequence

from deltamerge.core.errors import CancelledException
from deltamerge.core.models import EditOperation, EditType
from deltamerge.core.text_lines import split_lines


# One anchor: (old index, new index)
Anchor = tuple[int, int]

_WORD_PATTERN = re.compile(r'(\s+|\S+)')


class DiffAlgorithm(Enum):
    """Available diff algorithms."""
    MYERS = auto()          # difflib default matcher
    PATIENCE = auto()       # Anchors on unique lines - better for code
    HISTOGRAM = auto()      # Anchors on rare lines
    MINIMAL = auto()        # difflib without autojunk

    @classmethod
    def from_string(cls, value: str) -> DiffAlgorithm:
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.MYERS


class WhitespaceMode(Enum):
    """Whitespace handling modes."""
    EXACT = auto()
    IGNORE_TRAILING = auto()
    IGNORE_LEADING = auto()
    IGNORE_ALL = auto()
    NORMALIZE = auto()        # Collapse runs to a single space


@dataclass
class DiffOptions:
    """Options controlling how lines are matched."""
    algorithm: DiffAlgorithm = DiffAlgorithm.MYERS
    ignore_case: bool = False
    whitespace_mode: WhitespaceMode = WhitespaceMode.EXACT
    junk_filter: Optional[Callable[[str], bool]] = None

    def normalize_line(self, line: str) -> str:
        """Normalize a line for comparison."""
        result = line.rstrip('\n')
        terminator = line[len(result):]

        if self.whitespace_mode == WhitespaceMode.IGNORE_TRAILING:
            result = result.rstrip()
        elif self.whitespace_mode == WhitespaceMode.IGNORE_LEADING:
            result = result.lstrip()
        elif self.whitespace_mode == WhitespaceMode.IGNORE_ALL:
            result = ''.join(result.split())
        elif self.whitespace_mode == WhitespaceMode.NORMALIZE:
            result = ' '.join(result.split())

        if self.ignore_case:
            result = result.lower()

        return result + terminator


def tokenize_words(text: str) -> list[str]:
    """Split text into alternating whitespace and non-whitespace tokens."""
    return _WORD_PATTERN.findall(text)


class EditScriptProvider:
    """
    Computes edit scripts between two line sequences.

    The result always covers both sequences completely, in order, so it
    can be fed straight into the delta builder.
    """

    def __init__(self, options: Optional[DiffOptions] = None):
        self.options = options or DiffOptions()

    def compute(
        self,
        old_lines: Sequence[str],
        new_lines: Sequence[str],
        cancel_check: Optional[Callable[[], bool]] = None
    ) -> list[EditOperation]:
        """
        Compute the edit script between two line sequences.

        Args:
            old_lines: Lines of the original text
            new_lines: Lines of the changed text
            cancel_check: Polled between anchor gaps; raising
                CancelledException when it returns True

        Returns:
            Ordered edit operations covering both sequences
        """
        old = [self.options.normalize_line(line) for line in old_lines]
        new = [self.options.normalize_line(line) for line in new_lines]

        algorithm = self.options.algorithm
        if algorithm == DiffAlgorithm.PATIENCE:
            opcodes = self._anchored(old, new, _unique_anchors(old, new), cancel_check)
        elif algorithm == DiffAlgorithm.HISTOGRAM:
            anchors = _rare_anchors(old, new)
            if anchors:
                opcodes = self._anchored(old, new, anchors, cancel_check)
            else:
                opcodes = self._matcher(old, new, autojunk=True).get_opcodes()
        elif algorithm == DiffAlgorithm.MINIMAL:
            opcodes = self._matcher(old, new, autojunk=False).get_opcodes()
        else:
            opcodes = self._matcher(old, new, autojunk=True).get_opcodes()

        return _merge_adjacent([EditOperation.from_opcode(op) for op in opcodes])

    def compute_texts(
        self,
        old_text: str,
        new_text: str,
        cancel_check: Optional[Callable[[], bool]] = None
    ) -> list[EditOperation]:
        """Compute the edit script between two newline-normalized texts."""
        return self.compute(split_lines(old_text), split_lines(new_text), cancel_check)

    def compute_tokens(self, old_tokens: Sequence[str], new_tokens: Sequence[str]) -> list[EditOperation]:
        """Compute an exact edit script over arbitrary tokens (no normalization)."""
        matcher = difflib.SequenceMatcher(None, old_tokens, new_tokens, autojunk=False)
        return [EditOperation.from_opcode(op) for op in matcher.get_opcodes()]

    def _matcher(self, old: list[str], new: list[str], autojunk: bool) -> difflib.SequenceMatcher:
        return difflib.SequenceMatcher(self.options.junk_filter, old, new, autojunk=autojunk)

    def _anchored(
        self,
        old: list[str],
        new: list[str],
        anchors: list[Anchor],
        cancel_check: Optional[Callable[[], bool]]
    ) -> list[tuple]:
        """Diff the gaps between anchors with difflib and join the results."""
        opcodes: list[tuple] = []
        old_pos = 0
        new_pos = 0

        for old_idx, new_idx in anchors + [(len(old), len(new))]:
            if cancel_check is not None and cancel_check():
                raise CancelledException("Edit script computation cancelled")

            gap_old = old[old_pos:old_idx]
            gap_new = new[new_pos:new_idx]
            if gap_old and gap_new:
                matcher = self._matcher(gap_old, gap_new, autojunk=True)
                for tag, i1, i2, j1, j2 in matcher.get_opcodes():
                    opcodes.append((tag, old_pos + i1, old_pos + i2, new_pos + j1, new_pos + j2))
            elif gap_old:
                opcodes.append(('delete', old_pos, old_idx, new_pos, new_pos))
            elif gap_new:
                opcodes.append(('insert', old_pos, old_pos, new_pos, new_idx))

            if old_idx < len(old):
                opcodes.append(('equal', old_idx, old_idx + 1, new_idx, new_idx + 1))
            old_pos = old_idx + 1
            new_pos = new_idx + 1

        return opcodes


def _unique_anchors(old: list[str], new: list[str]) -> list[Anchor]:
    """Lines occurring exactly once on each side, kept in increasing order."""
    old_counts = Counter(old)
    new_counts = Counter(new)
    new_positions = {line: j for j, line in enumerate(new) if new_counts[line] == 1}

    candidates = [
        (i, new_positions[line])
        for i, line in enumerate(old)
        if old_counts[line] == 1 and line in new_positions
    ]
    return _increasing(candidates)


def _rare_anchors(old: list[str], new: list[str], max_occurrences: int = 3) -> list[Anchor]:
    """First matching occurrence of each low-frequency line common to both sides."""
    old_counts = Counter(old)
    new_counts = Counter(new)
    rare = {
        line for line in old_counts.keys() & new_counts.keys()
        if old_counts[line] + new_counts[line] <= max_occurrences
    }

    first_new: dict[str, int] = {}
    for j, line in enumerate(new):
        if line in rare and line not in first_new:
            first_new[line] = j

    candidates = []
    for i, line in enumerate(old):
        if line in first_new:
            candidates.append((i, first_new.pop(line)))
    return _increasing(candidates)


def _increasing(candidates: list[Anchor]) -> list[Anchor]:
    """
    Longest subsequence of candidates increasing in the new index.

    Candidates must already be sorted by old index.
    """
    if not candidates:
        return []

    tails: list[int] = []        # candidate index ending the best run of each length
    tail_values: list[int] = []
    parent = [-1] * len(candidates)

    for i, (_, new_idx) in enumerate(candidates):
        lo, hi = 0, len(tail_values)
        while lo < hi:
            mid = (lo + hi) // 2
            if tail_values[mid] < new_idx:
                lo = mid + 1
            else:
                hi = mid
        if lo == len(tail_values):
            tails.append(i)
            tail_values.append(new_idx)
        else:
            tails[lo] = i
            tail_values[lo] = new_idx
        parent[i] = tails[lo - 1] if lo > 0 else -1

    result = []
    idx = tails[-1]
    while idx >= 0:
        result.append(candidates[idx])
        idx = parent[idx]
    result.reverse()
    return result


def _merge_adjacent(operations: list[EditOperation]) -> list[EditOperation]:
    """
    Join touching operations of the same kind and fold touching
    insert/delete runs into replacements.
    """
    merged: list[EditOperation] = []
    for op in operations:
        if op.old_start == op.old_end and op.new_start == op.new_end:
            continue
        if merged:
            last = merged[-1]
            both_equal = last.type == op.type == EditType.EQUAL
            both_changes = last.type != EditType.EQUAL and op.type != EditType.EQUAL
            if both_equal or both_changes:
                edit_type = last.type if both_equal else _change_kind(
                    last.old_start, op.old_end, last.new_start, op.new_end
                )
                merged[-1] = EditOperation(edit_type, last.old_start, op.old_end, last.new_start, op.new_end)
                continue
        merged.append(op)
    return merged


def _change_kind(old_start: int, old_end: int, new_start: int, new_end: int) -> EditType:
    if old_start == old_end:
        return EditType.INSERT
    if new_start == new_end:
        return EditType.DELETE
    return EditType.REPLACE
