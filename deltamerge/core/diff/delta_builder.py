"""
Conversion of edit scripts into change deltas.

The builder walks an ordered edit script once, skips EQUAL runs and
turns every other run into a ChangeDelta carrying both line ranges and
absolute character ranges on each side. The same walk over token
sequences produces the word-level LinePartDeltas of a single delta.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Sequence, Union

from deltamerge.core.diff.change_delta import ChangeDelta, TextProvider
from deltamerge.core.errors import CancelledException, MalformedEditScriptError
from deltamerge.core.models import (
    EditOperation,
    EditType,
    LinePartDelta,
)
from deltamerge.core.text_lines import LineIndex


EditScript = Iterable[Union[EditOperation, Sequence]]


class DeltaBuilder:
    """Builds ordered delta lists from a diff provider's edit script."""

    def build(
        self,
        old_text: str,
        new_text: str,
        edit_script: EditScript,
        cancel_check: Optional[Callable[[], bool]] = None,
        text_provider: Optional[TextProvider] = None,
        word_diff_line_limit: int = 20
    ) -> list[ChangeDelta]:
        """
        Build the delta list for two texts.

        Args:
            old_text: Full OLD text, newline-normalized
            new_text: Full NEW text, newline-normalized
            edit_script: Ordered line-level operations covering both texts
            cancel_check: Polled once per edit script entry
            text_provider: Callback the deltas use to read their texts
            word_diff_line_limit: Line count below which deltas compute
                word-level parts

        Returns:
            Deltas ordered by OLD line, one per non-EQUAL operation

        Raises:
            MalformedEditScriptError: The script is unordered, overlapping
                or exceeds a text
            CancelledException: cancel_check returned True
        """
        old_index = LineIndex(old_text)
        new_index = LineIndex(new_text)
        deltas: list[ChangeDelta] = []

        for op in self._validated(edit_script, old_index.line_count, new_index.line_count, cancel_check):
            if op.type == EditType.EQUAL or _is_noop(op):
                continue
            deltas.append(ChangeDelta(
                start_line_old=op.old_start,
                end_line_old=op.old_end,
                start_line_new=op.new_start,
                end_line_new=op.new_end,
                start_text_old=old_index.offset_of_line(op.old_start),
                end_text_old=old_index.offset_of_line(op.old_end),
                start_text_new=new_index.offset_of_line(op.new_start),
                end_text_new=new_index.offset_of_line(op.new_end),
                change_type=op.type.to_change_type(),
                text_provider=text_provider,
                word_diff_line_limit=word_diff_line_limit,
            ))

        logging.debug(f"DeltaBuilder - Built {len(deltas)} deltas")
        return deltas

    def build_parts(
        self,
        old_tokens: Sequence[str],
        new_tokens: Sequence[str],
        edit_script: EditScript,
        old_base: int = 0,
        new_base: int = 0
    ) -> list[LinePartDelta]:
        """
        Build word-level parts from an edit script over token sequences.

        Character offsets are accumulated from the token lengths and
        shifted by the given base offsets.
        """
        old_offsets = _prefix_lengths(old_tokens)
        new_offsets = _prefix_lengths(new_tokens)
        parts: list[LinePartDelta] = []

        for op in self._validated(edit_script, len(old_tokens), len(new_tokens)):
            if op.type == EditType.EQUAL or _is_noop(op):
                continue
            parts.append(LinePartDelta(
                change_type=op.type.to_change_type(),
                start_text_old=old_base + old_offsets[op.old_start],
                end_text_old=old_base + old_offsets[op.old_end],
                start_text_new=new_base + new_offsets[op.new_start],
                end_text_new=new_base + new_offsets[op.new_end],
            ))
        return parts

    def _validated(
        self,
        edit_script: EditScript,
        old_count: int,
        new_count: int,
        cancel_check: Optional[Callable[[], bool]] = None
    ) -> list[EditOperation]:
        """Parse the script and check ordering and bounds before any delta is built."""
        operations: list[EditOperation] = []
        old_pos = 0
        new_pos = 0

        for position, raw in enumerate(edit_script):
            if cancel_check is not None and cancel_check():
                raise CancelledException("Delta computation cancelled")

            try:
                op = raw if isinstance(raw, EditOperation) else EditOperation.from_opcode(raw)
            except (TypeError, ValueError) as e:
                raise MalformedEditScriptError(
                    f"Edit script entry {position} cannot be parsed: {e}",
                    {'position': position, 'entry': repr(raw)}
                ) from e

            details = {
                'position': position,
                'operation': op,
                'old_line_count': old_count,
                'new_line_count': new_count,
            }
            if op.old_start > op.old_end or op.new_start > op.new_end:
                raise MalformedEditScriptError(f"Edit script entry {position} has a reversed range", details)
            if op.old_start < old_pos or op.new_start < new_pos:
                raise MalformedEditScriptError(
                    f"Edit script entry {position} is not monotonically increasing", details
                )
            if op.old_end > old_count or op.new_end > new_count:
                raise MalformedEditScriptError(f"Edit script entry {position} exceeds the text length", details)
            if op.type == EditType.INSERT and op.old_start != op.old_end:
                raise MalformedEditScriptError(f"INSERT entry {position} consumes OLD lines", details)
            if op.type == EditType.DELETE and op.new_start != op.new_end:
                raise MalformedEditScriptError(f"DELETE entry {position} consumes NEW lines", details)
            if op.type == EditType.EQUAL and op.old_end - op.old_start != op.new_end - op.new_start:
                raise MalformedEditScriptError(f"EQUAL entry {position} has ranges of different size", details)

            operations.append(op)
            old_pos = op.old_end
            new_pos = op.new_end

        return operations


def _is_noop(op: EditOperation) -> bool:
    return op.old_start == op.old_end and op.new_start == op.new_end


def _prefix_lengths(tokens: Sequence[str]) -> list[int]:
    """Offset of every token boundary; entry i is where token i starts."""
    offsets = [0]
    for token in tokens:
        offsets.append(offsets[-1] + len(token))
    return offsets
