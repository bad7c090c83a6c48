"""
Delta list model for one file pair.

FileDiffModel owns the OLD and NEW texts of a file pair and the ordered
delta list between them. It handles:
- Accepting and discarding deltas, splicing text accordingly
- Absorbing live edits made in a text widget
- Offset propagation for edits made through a coupled merge model
- Publishing immutable snapshots and change signals
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from PyQt6.QtCore import QObject, pyqtSignal

from deltamerge.core.diff.change_delta import ChangeDelta, change_type_for_lengths
from deltamerge.core.diff.delta_builder import DeltaBuilder, EditScript
from deltamerge.core.diff.edit_script import EditScriptProvider
from deltamerge.core.errors import DeltaStateError, RangeError, StaleDeltaError
from deltamerge.core.models import (
    ChangeSide,
    ChangeStatus,
    ConflictType,
    DeltaSnapshot,
    FileContentInfo,
    FileDiffHeader,
    LineEnding,
    TextChangeEvent,
)
from deltamerge.core.text_lines import LineIndex

if TYPE_CHECKING:
    from deltamerge.services.settings import DiffSettings


class DiffModelSignals(QObject):
    """
    Signals for diff model observers.

    Rendering code connects to these to keep gutters, highlights and
    text widgets in sync with the model.
    """
    # Full delta list after a structural change: tuple[ChangeDelta, ...]
    delta_list_changed = pyqtSignal(object)

    # Splice a text buffer must apply: TextChangeEvent
    text_changed = pyqtSignal(object)


def shift_following(
    deltas: Sequence[ChangeDelta],
    start_index: int,
    line_offset: int,
    text_offset: int,
    side: ChangeSide
) -> list[ChangeDelta]:
    """
    Shift every delta from start_index on by the given offsets on one side.

    Every mutation of a delta list re-indexes the deltas behind its edit
    point through this function.
    """
    shifted = list(deltas[:start_index])
    shifted.extend(d.apply_offset(line_offset, text_offset, side) for d in deltas[start_index:])
    return shifted


def realign_lines(deltas: Sequence[ChangeDelta], old_text: str, new_text: str) -> list[ChangeDelta]:
    """
    Derive every delta's line ranges from its text ranges.

    Text ranges are authoritative; line ranges follow the texts' line
    structure, including lines gained or lost at an unterminated end.
    """
    indexes = ((ChangeSide.OLD, LineIndex(old_text)), (ChangeSide.NEW, LineIndex(new_text)))
    aligned = []
    for delta in deltas:
        for side, lines in indexes:
            start_line, end_line = lines.line_range(delta.start_text_index(side), delta.end_text_index(side))
            delta = delta.with_lines(side, start_line, end_line)
        aligned.append(delta)
    return aligned


class FileDiffModel:
    """
    Ordered delta list between an OLD and a NEW text.

    All mutators validate first, compute the complete new state, then
    publish it as one DeltaSnapshot, so a failed operation never leaves
    a partial update behind. Mutators must be called from one thread.
    """

    def __init__(
        self,
        old_text: str,
        new_text: str,
        edit_script: Optional[EditScript] = None,
        deltas: Optional[Sequence[ChangeDelta]] = None,
        header: Optional[FileDiffHeader] = None,
        content_info: Optional[Mapping[ChangeSide, FileContentInfo]] = None,
        provider: Optional[EditScriptProvider] = None,
        word_diff_line_limit: int = 20
    ):
        """
        Create the model.

        Args:
            old_text: OLD text, newline-normalized
            new_text: NEW text, newline-normalized
            edit_script: Line-level edit script; computed with the provider
                when neither it nor deltas is given
            deltas: Prebuilt deltas, e.g. from a background worker
            header: Paths of the file pair
            content_info: Encoding details per side
            provider: Diff provider for re-diffing edited regions
            word_diff_line_limit: Line count below which deltas compute
                word-level parts
        """
        self.signals = DiffModelSignals()
        self.header = header or FileDiffHeader()
        self._content_info = dict(content_info or {})
        self._provider = provider or EditScriptProvider()
        self._builder = DeltaBuilder()
        self._word_diff_line_limit = word_diff_line_limit

        if deltas is not None:
            built = [self._attach(d) for d in deltas]
        else:
            if edit_script is None:
                edit_script = self._provider.compute_texts(old_text, new_text)
            built = self._build(old_text, new_text, edit_script)

        self._initial = DeltaSnapshot(0, tuple(built), old_text, new_text)
        self._snapshot = self._initial

    @classmethod
    def from_settings(
        cls,
        old_text: str,
        new_text: str,
        settings: DiffSettings,
        **kwargs
    ) -> FileDiffModel:
        """Create a model whose provider and word diff limit come from settings."""
        return cls(
            old_text,
            new_text,
            provider=EditScriptProvider(settings.to_options()),
            word_diff_line_limit=settings.word_diff_line_limit,
            **kwargs
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def snapshot(self) -> DeltaSnapshot:
        """Current consistent view of deltas and texts."""
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    @property
    def deltas(self) -> tuple[ChangeDelta, ...]:
        return self._snapshot.deltas

    @property
    def provider(self) -> EditScriptProvider:
        return self._provider

    @property
    def word_diff_line_limit(self) -> int:
        return self._word_diff_line_limit

    def get_text(self, side: ChangeSide) -> str:
        return self._snapshot.text(side)

    def get_delta(self, index: int) -> ChangeDelta:
        deltas = self._snapshot.deltas
        if index < 0 or index >= len(deltas):
            raise RangeError(
                f"Delta index {index} outside [0, {len(deltas)})",
                {'index': index, 'delta_count': len(deltas)}
            )
        return deltas[index]

    def index_of(self, delta: ChangeDelta) -> int:
        """
        Position of a delta in the current list.

        Raises:
            StaleDeltaError: The delta is not part of the current list
        """
        try:
            return self._snapshot.deltas.index(delta)
        except ValueError:
            logging.warning(f"FileDiffModel - Stale delta passed at version {self.version}: {delta}")
            raise StaleDeltaError(
                "Delta is not part of the current delta list",
                {'delta': delta, 'version': self.version}
            ) from None

    def get_content_info(self, side: ChangeSide) -> FileContentInfo:
        return self._content_info.get(side, FileContentInfo())

    def get_line_ending(self, side: ChangeSide) -> LineEnding:
        return self.get_content_info(side).line_ending

    def get_encoding(self, side: ChangeSide) -> str:
        return self.get_content_info(side).encoding

    def export_text(self, side: ChangeSide) -> str:
        """Text of a side with its original line endings restored."""
        separator = self.get_line_ending(side).separator
        text = self.get_text(side)
        return text if separator == '\n' else text.replace('\n', separator)

    # =========================================================================
    # Accept / discard
    # =========================================================================

    def accept_delta(self, delta: ChangeDelta) -> Optional[TextChangeEvent]:
        """
        Take over a delta's NEW text into the OLD text.

        Accepting an already accepted delta does nothing and returns None.

        Returns:
            The splice applied to the OLD text

        Raises:
            StaleDeltaError: The delta is not in the current list
            DeltaStateError: The delta is DISCARDED or UNDEFINED
        """
        index = self.index_of(delta)
        if delta.change_status is ChangeStatus.ACCEPTED:
            return None
        self._require_pending(delta, "accept")

        snapshot = self._snapshot
        event = TextChangeEvent(
            offset=delta.start_text_old,
            deleted_length=delta.text_length(ChangeSide.OLD),
            inserted_text=snapshot.new_text[delta.start_text_new:delta.end_text_new],
            side=ChangeSide.OLD,
        )
        line_offset = delta.line_count(ChangeSide.NEW) - delta.line_count(ChangeSide.OLD)

        deltas = shift_following(snapshot.deltas, index + 1, line_offset, event.text_offset, ChangeSide.OLD)
        deltas[index] = delta.accept_change(ChangeSide.OLD)

        self._publish(deltas, old_text=event.apply(snapshot.old_text), event=event)
        logging.debug(f"FileDiffModel - Accepted delta {index} at version {self.version}")
        return event

    def discard_change(self, delta: ChangeDelta, revert: bool = True) -> Optional[TextChangeEvent]:
        """
        Discard a delta.

        With revert, the NEW text takes the OLD content for the delta's
        range; without, only the status changes. Discarding a discarded
        delta does nothing.

        Returns:
            The splice applied to the NEW text, if any
        """
        index = self.index_of(delta)
        if delta.change_status is ChangeStatus.DISCARDED:
            return None
        self._require_pending(delta, "discard")

        snapshot = self._snapshot
        if not revert:
            deltas = list(snapshot.deltas)
            deltas[index] = delta.discard_change()
            self._publish(deltas)
            logging.debug(f"FileDiffModel - Discarded delta {index} without revert")
            return None

        event = TextChangeEvent(
            offset=delta.start_text_new,
            deleted_length=delta.text_length(ChangeSide.NEW),
            inserted_text=snapshot.old_text[delta.start_text_old:delta.end_text_old],
            side=ChangeSide.NEW,
        )
        line_offset = delta.line_count(ChangeSide.OLD) - delta.line_count(ChangeSide.NEW)

        deltas = shift_following(snapshot.deltas, index + 1, line_offset, event.text_offset, ChangeSide.NEW)
        deltas[index] = delta.discard_change(ChangeSide.NEW)

        self._publish(deltas, new_text=event.apply(snapshot.new_text), event=event)
        logging.debug(f"FileDiffModel - Discarded delta {index} at version {self.version}")
        return event

    def append_delta(self, delta: ChangeDelta) -> TextChangeEvent:
        """
        Insert a delta's NEW text behind its OLD range, keeping the OLD content.

        Used to take both sides of a merge conflict.
        """
        index = self.index_of(delta)
        self._require_pending(delta, "append")

        snapshot = self._snapshot
        event = TextChangeEvent(
            offset=delta.end_text_old,
            deleted_length=0,
            inserted_text=snapshot.new_text[delta.start_text_new:delta.end_text_new],
            side=ChangeSide.OLD,
        )

        deltas = shift_following(
            snapshot.deltas, index + 1, delta.line_count(ChangeSide.NEW), event.text_offset, ChangeSide.OLD
        )
        deltas[index] = delta.append_change()

        self._publish(deltas, old_text=event.apply(snapshot.old_text), event=event)
        logging.debug(f"FileDiffModel - Appended delta {index} at version {self.version}")
        return event

    def set_change_status(self, delta: ChangeDelta, status: ChangeStatus) -> ChangeDelta:
        """Change a delta's status without touching any text."""
        index = self.index_of(delta)
        updated = delta.with_status(status)
        if updated is not delta:
            deltas = list(self._snapshot.deltas)
            deltas[index] = updated
            self._publish(deltas)
        return updated

    def mark_conflicts(self, conflict_types: Sequence[ConflictType]) -> None:
        """Set the conflict type of every delta, in list order."""
        deltas = self._snapshot.deltas
        if len(conflict_types) != len(deltas):
            raise RangeError(
                f"Expected {len(deltas)} conflict types, got {len(conflict_types)}",
                {'expected': len(deltas), 'received': len(conflict_types)}
            )
        updated = [d.with_conflict(c) for d, c in zip(deltas, conflict_types)]
        if any(new is not old for new, old in zip(updated, deltas)):
            self._publish(updated)

    # =========================================================================
    # Live edits
    # =========================================================================

    def process_text_event(
        self,
        offset: int,
        length: int,
        text: Optional[str],
        side: ChangeSide = ChangeSide.NEW
    ) -> None:
        """
        Absorb a live edit of one side's text.

        The edit replaces ``length`` characters at ``offset`` with ``text``.
        An edit on the lines of a single delta is absorbed by that delta.
        An edit in unchanged text re-diffs just the touched lines, which
        can create new deltas. An edit reaching across several deltas, or
        from a delta into unchanged text, leaves one UNDEFINED delta over
        the whole region. Deltas behind the edit shift on the edited side.

        Raises:
            RangeError: The edit lies outside the side's text
        """
        text = text or ''
        snapshot = self._snapshot
        current = snapshot.text(side)
        self._check_edit(offset, length, current)
        if length == 0 and not text:
            return

        lines = LineIndex(current)
        window = _edit_window(lines, offset, length, text)
        touched = [
            i for i, d in enumerate(snapshot.deltas)
            if _touches(d, side, window[0], window[1])
        ]

        if not touched:
            deltas = self._rediff_gap(snapshot, side, lines, window, offset, length, text)
        elif len(touched) == 1 and _within(snapshot.deltas[touched[0]], side, window[0], window[1]):
            deltas = self._absorb(snapshot, touched[0], side, offset, length, text)
        else:
            deltas = self._merge_undefined(snapshot, touched, side, lines, window, offset, length, text)

        edited = current[:offset] + text + current[offset + length:]
        if side is ChangeSide.OLD:
            self._publish(deltas, old_text=edited)
        else:
            self._publish(deltas, new_text=edited)
        logging.debug(
            f"FileDiffModel - Processed edit at {offset} (-{length}/+{len(text)}) on {side.name}, "
            f"{len(deltas)} deltas"
        )

    def apply_external_edit(
        self,
        offset: int,
        length: int,
        text: Optional[str],
        side: ChangeSide = ChangeSide.OLD
    ) -> list[Optional[int]]:
        """
        Follow an edit made to a text this model shares with another model.

        No re-diff happens. Deltas behind the edit shift. The deltas the
        edit reaches into are replaced by one delta covering them and the
        edit; unchanged text the edit consumes next to them is matched by
        as many lines of the other side. The covering delta keeps the
        status of a single delta the edit only clips or stays inside, and
        is UNDEFINED when the edit swallows a delta or spans several.

        Returns:
            New list position of every previous delta, None for deltas
            the edit removed

        Raises:
            RangeError: The edit lies outside the side's text
        """
        text = text or ''
        snapshot = self._snapshot
        current = snapshot.text(side)
        self._check_edit(offset, length, current)
        deltas = snapshot.deltas
        if length == 0 and not text:
            return list(range(len(deltas)))

        line_offset = text.count('\n') - current[offset:offset + length].count('\n')
        text_offset = len(text) - length
        touched = [i for i, d in enumerate(deltas) if _reached_by_edit(d, side, offset, length)]

        if not touched:
            updated = [
                d.apply_offset(line_offset, text_offset, side) if _behind_edit(d, side, offset, length) else d
                for d in deltas
            ]
            index_map: list[Optional[int]] = list(range(len(deltas)))
        else:
            first, last = touched[0], touched[-1]
            region = self._covering_delta(snapshot, side, first, last, offset, length, text)
            following = shift_following(deltas[last + 1:], 0, line_offset, text_offset, side)
            kept = _keep(region)
            if not kept:
                logging.debug(f"FileDiffModel - External edit at {offset} removed a delta")
            updated = list(deltas[:first]) + ([region] if kept else []) + following

            index_map = list(range(first))
            index_map.extend([first if kept else None] * len(touched))
            behind = first + 1 if kept else first
            index_map.extend(range(behind, behind + len(following)))

        edited = current[:offset] + text + current[offset + length:]
        if side is ChangeSide.OLD:
            self._publish(updated, old_text=edited)
        else:
            self._publish(updated, new_text=edited)
        return index_map

    def _covering_delta(
        self,
        snapshot: DeltaSnapshot,
        side: ChangeSide,
        first: int,
        last: int,
        offset: int,
        length: int,
        text: str
    ) -> ChangeDelta:
        """One delta replacing deltas[first:last + 1] and the external edit reaching into them."""
        other = side.other
        deltas = snapshot.deltas
        head, tail = deltas[first], deltas[last]
        lines = LineIndex(snapshot.text(side))
        other_lines = LineIndex(snapshot.text(other))
        delete_end = offset + length

        start = min(offset, head.start_text_index(side))
        end = max(delete_end, tail.end_text_index(side))
        start_line, end_line = lines.line_range(start, end)

        # Consumed unchanged lines map to the other side, bounded by the neighbours
        floor = deltas[first - 1].end_line(other) if first else 0
        ceiling = deltas[last + 1].start_line(other) if last + 1 < len(deltas) else other_lines.line_count
        other_start_line = max(head.start_line(other) - (head.start_line(side) - start_line), floor)
        other_end_line = min(tail.end_line(other) + (end_line - tail.end_line(side)), ceiling)
        other_start = (
            head.start_text_index(other) if other_start_line == head.start_line(other)
            else other_lines.offset_of_line(other_start_line)
        )
        other_end = (
            tail.end_text_index(other) if other_end_line == tail.end_line(other)
            else other_lines.offset_of_line(other_end_line)
        )

        status = head.change_status
        swallowed = length > 0 and offset <= head.start_text_index(side) and delete_end >= tail.end_text_index(side)
        exact = offset == head.start_text_index(side) and delete_end == tail.end_text_index(side)
        if first != last or (swallowed and not exact):
            status = ChangeStatus.UNDEFINED

        line_offset = text.count('\n') - snapshot.text(side)[offset:delete_end].count('\n')
        text_offset = len(text) - length
        bounds = {
            side: (start_line, end_line + line_offset, start, end + text_offset),
            other: (other_start_line, other_end_line, other_start, other_end),
        }
        old, new = bounds[ChangeSide.OLD], bounds[ChangeSide.NEW]
        return replace(
            head,
            start_line_old=old[0],
            end_line_old=old[1],
            start_line_new=new[0],
            end_line_new=new[1],
            start_text_old=old[2],
            end_text_old=old[3],
            start_text_new=new[2],
            end_text_new=new[3],
            change_type=change_type_for_lengths(old[3] - old[2], new[3] - new[2]),
            change_status=status,
        )

    # =========================================================================
    # Rebuilding
    # =========================================================================

    def reset(self) -> None:
        """Return to the originally built delta list and texts."""
        snapshot = self._snapshot
        initial = self._initial
        events = [
            TextChangeEvent(0, len(snapshot.text(side)), initial.text(side), side)
            for side in (ChangeSide.OLD, ChangeSide.NEW)
            if snapshot.text(side) != initial.text(side)
        ]
        self._snapshot = replace(initial, version=snapshot.version + 1)
        for event in events:
            self.signals.text_changed.emit(event)
        self.signals.delta_list_changed.emit(self._snapshot.deltas)
        logging.debug(f"FileDiffModel - Reset to initial deltas at version {self.version}")

    def rebuild(self, edit_script: Optional[EditScript] = None) -> None:
        """Replace all deltas by a fresh diff of the current texts."""
        snapshot = self._snapshot
        if edit_script is None:
            edit_script = self._provider.compute_texts(snapshot.old_text, snapshot.new_text)
        self._publish(self._build(snapshot.old_text, snapshot.new_text, edit_script))

    def install_deltas(self, deltas: Sequence[ChangeDelta]) -> None:
        """Replace all deltas by ones computed elsewhere for the current texts."""
        self._publish([self._attach(d) for d in deltas])

    # =========================================================================
    # Internals
    # =========================================================================

    def _build(self, old_text: str, new_text: str, edit_script: EditScript) -> list[ChangeDelta]:
        return self._builder.build(
            old_text, new_text, edit_script,
            text_provider=self.get_text,
            word_diff_line_limit=self._word_diff_line_limit,
        )

    def _attach(self, delta: ChangeDelta) -> ChangeDelta:
        return replace(delta, text_provider=self.get_text, word_diff_line_limit=self._word_diff_line_limit)

    def _publish(
        self,
        deltas: Sequence[ChangeDelta],
        old_text: Optional[str] = None,
        new_text: Optional[str] = None,
        event: Optional[TextChangeEvent] = None
    ) -> None:
        """Swap in a new snapshot, then notify observers."""
        previous = self._snapshot
        texts_changed = old_text is not None or new_text is not None
        old_text = previous.old_text if old_text is None else old_text
        new_text = previous.new_text if new_text is None else new_text
        if texts_changed:
            deltas = realign_lines(deltas, old_text, new_text)
        self._snapshot = DeltaSnapshot(
            version=previous.version + 1,
            deltas=tuple(deltas),
            old_text=old_text,
            new_text=new_text,
        )
        if event is not None:
            self.signals.text_changed.emit(event)
        self.signals.delta_list_changed.emit(self._snapshot.deltas)

    def _require_pending(self, delta: ChangeDelta, action: str) -> None:
        if delta.change_status is not ChangeStatus.PENDING:
            logging.warning(f"FileDiffModel - Cannot {action} a delta in status {delta.change_status.name}")
            raise DeltaStateError(
                f"Cannot {action} a delta in status {delta.change_status.name}",
                {'delta': delta, 'status': delta.change_status}
            )

    def _check_edit(self, offset: int, length: int, text: str) -> None:
        if offset < 0 or length < 0 or offset + length > len(text):
            logging.warning(f"FileDiffModel - Edit {offset}+{length} outside text of length {len(text)}")
            raise RangeError(
                f"Edit at {offset} with length {length} outside [0, {len(text)}]",
                {'offset': offset, 'length': length, 'text_length': len(text)}
            )

    def _absorb(
        self,
        snapshot: DeltaSnapshot,
        index: int,
        side: ChangeSide,
        offset: int,
        length: int,
        text: str
    ) -> list[ChangeDelta]:
        """Feed an edit on a delta's own lines to that delta."""
        current = snapshot.text(side)
        deleted = current[offset:offset + length]
        delta = snapshot.deltas[index]

        if length:
            delta = delta.process_text_event(offset, length, 0, deleted.count('\n'), False, side)
        if text:
            delta = delta.process_text_event(offset, len(text), 0, text.count('\n'), True, side, absorb_boundary=True)

        line_offset = text.count('\n') - deleted.count('\n')
        deltas = list(snapshot.deltas)
        if _keep(delta):
            deltas[index] = delta
            return shift_following(deltas, index + 1, line_offset, len(text) - length, side)
        del deltas[index]
        return shift_following(deltas, index, line_offset, len(text) - length, side)

    def _rediff_gap(
        self,
        snapshot: DeltaSnapshot,
        side: ChangeSide,
        lines: LineIndex,
        window: tuple[int, int],
        offset: int,
        length: int,
        text: str
    ) -> list[ChangeDelta]:
        """Diff the edited lines of an unchanged region against the other side."""
        first_line, last_line = window
        other = side.other
        deltas = snapshot.deltas
        current = snapshot.text(side)

        next_index = next(
            (i for i, d in enumerate(deltas) if d.start_line(side) >= last_line),
            len(deltas)
        )
        line_shift, text_shift = _gap_shift(deltas[next_index - 1] if next_index else None, side)

        window_start = lines.offset_of_line(first_line)
        window_end = lines.offset_of_line(last_line)
        other_start = window_start - text_shift
        other_window = snapshot.text(other)[other_start:window_end - text_shift]
        edited_window = current[window_start:offset] + text + current[offset + length:window_end]

        bases = {
            side: (first_line, window_start),
            other: (first_line - line_shift, other_start),
        }
        if side is ChangeSide.NEW:
            old_window, new_window = other_window, edited_window
        else:
            old_window, new_window = edited_window, other_window

        local = self._build(old_window, new_window, self._provider.compute_texts(old_window, new_window))
        placed = [
            d.apply_offset(*bases[ChangeSide.OLD], ChangeSide.OLD).apply_offset(*bases[ChangeSide.NEW], ChangeSide.NEW)
            for d in local
        ]

        deleted = current[offset:offset + length]
        following = shift_following(
            deltas[next_index:], 0, text.count('\n') - deleted.count('\n'), len(text) - length, side
        )
        if placed:
            logging.debug(f"FileDiffModel - Edit in unchanged text produced {len(placed)} deltas")
        return list(deltas[:next_index]) + placed + following

    def _merge_undefined(
        self,
        snapshot: DeltaSnapshot,
        touched: list[int],
        side: ChangeSide,
        lines: LineIndex,
        window: tuple[int, int],
        offset: int,
        length: int,
        text: str
    ) -> list[ChangeDelta]:
        """Replace the touched deltas by one UNDEFINED delta covering edit and deltas."""
        first_line, last_line = window
        other = side.other
        deltas = snapshot.deltas
        first = deltas[touched[0]]
        last = deltas[touched[-1]]
        window_start = lines.offset_of_line(first_line)
        window_end = lines.offset_of_line(last_line)

        if first.start_line(side) <= first_line:
            start = (first.start_line(side), first.start_text_index(side))
            other_start = (first.start_line(other), first.start_text_index(other))
        else:
            line_shift, text_shift = _gap_shift(deltas[touched[0] - 1] if touched[0] else None, side)
            start = (first_line, window_start)
            other_start = (first_line - line_shift, window_start - text_shift)

        if last.end_line(side) >= last_line:
            end = (last.end_line(side), last.end_text_index(side))
            other_end = (last.end_line(other), last.end_text_index(other))
        else:
            line_shift, text_shift = _gap_shift(last, side)
            end = (last_line, window_end)
            other_end = (last_line - line_shift, window_end - text_shift)

        deleted = snapshot.text(side)[offset:offset + length]
        line_offset = text.count('\n') - deleted.count('\n')
        text_offset = len(text) - length
        end = (end[0] + line_offset, end[1] + text_offset)

        ranges = {side: (start, end), other: (other_start, other_end)}
        (old_start, old_end), (new_start, new_end) = ranges[ChangeSide.OLD], ranges[ChangeSide.NEW]
        merged = ChangeDelta(
            start_line_old=old_start[0],
            end_line_old=old_end[0],
            start_line_new=new_start[0],
            end_line_new=new_end[0],
            start_text_old=old_start[1],
            end_text_old=old_end[1],
            start_text_new=new_start[1],
            end_text_new=new_end[1],
            change_type=change_type_for_lengths(old_end[1] - old_start[1], new_end[1] - new_start[1]),
            change_status=ChangeStatus.UNDEFINED,
            text_provider=self.get_text,
            word_diff_line_limit=self._word_diff_line_limit,
        )
        logging.debug(f"FileDiffModel - Edit across {len(touched)} deltas left an UNDEFINED region")

        following = shift_following(deltas[touched[-1] + 1:], 0, line_offset, text_offset, side)
        return list(deltas[:touched[0]]) + [merged] + following


def _edit_window(lines: LineIndex, offset: int, length: int, text: str) -> tuple[int, int]:
    """
    Lines (end-exclusive, pre-edit coordinates) whose content an edit changes.

    The window is empty when whole lines are inserted at a line start.
    """
    first_line = lines.line_at(offset)
    end = offset + length
    prefix = lines.text[lines.offset_of_line(first_line):offset] + text

    if lines.is_line_start(end) and (not prefix or prefix.endswith('\n')):
        return first_line, lines.line_at(end)
    return first_line, min(lines.line_at(end) + 1, lines.line_count)


def _touches(delta: ChangeDelta, side: ChangeSide, first_line: int, last_line: int) -> bool:
    """
    Whether an edit window reaches into a delta's lines.

    Whole lines inserted at a delta's first line precede it; inserted at
    its last line they extend it.
    """
    start = delta.start_line(side)
    end = delta.end_line(side)
    if first_line == last_line:
        return start < first_line <= end and start < end
    if start == end:
        return first_line < start < last_line
    return start < last_line and first_line < end


def _reached_by_edit(delta: ChangeDelta, side: ChangeSide, offset: int, length: int) -> bool:
    """
    Whether an external edit changes text inside a delta's range.

    An insert at a delta's start precedes it; an insert at its end
    extends it.
    """
    start = delta.start_text_index(side)
    end = delta.end_text_index(side)
    if length == 0:
        return start < offset <= end
    if start == end:
        return offset < start < offset + length
    return offset < end and start < offset + length


def _behind_edit(delta: ChangeDelta, side: ChangeSide, offset: int, length: int) -> bool:
    start = delta.start_text_index(side)
    return start >= offset + length if length else start >= offset


def _within(delta: ChangeDelta, side: ChangeSide, first_line: int, last_line: int) -> bool:
    return delta.start_line(side) <= first_line and last_line <= delta.end_line(side)


def _gap_shift(previous: Optional[ChangeDelta], side: ChangeSide) -> tuple[int, int]:
    """Line and text distance between the sides in the unchanged region after a delta."""
    if previous is None:
        return 0, 0
    other = side.other
    return (
        previous.end_line(side) - previous.end_line(other),
        previous.end_text_index(side) - previous.end_text_index(other),
    )


def _keep(delta: ChangeDelta) -> bool:
    """Empty deltas vanish unless they mark an UNDEFINED region."""
    return not delta.is_empty or delta.change_status is ChangeStatus.UNDEFINED
