"""
Line bookkeeping for newline-normalized text.

A text's lines are its newline-terminated pieces plus a trailing
unterminated piece, if any: "a\\nb" has two lines, "a\\n" one and ""
none. The position one past the last line is the text length.
"""

from __future__ import annotations

from bisect import bisect_right

from deltamerge.core.errors import RangeError


def split_lines(text: str) -> list[str]:
    """Split text into lines, keeping the newline on each line."""
    parts = text.split('\n')
    lines = [part + '\n' for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


class LineIndex:
    """Start offsets of every line of a text."""

    def __init__(self, text: str):
        self.text = text
        self.starts: list[int] = [0] if text else []
        pos = text.find('\n')
        while pos != -1 and pos + 1 < len(text):
            self.starts.append(pos + 1)
            pos = text.find('\n', pos + 1)

    @property
    def line_count(self) -> int:
        return len(self.starts)

    def offset_of_line(self, line: int) -> int:
        """Character offset where a line starts; the text length for line_count."""
        if line < 0 or line > self.line_count:
            raise RangeError(
                f"Line {line} outside [0, {self.line_count}]",
                {'line': line, 'line_count': self.line_count}
            )
        if line == self.line_count:
            return len(self.text)
        return self.starts[line]

    def line_at(self, offset: int) -> int:
        """
        Index of the line containing an offset.

        The end of a newline-terminated (or empty) text belongs to the
        virtual line ``line_count``.
        """
        if offset < 0 or offset > len(self.text):
            raise RangeError(
                f"Offset {offset} outside [0, {len(self.text)}]",
                {'offset': offset, 'length': len(self.text)}
            )
        if offset == len(self.text) and (not self.text or self.text.endswith('\n')):
            return self.line_count
        return bisect_right(self.starts, offset) - 1

    def is_line_start(self, offset: int) -> bool:
        return self.offset_of_line(self.line_at(offset)) == offset

    def text_of_lines(self, start_line: int, end_line: int) -> str:
        return self.text[self.offset_of_line(start_line):self.offset_of_line(end_line)]

    def line_range(self, start: int, end: int) -> tuple[int, int]:
        """
        Lines (end-exclusive) covering the character range [start, end).

        A range starting or ending inside a line takes that whole line; an
        empty range maps to an empty line range.
        """
        first = self.line_count if start == len(self.text) else self.line_at(start)
        if end <= start:
            return first, first
        if end == len(self.text):
            return first, self.line_count
        last = self.line_at(end)
        return first, last if self.starts[last] == end else last + 1
