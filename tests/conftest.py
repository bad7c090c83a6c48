"""Shared fixtures and utilities for delta engine tests."""

from typing import Any, List

import pytest
from PyQt6.QtCore import QCoreApplication

from deltamerge.core.diff.file_diff import FileDiffModel
from deltamerge.core.merge.merge_model import MergeModel
from deltamerge.core.models import ChangeSide, ChangeStatus
from deltamerge.core.text_lines import LineIndex


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Core application for QObject signals and cross-thread delivery."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


class SignalRecorder:
    """Collects every emission of a signal."""

    def __init__(self, signal):
        self.calls: List[Any] = []
        signal.connect(self._record)

    def _record(self, *args):
        self.calls.append(args[0] if len(args) == 1 else args)

    @property
    def count(self) -> int:
        return len(self.calls)

    @property
    def last(self) -> Any:
        return self.calls[-1]


class Helpers:
    """Helper methods for delta tests."""

    @staticmethod
    def lines(*lines: str) -> str:
        """Join lines into a newline-terminated text."""
        return ''.join(f"{line}\n" for line in lines)

    @staticmethod
    def accept_all(model: FileDiffModel) -> int:
        """Accept pending deltas front to back; returns how many were accepted."""
        accepted = 0
        pending = model.snapshot.with_status(ChangeStatus.PENDING)
        while pending:
            model.accept_delta(pending[0])
            accepted += 1
            pending = model.snapshot.with_status(ChangeStatus.PENDING)
        return accepted

    @staticmethod
    def assert_ordered(model: FileDiffModel) -> None:
        """Deltas are sorted, non-overlapping and inside their texts on both sides."""
        for side in (ChangeSide.OLD, ChangeSide.NEW):
            text = model.get_text(side)
            previous = None
            for delta in model.deltas:
                assert 0 <= delta.start_text_index(side) <= delta.end_text_index(side) <= len(text)
                assert delta.start_line(side) <= delta.end_line(side)
                if previous is not None:
                    assert previous.end_text_index(side) <= delta.start_text_index(side)
                    assert previous.end_line(side) <= delta.start_line(side)
                previous = delta

    @staticmethod
    def assert_line_aligned(model: FileDiffModel) -> None:
        """Line and text coordinates of every delta describe the same range."""
        for side in (ChangeSide.OLD, ChangeSide.NEW):
            index = LineIndex(model.get_text(side))
            for delta in model.deltas:
                assert index.offset_of_line(delta.start_line(side)) == delta.start_text_index(side)
                assert index.offset_of_line(delta.end_line(side)) == delta.end_text_index(side)

    @staticmethod
    def assert_gaps_match(model: FileDiffModel) -> None:
        """Text outside the deltas reads the same on both sides."""
        old_text = model.get_text(ChangeSide.OLD)
        new_text = model.get_text(ChangeSide.NEW)
        old_pos = new_pos = 0
        for delta in model.deltas:
            assert old_text[old_pos:delta.start_text_old] == new_text[new_pos:delta.start_text_new]
            old_pos, new_pos = delta.end_text_old, delta.end_text_new
        assert old_text[old_pos:] == new_text[new_pos:]


@pytest.fixture
def helpers():
    """Provide helper methods."""
    return Helpers


@pytest.fixture
def recorder():
    """Factory attaching a SignalRecorder to a signal."""
    return SignalRecorder


@pytest.fixture
def two_change_model(helpers):
    """OLD/NEW pair with a two-line replacement at line 1 and a one-line one at line 3."""
    return FileDiffModel(
        helpers.lines("a", "b", "c", "d"),
        helpers.lines("a", "x", "y", "c", "D"),
    )


@pytest.fixture
def conflict_merge(helpers):
    """Merge where both branches rewrite base line 1 differently."""
    return MergeModel.from_texts(
        helpers.lines("a", "b", "c"),
        helpers.lines("a", "Y", "c"),
        helpers.lines("a", "T", "c"),
    )
