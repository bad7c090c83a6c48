"""Tests for the file pair delta model."""

import random

import pytest

from deltamerge.core.diff.delta_builder import DeltaBuilder
from deltamerge.core.diff.edit_script import EditScriptProvider
from deltamerge.core.diff.file_diff import FileDiffModel, shift_following
from deltamerge.core.errors import DeltaStateError, RangeError, StaleDeltaError
from deltamerge.core.models import (
    ChangeSide,
    ChangeStatus,
    ChangeType,
    ConflictType,
    FileContentInfo,
    LineEnding,
    TextChangeEvent,
)
from deltamerge.services.settings import DiffSettings


OLD = ChangeSide.OLD
NEW = ChangeSide.NEW


@pytest.fixture
def single_model():
    """'b' replaced by 'x' on line 1."""
    return FileDiffModel("a\nb\nc\n", "a\nx\nc\n")


def ranges(delta, side):
    """Line and text range of a delta on one side."""
    return (
        (delta.start_line(side), delta.end_line(side)),
        (delta.start_text_index(side), delta.end_text_index(side)),
    )


class TestConstruction:
    """Test building a model."""

    def test_explicit_script(self):
        """Test a model built from an opcode script."""
        model = FileDiffModel(
            "a\nb\nc\n", "a\nx\nc\n",
            edit_script=[("equal", 0, 1, 0, 1), ("replace", 1, 2, 1, 2), ("equal", 2, 3, 2, 3)]
        )

        assert len(model.deltas) == 1
        assert model.deltas[0].change_type == ChangeType.MODIFY
        assert ranges(model.deltas[0], OLD) == ((1, 2), (2, 4))
        assert ranges(model.deltas[0], NEW) == ((1, 2), (2, 4))
        assert model.version == 0

    def test_computed_script(self, two_change_model, helpers):
        """Test a model diffing its texts itself."""
        d1, d2 = two_change_model.deltas

        assert ranges(d1, OLD) == ((1, 2), (2, 4))
        assert ranges(d1, NEW) == ((1, 3), (2, 6))
        assert ranges(d2, OLD) == ((3, 4), (6, 8))
        assert ranges(d2, NEW) == ((4, 5), (8, 10))
        helpers.assert_line_aligned(two_change_model)

    def test_deltas_read_model_text(self, two_change_model):
        """Test that deltas are attached to their model."""
        d1 = two_change_model.deltas[0]

        assert d1.get_text(OLD) == "b\n"
        assert d1.get_text(NEW) == "x\ny\n"

    def test_prebuilt_deltas(self):
        """Test that deltas from elsewhere get attached."""
        deltas = DeltaBuilder().build("a\n", "b\n", [("replace", 0, 1, 0, 1)])

        model = FileDiffModel("a\n", "b\n", deltas=deltas)

        assert model.deltas[0].get_text(NEW) == "b\n"

    def test_from_settings(self):
        """Test that diff settings reach the provider."""
        model = FileDiffModel.from_settings("A\n", "a\n", DiffSettings(ignore_case=True, word_diff_line_limit=5))

        assert model.deltas == ()
        assert model.word_diff_line_limit == 5
        assert model.provider.options.ignore_case

    def test_get_delta_out_of_range(self, single_model):
        """Test index bounds."""
        with pytest.raises(RangeError):
            single_model.get_delta(1)


class TestAcceptDelta:
    """Test accepting deltas."""

    def test_accept_single(self, single_model):
        """Test that accepting copies the NEW text into OLD."""
        event = single_model.accept_delta(single_model.deltas[0])

        assert single_model.get_text(OLD) == "a\nx\nc\n"
        assert event == TextChangeEvent(2, 2, "x\n", OLD)
        assert single_model.deltas[0].change_status == ChangeStatus.ACCEPTED
        assert single_model.version == 1

    def test_following_delta_shifts_on_old(self, two_change_model, helpers):
        """Test that a longer replacement moves later deltas on OLD only."""
        d1 = two_change_model.deltas[0]

        two_change_model.accept_delta(d1)

        accepted, d2 = two_change_model.deltas
        assert ranges(accepted, OLD) == ((1, 3), (2, 6))
        assert ranges(d2, OLD) == ((4, 5), (8, 10))
        assert ranges(d2, NEW) == ((4, 5), (8, 10))
        assert d2.get_text(OLD) == "d\n"
        helpers.assert_ordered(two_change_model)
        helpers.assert_line_aligned(two_change_model)

    def test_accept_all_makes_texts_equal(self, two_change_model, helpers):
        """Test that accepting every delta reproduces NEW."""
        assert helpers.accept_all(two_change_model) == 2

        assert two_change_model.get_text(OLD) == two_change_model.get_text(NEW)
        helpers.assert_line_aligned(two_change_model)

    def test_accept_in_reverse_order(self, two_change_model):
        """Test that order of acceptance does not matter."""
        two_change_model.accept_delta(two_change_model.deltas[1])
        two_change_model.accept_delta(two_change_model.deltas[0])

        assert two_change_model.get_text(OLD) == "a\nx\ny\nc\nD\n"

    def test_accept_twice_is_noop(self, single_model):
        """Test that accepting an accepted delta changes nothing."""
        single_model.accept_delta(single_model.deltas[0])

        assert single_model.accept_delta(single_model.deltas[0]) is None
        assert single_model.version == 1

    def test_accept_discarded(self, single_model):
        """Test that a discarded delta cannot be accepted."""
        single_model.discard_change(single_model.deltas[0], revert=False)

        with pytest.raises(DeltaStateError):
            single_model.accept_delta(single_model.deltas[0])

    def test_stale_delta(self, two_change_model):
        """Test that a delta from an older version is rejected."""
        d1, d2 = two_change_model.deltas
        two_change_model.accept_delta(d1)

        with pytest.raises(StaleDeltaError):
            two_change_model.accept_delta(d2)

    def test_delta_from_other_model(self, single_model):
        """Test that foreign deltas are stale."""
        other = FileDiffModel("q\n", "r\n")

        with pytest.raises(StaleDeltaError):
            single_model.accept_delta(other.deltas[0])

    def test_add_at_end_of_file(self):
        """Test accepting an appended line."""
        model = FileDiffModel("a\n", "a\nb\n")

        model.accept_delta(model.deltas[0])

        assert model.get_text(OLD) == "a\nb\n"

    def test_missing_final_newline(self):
        """Test that a final newline is carried over."""
        model = FileDiffModel("a\nb", "a\nb\n")

        model.accept_delta(model.deltas[0])

        assert model.get_text(OLD) == "a\nb\n"


class TestDiscardChange:
    """Test discarding deltas."""

    def test_discard_reverts_new(self, two_change_model, helpers):
        """Test that discarding copies the OLD text into NEW."""
        event = two_change_model.discard_change(two_change_model.deltas[0])

        assert event == TextChangeEvent(2, 4, "b\n", NEW)
        assert two_change_model.get_text(NEW) == "a\nb\nc\nD\n"
        d1, d2 = two_change_model.deltas
        assert d1.change_status == ChangeStatus.DISCARDED
        assert ranges(d2, NEW) == ((3, 4), (6, 8))
        assert ranges(d2, OLD) == ((3, 4), (6, 8))
        helpers.assert_line_aligned(two_change_model)

    def test_discard_twice_is_noop(self, two_change_model):
        """Test that a discarded delta stays discarded without a second splice."""
        two_change_model.discard_change(two_change_model.deltas[0])
        version = two_change_model.version

        assert two_change_model.discard_change(two_change_model.deltas[0]) is None
        assert two_change_model.version == version

    def test_discard_without_revert(self, single_model):
        """Test that only the status changes."""
        assert single_model.discard_change(single_model.deltas[0], revert=False) is None

        assert single_model.get_text(NEW) == "a\nx\nc\n"
        assert single_model.deltas[0].change_status == ChangeStatus.DISCARDED

    def test_discard_all_makes_texts_equal(self, two_change_model):
        """Test that discarding every delta reproduces OLD."""
        while two_change_model.snapshot.with_status(ChangeStatus.PENDING):
            two_change_model.discard_change(two_change_model.snapshot.with_status(ChangeStatus.PENDING)[0])

        assert two_change_model.get_text(NEW) == two_change_model.get_text(OLD)

    def test_discard_accepted(self, single_model):
        """Test that an accepted delta cannot be discarded."""
        single_model.accept_delta(single_model.deltas[0])

        with pytest.raises(DeltaStateError):
            single_model.discard_change(single_model.deltas[0])


class TestAppendDelta:
    """Test keeping both texts."""

    def test_append(self, two_change_model, helpers):
        """Test that NEW text is inserted after the OLD range."""
        event = two_change_model.append_delta(two_change_model.deltas[0])

        assert event == TextChangeEvent(4, 0, "x\ny\n", OLD)
        assert two_change_model.get_text(OLD) == "a\nb\nx\ny\nc\nd\n"
        d1, d2 = two_change_model.deltas
        assert d1.change_status == ChangeStatus.ACCEPTED
        assert ranges(d1, OLD) == ((1, 4), (2, 8))
        assert ranges(d2, OLD) == ((5, 6), (10, 12))
        helpers.assert_line_aligned(two_change_model)


class TestStatusAndConflicts:
    """Test status and conflict bookkeeping."""

    def test_set_change_status(self, single_model):
        """Test changing a status without text changes."""
        updated = single_model.set_change_status(single_model.deltas[0], ChangeStatus.UNDEFINED)

        assert single_model.deltas[0] is updated
        assert updated.change_status == ChangeStatus.UNDEFINED
        assert single_model.get_text(OLD) == "a\nb\nc\n"

    def test_mark_conflicts(self, two_change_model):
        """Test setting conflict types in list order."""
        two_change_model.mark_conflicts([ConflictType.NONE, ConflictType.CONFLICTING])

        assert [d.conflict_type for d in two_change_model.deltas] == [ConflictType.NONE, ConflictType.CONFLICTING]

    def test_mark_conflicts_unchanged_keeps_version(self, two_change_model):
        """Test that marking identical types publishes nothing."""
        two_change_model.mark_conflicts([ConflictType.NONE, ConflictType.NONE])

        assert two_change_model.version == 0

    def test_mark_conflicts_wrong_length(self, two_change_model):
        """Test that one type per delta is required."""
        with pytest.raises(RangeError):
            two_change_model.mark_conflicts([ConflictType.NONE])


class TestLiveEdits:
    """Test absorbing edits typed into a text."""

    def test_insert_line_in_unchanged_text(self):
        """Test that inserting a line where both texts agree creates an ADD."""
        model = FileDiffModel("a\nb\nc\n", "a\nb\nc\n")

        model.process_text_event(2, 0, "y\n")

        assert model.get_text(NEW) == "a\ny\nb\nc\n"
        assert len(model.deltas) == 1
        delta = model.deltas[0]
        assert delta.change_type == ChangeType.ADD
        assert ranges(delta, OLD) == ((1, 1), (2, 2))
        assert ranges(delta, NEW) == ((1, 2), (2, 4))

    def test_insert_line_shifts_following(self, helpers):
        """Test that a delta behind the new one moves on NEW."""
        model = FileDiffModel("a\nb\nc\nd\n", "a\nb\nc\nD\n")

        model.process_text_event(2, 0, "y\n")

        added, modified = model.deltas
        assert added.change_type == ChangeType.ADD
        assert ranges(modified, NEW) == ((4, 5), (8, 10))
        assert ranges(modified, OLD) == ((3, 4), (6, 8))
        helpers.assert_ordered(model)
        helpers.assert_line_aligned(model)

    def test_partial_line_edit_in_unchanged_text(self):
        """Test that replacing a character turns its line into a MODIFY."""
        model = FileDiffModel("a\nb\nc\n", "a\nb\nc\n")

        model.process_text_event(2, 1, "q")

        assert len(model.deltas) == 1
        assert model.deltas[0].change_type == ChangeType.MODIFY
        assert ranges(model.deltas[0], NEW) == ((1, 2), (2, 4))
        assert model.deltas[0].get_text(OLD) == "b\n"
        assert model.deltas[0].get_text(NEW) == "q\n"

    def test_edit_inside_delta(self, single_model):
        """Test that typing inside a delta grows it."""
        single_model.process_text_event(3, 0, "yz")

        assert len(single_model.deltas) == 1
        assert single_model.deltas[0].get_text(NEW) == "xyz\n"

    def test_delete_delta_text(self, single_model):
        """Test that deleting a delta's NEW lines leaves a DELETE."""
        single_model.process_text_event(2, 2, "")

        assert single_model.get_text(NEW) == "a\nc\n"
        assert single_model.deltas[0].change_type == ChangeType.DELETE
        assert single_model.deltas[0].get_text(OLD) == "b\n"

    def test_insert_at_delta_start_precedes(self, single_model, helpers):
        """Test that whole lines typed at a delta's first line form their own delta."""
        single_model.process_text_event(2, 0, "q\n")

        added, modified = single_model.deltas
        assert added.change_type == ChangeType.ADD
        assert added.get_text(NEW) == "q\n"
        assert modified.get_text(NEW) == "x\n"
        assert ranges(modified, NEW) == ((2, 3), (4, 6))
        helpers.assert_ordered(single_model)

    def test_insert_at_delta_end_extends(self, single_model):
        """Test that whole lines typed right after a delta join it."""
        single_model.process_text_event(4, 0, "q\n")

        assert len(single_model.deltas) == 1
        assert single_model.deltas[0].get_text(NEW) == "x\nq\n"
        assert ranges(single_model.deltas[0], NEW) == ((1, 3), (2, 6))

    def test_delete_added_lines_removes_delta(self):
        """Test that deleting an ADD's lines removes the delta."""
        model = FileDiffModel("a\nb\n", "a\nx\nb\n")

        model.process_text_event(2, 2, "")

        assert model.deltas == ()
        assert model.get_text(NEW) == "a\nb\n"

    def test_edit_across_deltas_is_undefined(self):
        """Test that an edit spanning two deltas merges them into one UNDEFINED delta."""
        model = FileDiffModel("a\nb\nc\nd\ne\n", "a\nB\nc\nD\ne\n")

        model.process_text_event(3, 4, "")

        assert model.get_text(NEW) == "a\nB\ne\n"
        assert len(model.deltas) == 1
        delta = model.deltas[0]
        assert delta.change_status == ChangeStatus.UNDEFINED
        assert delta.change_type == ChangeType.MODIFY
        assert ranges(delta, NEW) == ((1, 2), (2, 4))
        assert ranges(delta, OLD) == ((1, 4), (2, 8))

    def test_undefined_delta_cannot_be_accepted(self):
        """Test that an UNDEFINED delta needs a rebuild first."""
        model = FileDiffModel("a\nb\nc\nd\ne\n", "a\nB\nc\nD\ne\n")
        model.process_text_event(3, 4, "")

        with pytest.raises(DeltaStateError):
            model.accept_delta(model.deltas[0])

    def test_rebuild_resolves_undefined(self):
        """Test that a rebuild replaces UNDEFINED deltas with a fresh diff."""
        model = FileDiffModel("a\nb\nc\nd\ne\n", "a\nB\nc\nD\ne\n")
        model.process_text_event(3, 4, "")

        model.rebuild()

        assert all(d.change_status == ChangeStatus.PENDING for d in model.deltas)
        expected = DeltaBuilder().build(
            model.get_text(OLD), model.get_text(NEW),
            EditScriptProvider().compute_texts(model.get_text(OLD), model.get_text(NEW))
        )
        assert list(model.deltas) == expected

    def test_edit_on_old_side(self, single_model, helpers):
        """Test absorbing an edit of the OLD text."""
        single_model.process_text_event(0, 0, "z\n", OLD)

        assert single_model.get_text(OLD) == "z\na\nb\nc\n"
        removed, modified = single_model.deltas
        assert removed.change_type == ChangeType.DELETE
        assert ranges(modified, OLD) == ((2, 3), (4, 6))
        helpers.assert_line_aligned(single_model)

    def test_empty_edit(self, single_model):
        """Test that an empty edit publishes nothing."""
        single_model.process_text_event(2, 0, "")

        assert single_model.version == 0

    def test_edit_out_of_range(self, single_model):
        """Test edits past the text end."""
        with pytest.raises(RangeError):
            single_model.process_text_event(5, 2, "x")

    def test_edits_stay_consistent(self, two_change_model, helpers):
        """Test a series of edits keeps coordinates aligned."""
        two_change_model.process_text_event(0, 0, "top\n")
        two_change_model.process_text_event(5, 0, "w")
        two_change_model.process_text_event(len(two_change_model.get_text(NEW)), 0, "end\n")

        helpers.assert_ordered(two_change_model)
        helpers.assert_line_aligned(two_change_model)
        helpers.accept_all(two_change_model)
        assert two_change_model.get_text(OLD) == two_change_model.get_text(NEW)

    def test_delete_final_newline(self, helpers):
        """Test that removing the last line's newline keeps lines and text in step."""
        model = FileDiffModel("a\nb\n", "a\nc\n")

        model.process_text_event(3, 1, "", NEW)

        assert model.get_text(NEW) == "a\nc"
        delta = model.deltas[0]
        assert ranges(delta, NEW) == ((1, 2), (2, 3))
        helpers.assert_line_aligned(model)

        model.process_text_event(3, 0, "\n", NEW)

        assert len(model.deltas) == 1
        assert ranges(model.deltas[0], NEW) == ((1, 2), (2, 4))
        helpers.assert_ordered(model)
        helpers.assert_line_aligned(model)
        helpers.assert_gaps_match(model)

    def test_append_to_unterminated_text(self, helpers):
        """Test edits behind a last line without newline."""
        model = FileDiffModel("a\nb", "a\nb")

        model.process_text_event(3, 0, "x", NEW)
        model.process_text_event(4, 0, "\ny", NEW)

        assert model.get_text(NEW) == "a\nbx\ny"
        assert len(model.deltas) == 1
        assert ranges(model.deltas[0], OLD) == ((1, 2), (2, 3))
        assert ranges(model.deltas[0], NEW) == ((1, 3), (2, 6))
        helpers.assert_line_aligned(model)
        helpers.assert_gaps_match(model)


class TestExternalEdits:
    """Test following edits made through a coupled model."""

    def test_shift_behind_edit(self, two_change_model, helpers):
        """Test that deltas behind an inserted line shift."""
        index_map = two_change_model.apply_external_edit(0, 0, "z\n", OLD)

        assert index_map == [0, 1]
        d1, d2 = two_change_model.deltas
        assert ranges(d1, OLD) == ((2, 3), (4, 6))
        assert ranges(d2, OLD) == ((4, 5), (8, 10))
        assert ranges(d1, NEW) == ((1, 3), (2, 6))
        helpers.assert_line_aligned(two_change_model)

    def test_swallowed_delta_dropped(self):
        """Test that a DELETE whose OLD text is removed disappears."""
        model = FileDiffModel("a\nb\nc\n", "a\nc\n")

        index_map = model.apply_external_edit(2, 2, "", OLD)

        assert index_map == [None]
        assert model.deltas == ()
        assert model.get_text(OLD) == model.get_text(NEW)

    def test_replace_delta_old_text(self, single_model):
        """Test that a delta absorbs a replacement of its OLD text."""
        index_map = single_model.apply_external_edit(2, 2, "x\n", OLD)

        assert index_map == [0]
        assert single_model.deltas[0].get_text(OLD) == "x\n"


    def test_edit_across_delta_start(self, helpers):
        """Test that unchanged lines consumed before a delta join it on both sides."""
        model = FileDiffModel("a\nb\nc\nd\ne\n", "a\nb\nC\nD\ne\n")

        index_map = model.apply_external_edit(2, 4, "X\n", OLD)

        assert index_map == [0]
        delta = model.deltas[0]
        assert delta.change_status == ChangeStatus.PENDING
        assert ranges(delta, OLD) == ((1, 3), (2, 6))
        assert ranges(delta, NEW) == ((1, 4), (2, 8))
        assert delta.get_text(OLD) == "X\nd\n"
        assert delta.get_text(NEW) == "b\nC\nD\n"
        helpers.assert_line_aligned(model)
        helpers.assert_gaps_match(model)

    def test_edit_across_delta_end(self, helpers):
        """Test that unchanged lines consumed behind a delta join it on both sides."""
        model = FileDiffModel("a\nb\nc\nd\ne\n", "a\nb\nC\nD\ne\n")

        model.apply_external_edit(6, 4, "", OLD)

        delta = model.deltas[0]
        assert delta.change_status == ChangeStatus.PENDING
        assert delta.get_text(OLD) == "c\n"
        assert delta.get_text(NEW) == "C\nD\ne\n"
        helpers.assert_line_aligned(model)
        helpers.assert_gaps_match(model)

    def test_edit_swallowing_delta_is_undefined(self, helpers):
        """Test that an edit spanning a delta and more leaves an UNDEFINED region."""
        model = FileDiffModel("a\nb\nc\nd\n", "a\nB\nc\nd\n")

        model.apply_external_edit(0, 6, "z\n", OLD)

        delta = model.deltas[0]
        assert delta.change_status == ChangeStatus.UNDEFINED
        assert delta.get_text(OLD) == "z\n"
        assert delta.get_text(NEW) == "a\nB\nc\n"
        helpers.assert_line_aligned(model)
        helpers.assert_gaps_match(model)

    def test_edit_across_two_deltas(self, helpers):
        """Test that the deltas an edit spans collapse into one UNDEFINED delta."""
        model = FileDiffModel("a\nb\nc\nd\ne\n", "a\nB\nc\nD\ne\n")

        index_map = model.apply_external_edit(3, 4, "", OLD)

        assert index_map == [0, 0]
        assert len(model.deltas) == 1
        delta = model.deltas[0]
        assert delta.change_status == ChangeStatus.UNDEFINED
        assert delta.get_text(NEW) == "B\nc\nD\n"
        helpers.assert_ordered(model)

    def test_consumed_lines_stop_at_neighbour(self, helpers):
        """Test that the other side's range never reaches into the previous delta."""
        model = FileDiffModel("a\nb\nc\nd\n", "A\nb\nc\nD\n")
        model.apply_external_edit(4, 0, "n\n", OLD)
        assert model.get_text(OLD) == "a\nb\nn\nc\nd\n"

        model.apply_external_edit(2, 8, "", OLD)

        assert len(model.deltas) == 2
        helpers.assert_ordered(model)
        helpers.assert_line_aligned(model)
        last = model.deltas[1]
        assert last.change_status == ChangeStatus.UNDEFINED
        assert ranges(last, NEW) == ((1, 4), (2, 8))
        assert last.get_text(OLD) == ""

    def test_external_delete_of_final_newline(self, helpers):
        """Test that lines are derived from the edited text."""
        model = FileDiffModel("a\nb\n", "a\nc\n")

        model.apply_external_edit(3, 1, "", OLD)

        assert ranges(model.deltas[0], OLD) == ((1, 2), (2, 3))
        helpers.assert_line_aligned(model)
    def test_empty_edit(self, two_change_model):
        """Test the identity map for an empty edit."""
        assert two_change_model.apply_external_edit(3, 0, "", OLD) == [0, 1]
        assert two_change_model.version == 0


class TestResetAndSnapshots:
    """Test reset, rebuild and snapshot publication."""

    def test_reset(self, two_change_model):
        """Test that reset returns to the initial deltas and texts."""
        initial = two_change_model.deltas
        two_change_model.accept_delta(initial[0])
        two_change_model.process_text_event(0, 0, "z\n")

        two_change_model.reset()

        assert two_change_model.deltas == initial
        assert two_change_model.get_text(OLD) == "a\nb\nc\nd\n"
        assert two_change_model.get_text(NEW) == "a\nx\ny\nc\nD\n"
        assert two_change_model.version == 3

    def test_reset_emits_text_events(self, single_model, recorder):
        """Test that reset tells text buffers to reload."""
        single_model.accept_delta(single_model.deltas[0])
        texts = recorder(single_model.signals.text_changed)

        single_model.reset()

        assert texts.calls == [TextChangeEvent(0, 6, "a\nb\nc\n", OLD)]

    def test_snapshot_is_immutable(self, single_model):
        """Test that held snapshots keep their view."""
        snapshot = single_model.snapshot

        single_model.accept_delta(single_model.deltas[0])

        assert snapshot.version == 0
        assert snapshot.old_text == "a\nb\nc\n"
        assert snapshot.deltas[0].change_status == ChangeStatus.PENDING
        assert single_model.snapshot.version == 1

    def test_versions_increase(self, two_change_model):
        """Test that every mutation publishes a new version."""
        versions = [two_change_model.version]
        two_change_model.accept_delta(two_change_model.deltas[0])
        versions.append(two_change_model.version)
        two_change_model.discard_change(two_change_model.deltas[1])
        versions.append(two_change_model.version)

        assert versions == [0, 1, 2]

    def test_install_deltas(self, single_model):
        """Test replacing deltas computed elsewhere."""
        single_model.process_text_event(0, 1, "A")
        deltas = DeltaBuilder().build(
            single_model.get_text(OLD), single_model.get_text(NEW),
            EditScriptProvider().compute_texts(single_model.get_text(OLD), single_model.get_text(NEW))
        )

        single_model.install_deltas(deltas)

        assert [d.get_text(NEW) for d in single_model.deltas] == ["A\nx\n"]


class TestSignals:
    """Test observer notifications."""

    def test_accept_signals_in_order(self, single_model):
        """Test that the text splice is announced before the delta list."""
        received = []
        single_model.signals.text_changed.connect(lambda event: received.append(('text', event)))
        single_model.signals.delta_list_changed.connect(lambda deltas: received.append(('deltas', deltas)))

        event = single_model.accept_delta(single_model.deltas[0])

        assert received == [('text', event), ('deltas', single_model.deltas)]

    def test_status_change_has_no_text_event(self, single_model, recorder):
        """Test that status-only changes skip the text signal."""
        texts = recorder(single_model.signals.text_changed)
        lists = recorder(single_model.signals.delta_list_changed)

        single_model.discard_change(single_model.deltas[0], revert=False)

        assert texts.count == 0
        assert lists.count == 1
        assert lists.last == single_model.deltas


class TestExport:
    """Test text export and content info."""

    def test_export_restores_crlf(self):
        """Test that exported text uses the side's line endings."""
        model = FileDiffModel(
            "a\nb\n", "a\nc\n",
            content_info={OLD: FileContentInfo(line_ending=LineEnding.CRLF, encoding='utf-16')}
        )

        assert model.export_text(OLD) == "a\r\nb\r\n"
        assert model.export_text(NEW) == "a\nc\n"
        assert model.get_encoding(OLD) == 'utf-16'
        assert model.get_line_ending(NEW) == LineEnding.LF


class TestShiftFollowing:
    """Test the shared offset propagation."""

    def test_shift_from_index(self, two_change_model):
        """Test that only deltas from the start index move."""
        d1, d2 = two_change_model.deltas

        shifted = shift_following([d1, d2], 1, 2, 5, NEW)

        assert shifted[0] is d1
        assert ranges(shifted[1], NEW) == ((6, 7), (13, 15))
        assert ranges(shifted[1], OLD) == ranges(d2, OLD)


class TestOperationSequences:
    """Test that long mixes of operations keep the delta list consistent."""

    INSERTS = ["", "x", "\n", "y\n", "p\nq\n", "z\nw"]

    @staticmethod
    def random_edit(rng, model):
        """Edit either side anywhere, often at the very end of the text."""
        side = rng.choice([OLD, NEW])
        text = model.get_text(side)
        length = rng.randint(0, min(5, len(text)))
        if rng.random() < 0.25:
            offset = len(text) - length
        else:
            offset = rng.randint(0, len(text) - length)
        model.process_text_event(offset, length, rng.choice(TestOperationSequences.INSERTS), side)

    @pytest.mark.parametrize("seed", range(40))
    def test_accept_discard_and_edit(self, seed, helpers):
        """Test ordering, line alignment and unchanged text after every step."""
        rng = random.Random(seed)
        words = ["a", "b", "c", "d", "e"]
        model = FileDiffModel(
            helpers.lines(*rng.choices(words, k=6)),
            helpers.lines(*rng.choices(words, k=6)),
        )

        for _ in range(30):
            pending = model.snapshot.with_status(ChangeStatus.PENDING)
            action = rng.random()
            if pending and action < 0.2:
                model.accept_delta(rng.choice(pending))
            elif pending and action < 0.35:
                model.discard_change(rng.choice(pending))
            else:
                self.random_edit(rng, model)

            helpers.assert_ordered(model)
            helpers.assert_line_aligned(model)
            helpers.assert_gaps_match(model)

    @pytest.mark.parametrize("seed", range(20))
    def test_edits_at_text_end(self, seed, helpers):
        """Test typing and deleting around the final newline."""
        rng = random.Random(seed)
        model = FileDiffModel("a\nb\nc\n", "a\nB\nc\n")

        for _ in range(20):
            side = rng.choice([OLD, NEW])
            text = model.get_text(side)
            length = rng.randint(0, min(2, len(text)))
            model.process_text_event(len(text) - length, length, rng.choice(["", "\n", "x", "x\n"]), side)

            helpers.assert_ordered(model)
            helpers.assert_line_aligned(model)
            helpers.assert_gaps_match(model)
