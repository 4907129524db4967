"""Tests for the Correction Workflow."""

import logging
import pytest
from unittest.mock import patch


@pytest.fixture
def filed_id(pipeline, classifier):
    classifier.push({"type": "task", "confidence": 0.9, "task_name": "Gym at 7"})
    return pipeline.router.ingest("Gym at 7").capture_id


@pytest.fixture
def pending_id(pipeline, classifier):
    classifier.push({"type": "person", "confidence": 0.4, "contact_name": "Dana", "context": "climbing"})
    return pipeline.router.ingest("Dana, climbing partner").capture_id


class TestCorrect:
    def test_correct_auto_filed(self, pipeline, filed_id, store):
        original = pipeline.captures.get(filed_id)

        ref = pipeline.correction.correct(filed_id, "health", note="Workout, not a task")

        capture = pipeline.captures.get(filed_id)
        assert ref.table == "health_entries"
        assert capture.corrected is True
        assert capture.needs_review is False
        assert capture.correction_note == "Workout, not a task"
        assert capture.classified_category.value == "health"
        assert capture.destination_table == "health_entries"
        assert capture.destination_id == ref.id
        assert capture.raw_text == original.raw_text
        assert capture.confidence_score == original.confidence_score
        assert store.get("health_entries", ref.id)["details"] == "Gym at 7"

    def test_previous_record_left_in_place(self, pipeline, filed_id, store):
        old = pipeline.captures.get(filed_id).destination_id
        pipeline.correction.correct(filed_id, "health", note="Workout")
        assert store.get("tasks", old) is not None

    def test_correct_pending_merges_suggestion(self, pipeline, pending_id, store):
        ref = pipeline.correction.correct(pending_id, "person", fields={"follow_up": "next week"}, note="confirmed")

        row = store.get("contacts", ref.id)
        assert row["name"] == "Dana"
        assert row["context"] == "climbing"
        assert row["follow_up"] == "next week"
        assert pipeline.intake.get(pending_id) is None

    def test_explicit_fields_win(self, pipeline, pending_id, store):
        ref = pipeline.correction.correct(pending_id, "person", fields={"contact_name": "Dana K."}, note="full name")
        assert store.get("contacts", ref.id)["name"] == "Dana K."

    def test_edited_text_fills_record_only(self, pipeline, filed_id, store):
        ref = pipeline.correction.correct(filed_id, "learning", note="insight", text="Morning workouts stick")
        row = store.get("learning_insights", ref.id)
        assert row["title"] == "Morning workouts stick"
        assert pipeline.captures.get(filed_id).raw_text == "Gym at 7"

    def test_category_alias(self, pipeline, filed_id):
        ref = pipeline.correction.correct(filed_id, "idea", note="it was an idea")
        assert ref.table == "learning_insights"

    def test_logged(self, pipeline, filed_id, caplog):
        with caplog.at_level(logging.INFO, logger="brain.intake.correction"):
            pipeline.correction.correct(filed_id, "health", note="Workout")
        assert "task -> health" in caplog.text


class TestRejections:
    @pytest.mark.parametrize("note", ["", "   ", None])
    def test_note_required(self, pipeline, filed_id, note):
        from brain.common.errors import ValidationFailed
        with pytest.raises(ValidationFailed, match="note"):
            pipeline.correction.correct(filed_id, "health", note=note)
        assert pipeline.captures.get(filed_id).corrected is False

    def test_unknown_category(self, pipeline, filed_id):
        from brain.common.errors import ValidationFailed
        with pytest.raises(ValidationFailed):
            pipeline.correction.correct(filed_id, "recipe", note="x")

    def test_empty_edited_text(self, pipeline, filed_id):
        from brain.common.errors import ValidationFailed
        with pytest.raises(ValidationFailed):
            pipeline.correction.correct(filed_id, "health", note="x", text="  ")

    def test_missing_capture(self, pipeline):
        from brain.common.errors import NotFound
        with pytest.raises(NotFound):
            pipeline.correction.correct("missing", "task", note="x")

    def test_only_once(self, pipeline, filed_id):
        from brain.common.errors import AlreadyResolved
        pipeline.correction.correct(filed_id, "health", note="Workout")
        with pytest.raises(AlreadyResolved):
            pipeline.correction.correct(filed_id, "task", note="no, a task after all")

    def test_bad_fields_write_nothing(self, pipeline, pending_id, store):
        from brain.common.errors import ValidationFailed
        with pytest.raises(ValidationFailed):
            pipeline.correction.correct(pending_id, "person", fields={"tags": 5}, note="x")
        assert store.select("contacts") == []
        assert pipeline.captures.get(pending_id).needs_review is True

    def test_blank_title_filled_from_text(self, pipeline, pending_id, store):
        ref = pipeline.correction.correct(pending_id, "project", fields={"project_name": ""}, note="a project")
        assert store.get("projects", ref.id)["name"] == "Dana, climbing partner"

    def test_lost_race_logs_orphan(self, pipeline, pending_id, store, caplog):
        from brain.common.errors import AlreadyResolved
        with patch.object(store, "compare_and_update", return_value=False):
            with pytest.raises(AlreadyResolved):
                pipeline.correction.correct(pending_id, "person", note="confirmed")
        assert "unreferenced" in caplog.text
        assert len(store.select("contacts")) == 1
        assert pipeline.intake.get(pending_id) is not None

    def test_is_correctable(self):
        from brain.common.schemas import Capture
        from brain.intake.correction import CorrectionWorkflow
        assert CorrectionWorkflow.is_correctable(Capture(raw_text="x"))
        assert CorrectionWorkflow.is_correctable(
            Capture(raw_text="x", needs_review=False, destination_table="tasks", destination_id="t")
        )
        assert not CorrectionWorkflow.is_correctable(Capture(raw_text="x", needs_review=False))
        assert not CorrectionWorkflow.is_correctable(
            Capture(raw_text="x", needs_review=False, corrected=True, correction_note="n")
        )
