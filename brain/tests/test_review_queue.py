"""
Tests for the Review Queue

Skip, batch skip, accept (as suggested or reassigned), discard, and the
in-memory ReviewSession.
"""

import pytest
from unittest.mock import patch


@pytest.fixture
def queued(pipeline, classifier):
    """Three captures queued for review, oldest first"""
    classifier.push({"type": "task", "confidence": 0.5, "task_name": "Book venue", "suggested_project": "Launch"})
    classifier.push({"type": "person", "confidence": 0.6, "contact_name": "Dana"})
    classifier.push({"type": "learning", "confidence": 0.3})
    return [
        pipeline.router.ingest("book a venue for the launch").capture_id,
        pipeline.router.ingest("Dana from the climbing gym").capture_id,
        pipeline.router.ingest("batch small writes").capture_id,
    ]


class TestPending:
    def test_newest_first_with_fields(self, pipeline, queued):
        pending = pipeline.review.pending()
        assert [p.id for p in pending] == list(reversed(queued))
        assert pending[-1].suggested_fields["task_name"] == "Book venue"
        assert pending[-1].to_dict()["reason"] == "low_confidence"

    def test_stats(self, pipeline, queued):
        stats = pipeline.review.stats()
        assert stats["pending"] == 3
        assert stats["by_reason"] == {"low_confidence": 3}
        assert stats["by_category"] == {"task": 1, "person": 1, "learning": 1}

    def test_format_for_review(self, pipeline, queued):
        text = pipeline.review.format_for_review(pipeline.review.get(queued[0]))
        assert "Suggested: task (confidence: 0.50, low)" in text
        assert "task_name: Book venue" in text


class TestSkip:
    def test_skip_is_terminal(self, pipeline, queued):
        from brain.common.errors import AlreadyResolved
        capture = pipeline.review.skip(queued[0])

        assert capture.needs_review is False
        assert capture.destination_id is None
        assert capture.corrected is False
        assert pipeline.intake.get(queued[0]) is None
        assert queued[0] not in [p.id for p in pipeline.review.pending()]
        with pytest.raises(AlreadyResolved):
            pipeline.review.skip(queued[0])

    def test_skipped_capture_cannot_be_corrected(self, pipeline, queued):
        from brain.common.errors import AlreadyResolved
        pipeline.review.skip(queued[0])
        with pytest.raises(AlreadyResolved):
            pipeline.correction.correct(queued[0], "task", note="changed my mind")

    def test_batch_skip_partial_failure(self, pipeline, queued, caplog):
        from brain.common.errors import ValidationFailed
        original = pipeline.captures.resolve

        def flaky(capture_id, **kwargs):
            if capture_id == queued[1]:
                raise ValidationFailed("store rejected the update")
            return original(capture_id, **kwargs)

        with patch.object(pipeline.captures, "resolve", side_effect=flaky):
            results = pipeline.review.batch_skip(queued)

        assert [r.ok for r in results] == [True, False, True]
        assert "rejected" in results[1].error
        assert pipeline.captures.get(queued[0]).needs_review is False
        assert pipeline.captures.get(queued[1]).needs_review is True
        assert pipeline.captures.get(queued[2]).needs_review is False
        assert "Batch skip" in caplog.text

    def test_batch_skip_unknown_id(self, pipeline, queued):
        results = pipeline.review.batch_skip([queued[0], "missing"])
        assert [r.to_dict()["ok"] for r in results] == [True, False]


class TestAccept:
    def test_accept_as_suggested(self, pipeline, queued, store):
        ref = pipeline.review.accept(queued[0])

        capture = pipeline.captures.get(queued[0])
        assert capture.needs_review is False
        assert capture.corrected is False
        assert capture.destination_id == ref.id
        task = store.get("tasks", ref.id)
        assert task["name"] == "Book venue"
        assert store.get("projects", task["project_id"])["name"] == "Launch"
        assert pipeline.intake.get(queued[0]) is None

    def test_accept_fills_title_from_text(self, pipeline, queued, store):
        ref = pipeline.review.accept(queued[2])
        row = store.get("learning_insights", ref.id)
        assert row["title"] == "batch small writes"
        assert row["key_insight"] == "batch small writes"

    def test_accept_with_edited_text(self, pipeline, queued, store):
        ref = pipeline.review.accept(queued[2], text="  Batch writes under load ")
        assert store.get("learning_insights", ref.id)["title"] == "Batch writes under load"
        assert pipeline.captures.get(queued[2]).raw_text == "batch small writes"

    def test_accept_with_field_override(self, pipeline, queued, store):
        ref = pipeline.review.accept(queued[0], fields={"priority": 1})
        assert store.get("tasks", ref.id)["is_top_priority"] is True

    def test_accept_reassigned_is_correction(self, pipeline, queued, store):
        ref = pipeline.review.accept(queued[1], category="task")

        capture = pipeline.captures.get(queued[1])
        assert ref.table == "tasks"
        assert capture.corrected is True
        assert capture.classified_category.value == "task"
        assert capture.correction_note == "Reassigned from person to task during review"
        assert store.get("tasks", ref.id)["name"] == "Dana from the climbing gym"

    def test_accept_unclassified_requires_category(self, pipeline, classifier, unavailable):
        from brain.common.errors import ValidationFailed
        classifier.push(unavailable)
        capture_id = pipeline.router.ingest("call the plumber").capture_id

        with pytest.raises(ValidationFailed):
            pipeline.review.accept(capture_id)

        ref = pipeline.review.accept(capture_id, category="task")
        capture = pipeline.captures.get(capture_id)
        assert ref.table == "tasks"
        assert capture.correction_note == "Reassigned from unclassified to task during review"

    def test_accept_twice(self, pipeline, queued):
        from brain.common.errors import AlreadyResolved
        pipeline.review.accept(queued[0])
        with pytest.raises(AlreadyResolved):
            pipeline.review.accept(queued[0])

    def test_failed_materialization_leaves_capture_pending(self, pipeline, queued):
        from brain.common.errors import MaterializationFailed
        with patch.object(pipeline.store, "insert", side_effect=OSError("disk full")):
            with pytest.raises(MaterializationFailed):
                pipeline.review.accept(queued[1])
        assert pipeline.captures.get(queued[1]).needs_review is True
        assert pipeline.intake.get(queued[1]) is not None


class TestDiscard:
    def test_discard(self, pipeline, queued, store):
        pipeline.review.discard(queued[0])
        assert pipeline.captures.find(queued[0]) is None
        assert pipeline.intake.get(queued[0]) is None
        assert store.select("tasks") == []

    def test_discard_filed_capture_refused(self, pipeline, queued):
        from brain.common.errors import AlreadyResolved
        pipeline.review.accept(queued[0])
        with pytest.raises(AlreadyResolved):
            pipeline.review.discard(queued[0])

    def test_discard_loses_race_to_concurrent_resolve(self, pipeline, queued, store):
        from brain.common.errors import AlreadyResolved
        with patch.object(store, "delete_if", return_value=False):
            with pytest.raises(AlreadyResolved):
                pipeline.review.discard(queued[0])

        assert pipeline.captures.find(queued[0]) is not None
        assert pipeline.intake.get(queued[0]) is not None

    def test_discard_missing(self, pipeline):
        from brain.common.errors import NotFound
        with pytest.raises(NotFound):
            pipeline.review.discard("missing")


class TestReviewSession:
    def test_selection(self):
        from brain.intake.review_queue import ReviewSession
        session = ReviewSession()

        assert session.toggle("a") is True
        assert session.toggle("a") is False
        session.select_all(["a", "b", "c"])
        session.deselect("b")
        assert session.selected == {"a", "c"}
        assert session.is_selected("c")
        session.clear()
        assert session.selected == set()

    def test_edits_stay_in_memory(self, pipeline, queued):
        from brain.intake.review_queue import ReviewSession
        session = ReviewSession()

        session.reassign(queued[0], "people")
        session.edit_text(queued[0], "  edited  ")

        assert session.category_for(queued[0]).value == "person"
        assert session.text_for(queued[0]) == "edited"
        assert pipeline.captures.get(queued[0]).raw_text == "book a venue for the launch"

    def test_invalid_edits(self):
        from brain.common.errors import ValidationFailed
        from brain.intake.review_queue import ReviewSession
        session = ReviewSession()
        with pytest.raises(ValidationFailed):
            session.reassign("a", "recipe")
        with pytest.raises(ValidationFailed):
            session.edit_text("a", "   ")
        assert session.category_for("a") is None

    def test_forget(self):
        from brain.intake.review_queue import ReviewSession
        session = ReviewSession()
        session.select("a")
        session.reassign("a", "task")
        session.edit_text("a", "x")
        session.forget(["a"])
        assert not session.is_selected("a")
        assert session.category_for("a") is None
        assert session.text_for("a") is None
