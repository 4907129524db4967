"""
Review Queue

Human review of captures the router did not file. Operates on captures with
needs_review=True, newest first.

Resolutions:
- skip: leave the capture unfiled, permanently
- accept: file under the suggested (or a reassigned) category
- discard: delete the capture and its queue item

ReviewSession holds a reviewer's selection and unsaved edits in memory only.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from ..common.errors import AlreadyResolved, BrainError, ValidationFailed
from ..common.schemas import Capture, Category, DestinationRef, parse_category, validate_raw_text
from .capture_log import CaptureLog
from .correction import CorrectionWorkflow
from .intake_queue import IntakeItem, IntakeQueue
from .materializer import Materializer

logger = logging.getLogger("brain.intake.review_queue")


@dataclass
class ItemResult:
    """Per-item outcome of a batch operation"""
    id: str
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "ok": self.ok, "error": self.error}


@dataclass
class PendingCapture:
    """A capture awaiting review together with its queue item (if any)"""
    capture: Capture
    item: Optional[IntakeItem] = None

    @property
    def id(self) -> str:
        return self.capture.id

    @property
    def suggested_fields(self) -> Dict[str, Any]:
        return dict(self.item.fields) if self.item else {}

    def to_dict(self) -> Dict[str, Any]:
        data = self.capture.to_dict()
        data["suggested_fields"] = self.suggested_fields
        data["reason"] = self.item.reason.value if self.item else None
        return data


class ReviewQueue:
    def __init__(
        self,
        capture_log: CaptureLog,
        intake_queue: IntakeQueue,
        materializer: Materializer,
        correction: CorrectionWorkflow,
    ):
        self._captures = capture_log
        self._queue = intake_queue
        self._materializer = materializer
        self._correction = correction

    def pending(self) -> List[PendingCapture]:
        return [PendingCapture(capture, self._queue.get(capture.id)) for capture in self._captures.pending()]

    def get(self, capture_id: str) -> PendingCapture:
        capture = self._captures.get(capture_id)
        return PendingCapture(capture, self._queue.get(capture_id))

    def skip(self, capture_id: str) -> Capture:
        """
        Dismiss a capture without filing it. Terminal.

        Raises:
            NotFound: no such capture
            AlreadyResolved: the capture is not awaiting review
        """
        capture = self._captures.resolve(
            capture_id,
            expected={"needs_review": True},
            needs_review=False,
        )
        self._queue.remove(capture_id)
        logger.info("Skipped capture %s", capture_id)
        return capture

    def batch_skip(self, capture_ids: Iterable[str]) -> List[ItemResult]:
        """Skip each id independently; failures are reported, not rolled back"""
        results = []
        for capture_id in capture_ids:
            try:
                self.skip(capture_id)
            except (BrainError, OSError) as e:
                logger.warning("Batch skip: %s failed: %s", capture_id, e)
                results.append(ItemResult(id=capture_id, ok=False, error=str(e)))
            else:
                results.append(ItemResult(id=capture_id, ok=True))
        return results

    def accept(
        self,
        capture_id: str,
        category=None,
        fields: Optional[Dict[str, Any]] = None,
        text: Optional[str] = None,
    ) -> DestinationRef:
        """
        File a queued capture.

        The suggested fields are merged with `fields`. Choosing a category other
        than the suggestion is a correction and is recorded as one.

        Raises:
            ValidationFailed: no category to file under, or bad fields
            NotFound: no such capture
            AlreadyResolved: the capture is not awaiting review
            MaterializationFailed: the record could not be created
        """
        pending = self.get(capture_id)
        capture = pending.capture
        if not capture.needs_review:
            raise AlreadyResolved(capture_id)

        suggested = capture.classified_category
        chosen = parse_category(category) if category else suggested
        if chosen is None:
            raise ValidationFailed(f"Capture {capture_id} has no suggested category; choose one")

        merged = {**pending.suggested_fields, **(fields or {})}

        if chosen != suggested:
            note = f"Reassigned from {suggested.value if suggested else 'unclassified'} to {chosen.value} during review"
            return self._correction.correct(capture_id, chosen, fields=merged, note=note, text=text)

        source_text = validate_raw_text(text) if text is not None else capture.raw_text
        ref = self._materializer.materialize_fields(chosen, merged, text=source_text, prefill_title=True)
        try:
            self._captures.resolve(
                capture_id,
                expected={"needs_review": True},
                needs_review=False,
                destination_table=ref.table,
                destination_id=ref.id,
            )
        except AlreadyResolved:
            logger.warning(
                "Capture %s was resolved concurrently; %s/%s created for it is unreferenced",
                capture_id, ref.table, ref.id,
            )
            raise
        self._queue.remove(capture_id)
        logger.info("Accepted capture %s as %s -> %s/%s", capture_id, chosen.value, ref.table, ref.id)
        return ref

    def discard(self, capture_id: str) -> None:
        """
        Delete a queued capture and its queue item.

        Raises:
            NotFound: no such capture
            AlreadyResolved: the capture was filed, skipped or discarded first
        """
        if not self._captures.delete(capture_id, expected={"needs_review": True}):
            raise AlreadyResolved(capture_id)
        self._queue.remove(capture_id)
        logger.info("Discarded capture %s", capture_id)

    def stats(self) -> Dict[str, Any]:
        pending = self.pending()
        by_reason: Dict[str, int] = {}
        by_category: Dict[str, int] = {}
        for entry in pending:
            reason = entry.item.reason.value if entry.item else "unknown"
            by_reason[reason] = by_reason.get(reason, 0) + 1
            category = entry.capture.classified_category
            key = category.value if category else "unclassified"
            by_category[key] = by_category.get(key, 0) + 1
        return {"pending": len(pending), "by_reason": by_reason, "by_category": by_category}

    def format_for_review(self, entry: PendingCapture) -> str:
        """Format a pending capture for terminal display"""
        capture = entry.capture
        category = capture.classified_category.value if capture.classified_category else "unclassified"
        confidence = capture.confidence_score
        lines = [
            "=" * 60,
            f"CAPTURE: {capture.id}",
            f"Suggested: {category} "
            f"(confidence: {'n/a' if confidence is None else f'{confidence:.2f}'}, {capture.band.value})",
            f"Created: {capture.created_at.isoformat()}",
            f"Reason: {entry.item.reason.value if entry.item else 'n/a'}",
            "-" * 60,
            capture.raw_text[:500],
        ]
        if entry.suggested_fields:
            lines.append("-" * 60)
            for key, value in entry.suggested_fields.items():
                lines.append(f"  {key}: {str(value)[:100]}")
        lines.append("=" * 60)
        return "\n".join(lines)


@dataclass
class ReviewSession:
    """
    A reviewer's working state: which captures are selected and which have an
    unsaved category reassignment or text edit. Never touches storage.
    """
    selected: Set[str] = field(default_factory=set)
    categories: Dict[str, Category] = field(default_factory=dict)
    texts: Dict[str, str] = field(default_factory=dict)

    def select(self, capture_id: str) -> None:
        self.selected.add(capture_id)

    def deselect(self, capture_id: str) -> None:
        self.selected.discard(capture_id)

    def toggle(self, capture_id: str) -> bool:
        """Returns whether the capture is selected afterwards"""
        if capture_id in self.selected:
            self.selected.discard(capture_id)
            return False
        self.selected.add(capture_id)
        return True

    def select_all(self, capture_ids: Iterable[str]) -> None:
        self.selected.update(capture_ids)

    def clear(self) -> None:
        self.selected.clear()

    def is_selected(self, capture_id: str) -> bool:
        return capture_id in self.selected

    def reassign(self, capture_id: str, category) -> Category:
        chosen = parse_category(category)
        self.categories[capture_id] = chosen
        return chosen

    def edit_text(self, capture_id: str, text: str) -> str:
        cleaned = validate_raw_text(text)
        self.texts[capture_id] = cleaned
        return cleaned

    def category_for(self, capture_id: str, default: Optional[Category] = None) -> Optional[Category]:
        return self.categories.get(capture_id, default)

    def text_for(self, capture_id: str, default: Optional[str] = None) -> Optional[str]:
        return self.texts.get(capture_id, default)

    def forget(self, capture_ids: Iterable[str]) -> None:
        """Drop all state for captures that have been resolved"""
        for capture_id in capture_ids:
            self.selected.discard(capture_id)
            self.categories.pop(capture_id, None)
            self.texts.pop(capture_id, None)
