"""
Correction Workflow

A human overrides the category (and fields) of a capture that is awaiting
review or was filed automatically. The capture keeps its original text and
confidence; it gains the new destination, corrected=True and the reviewer's
note. A record created for an earlier filing is left in place.
"""

import logging
from typing import Any, Dict, Optional

from ..common.errors import AlreadyResolved, ValidationFailed
from ..common.schemas import Capture, DestinationRef, parse_category, validate_raw_text
from .capture_log import CaptureLog
from .intake_queue import IntakeQueue
from .materializer import Materializer

logger = logging.getLogger("brain.intake.correction")


class CorrectionWorkflow:
    def __init__(self, capture_log: CaptureLog, intake_queue: IntakeQueue, materializer: Materializer):
        self._captures = capture_log
        self._queue = intake_queue
        self._materializer = materializer

    @staticmethod
    def is_correctable(capture: Capture) -> bool:
        """Awaiting review, or filed without a previous correction"""
        return capture.needs_review or capture.is_auto_filed

    def correct(
        self,
        capture_id: str,
        new_category,
        fields: Optional[Dict[str, Any]] = None,
        note: str = "",
        text: Optional[str] = None,
    ) -> DestinationRef:
        """
        Re-file a capture under `new_category`.

        Args:
            capture_id: Capture to correct
            new_category: Category name (aliases accepted)
            fields: Field values for the new record; for a capture still in the
                queue they are merged over the classifier's suggestion
            note: Why the classification was wrong (required)
            text: Edited text used in place of the raw text when filling the
                record; the capture's raw text is not changed

        Returns:
            Reference to the newly created record

        Raises:
            ValidationFailed: missing note, unknown category or bad fields
            NotFound: no such capture
            AlreadyResolved: skipped, already corrected, or resolved concurrently
            MaterializationFailed: the record could not be created
        """
        note = (note or "").strip()
        if not note:
            raise ValidationFailed("A correction note is required")
        category = parse_category(new_category)
        source_text = validate_raw_text(text) if text is not None else None

        capture = self._captures.get(capture_id)
        if not self.is_correctable(capture):
            raise AlreadyResolved(capture_id)

        merged: Dict[str, Any] = {}
        if capture.needs_review:
            item = self._queue.get(capture_id)
            if item is not None:
                merged.update(item.fields)
        merged.update(fields or {})

        ref = self._materializer.materialize_fields(
            category,
            merged,
            text=source_text or capture.raw_text,
            prefill_title=True,
        )

        expected = {
            "needs_review": capture.needs_review,
            "corrected": False,
            "destination_id": capture.destination_id,
        }
        try:
            self._captures.resolve(
                capture_id,
                expected=expected,
                classified_category=category.value,
                destination_table=ref.table,
                destination_id=ref.id,
                needs_review=False,
                corrected=True,
                correction_note=note,
            )
        except AlreadyResolved:
            logger.warning(
                "Capture %s was resolved concurrently; %s/%s created for it is unreferenced",
                capture_id, ref.table, ref.id,
            )
            raise

        self._queue.remove(capture_id)
        logger.info(
            "Corrected capture %s: %s -> %s",
            capture_id,
            capture.classified_category.value if capture.classified_category else "unclassified",
            category.value,
        )
        return ref
