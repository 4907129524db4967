"""
Triage Router

Decides, per capture, whether the classification is good enough to file
automatically or whether a human has to look at it. Every ingestion writes
exactly one capture row, whatever the classifier or the materializer does.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..common.errors import ClassificationUnavailable, MaterializationFailed, ValidationFailed
from ..common.schemas import Capture, DestinationRef, build_payload, missing_required_fields, validate_raw_text
from .capture_log import CaptureLog
from .classifier import Classification, Classifier
from .intake_queue import IntakeQueue, QueueReason
from .materializer import Materializer

logger = logging.getLogger("brain.intake.router")

DEFAULT_REVIEW_THRESHOLD = 0.8


class RouteStatus(str, Enum):
    FILED = "Filed"
    QUEUED = "Queued"


@dataclass
class RouteResult:
    """Outcome of routing one capture"""
    status: RouteStatus
    capture_id: str
    destination: Optional[DestinationRef] = None
    reason: Optional[QueueReason] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "capture_id": self.capture_id,
            "destination": self.destination.to_dict() if self.destination else None,
            "reason": self.reason.value if self.reason else None,
        }


class TriageRouter:
    """
    Routing policy:
    - confidence >= threshold and required fields present: materialize, file
    - otherwise: capture needs review, suggested fields kept in the intake queue
    """

    def __init__(
        self,
        capture_log: CaptureLog,
        intake_queue: IntakeQueue,
        materializer: Materializer,
        classifier: Optional[Classifier] = None,
        review_threshold: float = DEFAULT_REVIEW_THRESHOLD,
        user_id: Optional[str] = None,
    ):
        self._captures = capture_log
        self._queue = intake_queue
        self._materializer = materializer
        self._classifier = classifier
        self._threshold = review_threshold
        self._user_id = user_id or None

    @property
    def review_threshold(self) -> float:
        return self._threshold

    def ingest(self, raw_text: str) -> RouteResult:
        """
        Validate, classify and route one capture.

        Raises:
            ValidationFailed: empty or oversized text (nothing is written)
        """
        text = validate_raw_text(raw_text)

        if self._classifier is None:
            return self._queue_unclassified(text, "no classifier configured")
        try:
            classification = self._classifier.classify(text)
        except ClassificationUnavailable as e:
            return self._queue_unclassified(text, str(e))
        except Exception as e:
            logger.exception("Classifier raised unexpectedly")
            return self._queue_unclassified(text, f"classifier error: {e}")

        return self.route(text, classification)

    def route(self, raw_text: str, classification: Classification) -> RouteResult:
        text = validate_raw_text(raw_text)
        category = classification.category
        confidence = classification.confidence
        fields = classification.fields

        capture = Capture(
            user_id=self._user_id,
            raw_text=text,
            classified_category=category,
            confidence_score=confidence,
        )

        if category is None or confidence < self._threshold:
            return self._enqueue(capture, QueueReason.LOW_CONFIDENCE, fields)

        missing = missing_required_fields(category, fields)
        if missing:
            return self._enqueue(capture, QueueReason.MISSING_FIELDS, fields, f"missing {', '.join(missing)}")

        try:
            payload = build_payload(category, fields, text=text)
        except ValidationFailed as e:
            return self._enqueue(capture, QueueReason.MISSING_FIELDS, fields, str(e))

        try:
            ref = self._materializer.materialize(payload)
        except MaterializationFailed as e:
            logger.warning("Materialization failed for %s capture, queueing for review: %s", category.value, e)
            return self._enqueue(capture, QueueReason.MATERIALIZATION_FAILED, fields, e.reason)

        filed = capture.model_copy(update={
            "needs_review": False,
            "destination_table": ref.table,
            "destination_id": ref.id,
        })
        self._captures.append(filed)
        logger.info(
            "Filed capture %s as %s (confidence=%.2f) -> %s/%s",
            filed.id, category.value, confidence, ref.table, ref.id,
        )
        return RouteResult(status=RouteStatus.FILED, capture_id=filed.id, destination=ref)

    def _queue_unclassified(self, text: str, detail: str) -> RouteResult:
        logger.warning("Classifier unavailable, queueing capture unclassified: %s", detail)
        capture = Capture(user_id=self._user_id, raw_text=text)
        return self._enqueue(capture, QueueReason.CLASSIFICATION_UNAVAILABLE, {}, detail)

    def _enqueue(
        self,
        capture: Capture,
        reason: QueueReason,
        fields: Dict[str, Any],
        detail: Optional[str] = None,
    ) -> RouteResult:
        stored = self._captures.append(capture)
        self._queue.enqueue(stored, reason, fields, detail)
        return RouteResult(status=RouteStatus.QUEUED, capture_id=stored.id, reason=reason)
