"""
Intake Queue

Pending items awaiting a human decision. Each item mirrors a capture that was
not filed automatically and keeps the classifier's suggested fields so a
reviewer can retry filing without re-classifying.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..common.schemas import Capture, Category

logger = logging.getLogger("brain.intake.intake_queue")


class QueueReason(str, Enum):
    """Why an item was routed to review"""
    LOW_CONFIDENCE = "low_confidence"
    MISSING_FIELDS = "missing_fields"
    MATERIALIZATION_FAILED = "materialization_failed"
    CLASSIFICATION_UNAVAILABLE = "classification_unavailable"


class IntakeItem(BaseModel):
    id: str
    capture_id: str
    user_id: Optional[str] = None
    raw_text: str
    suggested_category: Optional[Category] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    reason: QueueReason
    detail: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class IntakeQueue:
    """Items keyed by their capture id in the "intake_items" table"""

    TABLE = "intake_items"

    def __init__(self, store, user_id: Optional[str] = None):
        self._store = store
        self._user_id = user_id or None

    def enqueue(
        self,
        capture: Capture,
        reason: QueueReason,
        fields: Optional[Dict[str, Any]] = None,
        detail: Optional[str] = None,
    ) -> IntakeItem:
        item = IntakeItem(
            id=capture.id,
            capture_id=capture.id,
            user_id=capture.user_id,
            raw_text=capture.raw_text,
            suggested_category=capture.classified_category,
            fields=dict(fields or {}),
            reason=reason,
            detail=detail,
            created_at=capture.created_at,
        )
        self._store.insert(self.TABLE, item.model_dump(mode="json"))
        logger.info("Queued capture %s for review (%s)", capture.id, reason.value)
        return item

    def get(self, capture_id: str) -> Optional[IntakeItem]:
        row = self._store.get(self.TABLE, capture_id)
        return IntakeItem.model_validate(row) if row else None

    def pending(self) -> List[IntakeItem]:
        """Newest first"""
        where = {"user_id": self._user_id} if self._user_id else None
        rows = self._store.select(self.TABLE, where=where, order_by="created_at", descending=True)
        return [IntakeItem.model_validate(row) for row in rows]

    def remove(self, capture_id: str) -> bool:
        return self._store.delete(self.TABLE, capture_id)

    def count(self) -> int:
        return len(self.pending())
