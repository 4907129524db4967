"""
Capture Schema

A capture is one raw-text ingestion event together with its classification
and audit outcome. Rows are append-only: after creation only the resolution
fields may change.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from ..errors import ValidationFailed

MAX_RAW_TEXT_LENGTH = 5000


# ============================================================================
# Enums
# ============================================================================

class Category(str, Enum):
    """Destination categories a capture can be filed under"""
    TASK = "task"
    PROJECT = "project"
    PERSON = "person"
    LEARNING = "learning"
    HEALTH = "health"
    CONTENT = "content"
    QUESTION = "question"


class CaptureStatus(str, Enum):
    """Display status, derived from the capture flags"""
    FILED = "Filed"
    NEEDS_REVIEW = "Needs Review"
    CORRECTED = "Corrected"


class ConfidenceBand(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Classifier type names that mean one of our categories
CATEGORY_ALIASES = {
    "people": Category.PERSON,
    "contact": Category.PERSON,
    "insight": Category.LEARNING,
    "note": Category.LEARNING,
    "idea": Category.LEARNING,
    "link": Category.LEARNING,
    "research": Category.QUESTION,
}


def normalize_category(value) -> Optional[Category]:
    """Map a classifier type (or a user choice) onto a Category; None when it is not one"""
    if value is None:
        return None
    if isinstance(value, Category):
        return value
    key = str(value).strip().lower()
    if not key:
        return None
    try:
        return Category(key)
    except ValueError:
        return CATEGORY_ALIASES.get(key)


def parse_category(value) -> Category:
    """Like normalize_category, but unknown values are a caller error"""
    category = normalize_category(value)
    if category is None:
        raise ValidationFailed(f"Unknown category: {value!r}")
    return category


def validate_raw_text(raw_text) -> str:
    """Strip surrounding whitespace and enforce 1..MAX_RAW_TEXT_LENGTH characters"""
    if not isinstance(raw_text, str):
        raise ValidationFailed("Capture text must be a string")
    text = raw_text.strip()
    if not text:
        raise ValidationFailed("Capture text is empty")
    if len(text) > MAX_RAW_TEXT_LENGTH:
        raise ValidationFailed(
            f"Capture text is {len(text)} characters, the limit is {MAX_RAW_TEXT_LENGTH}"
        )
    return text


def confidence_band(score: Optional[float]) -> ConfidenceBand:
    score = score or 0.0
    if score >= 0.8:
        return ConfidenceBand.HIGH
    if score >= 0.6:
        return ConfidenceBand.MEDIUM
    return ConfidenceBand.LOW


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Capture
# ============================================================================

class Capture(BaseModel):
    """
    One ingestion event.

    Invariants:
    - a capture with a destination is not awaiting review
    - a corrected capture is not awaiting review and carries a correction note
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: Optional[str] = None
    raw_text: str = Field(..., min_length=1, max_length=MAX_RAW_TEXT_LENGTH)
    created_at: datetime = Field(default_factory=_utcnow)

    classified_category: Optional[Category] = None
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    destination_table: Optional[str] = None
    destination_id: Optional[str] = None

    needs_review: bool = True
    corrected: bool = False
    correction_note: Optional[str] = None

    @field_validator("classified_category", mode="before")
    @classmethod
    def _normalize_category(cls, value):
        return normalize_category(value)

    @model_validator(mode="after")
    def _check_resolution(self) -> "Capture":
        if self.destination_id and self.needs_review:
            raise ValueError("a capture with a destination cannot need review")
        if self.corrected:
            if self.needs_review:
                raise ValueError("a corrected capture cannot need review")
            if not (self.correction_note or "").strip():
                raise ValueError("a corrected capture requires a correction note")
        return self

    @property
    def status(self) -> CaptureStatus:
        if self.corrected:
            return CaptureStatus.CORRECTED
        if self.needs_review:
            return CaptureStatus.NEEDS_REVIEW
        return CaptureStatus.FILED

    @property
    def band(self) -> ConfidenceBand:
        return confidence_band(self.confidence_score)

    @property
    def is_auto_filed(self) -> bool:
        """Filed by the router or by acceptance, never corrected"""
        return bool(self.destination_id) and not self.corrected and not self.needs_review

    def to_row(self) -> dict:
        return self.model_dump(mode="json")

    def to_dict(self) -> dict:
        """Row plus the derived display values"""
        data = self.to_row()
        data["status"] = self.status.value
        data["confidence_band"] = self.band.value
        return data
