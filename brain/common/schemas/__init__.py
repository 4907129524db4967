"""
Brain Schemas

Captures, destination payloads and knowledge items.
"""

from .capture import (
    Capture,
    Category,
    CaptureStatus,
    ConfidenceBand,
    CATEGORY_ALIASES,
    MAX_RAW_TEXT_LENGTH,
    normalize_category,
    parse_category,
    validate_raw_text,
    confidence_band,
)
from .payloads import (
    Payload,
    PAYLOAD_TYPES,
    TaskPayload,
    ProjectPayload,
    PersonPayload,
    LearningPayload,
    HealthPayload,
    ContentPayload,
    QuestionPayload,
    DestinationRef,
    build_payload,
    missing_required_fields,
)
from .knowledge import KnowledgeItem, TaskSummary, ScoredKnowledgeItem

__all__ = [
    "Capture",
    "Category",
    "CaptureStatus",
    "ConfidenceBand",
    "CATEGORY_ALIASES",
    "MAX_RAW_TEXT_LENGTH",
    "normalize_category",
    "parse_category",
    "validate_raw_text",
    "confidence_band",
    "Payload",
    "PAYLOAD_TYPES",
    "TaskPayload",
    "ProjectPayload",
    "PersonPayload",
    "LearningPayload",
    "HealthPayload",
    "ContentPayload",
    "QuestionPayload",
    "DestinationRef",
    "build_payload",
    "missing_required_fields",
    "KnowledgeItem",
    "TaskSummary",
    "ScoredKnowledgeItem",
]
