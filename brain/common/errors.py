"""
Pipeline Errors

Every condition here is local and recoverable from the pipeline's point of
view. The user-visible effect of any of them is "the item stays in the review
queue", never silent loss of a capture.
"""

from typing import Any, Dict, Optional


class BrainError(Exception):
    """Base class for all capture pipeline errors"""


class ValidationFailed(BrainError):
    """Input rejected before any store write (empty or oversized text, bad category, missing note)"""


class ClassificationUnavailable(BrainError):
    """The classification collaborator failed, timed out, or is not configured"""


class MaterializationFailed(BrainError):
    """
    A destination record could not be created.

    Carries the category and the original fields so the caller can keep
    them for a manual retry through the correction workflow.
    """

    def __init__(self, category: Any, fields: Optional[Dict[str, Any]] = None, reason: str = ""):
        self.category = getattr(category, "value", category)
        self.fields = dict(fields or {})
        self.reason = reason
        super().__init__(f"Could not materialize {self.category}: {reason}" if reason else f"Could not materialize {self.category}")


class AlreadyResolved(BrainError):
    """The capture left the review queue before this request (possibly by another reviewer)"""

    def __init__(self, capture_id: str, detail: str = ""):
        self.capture_id = capture_id
        super().__init__(detail or f"Capture {capture_id} is already resolved")


class NotFound(BrainError):
    def __init__(self, table: str, row_id: str):
        self.table = table
        self.row_id = row_id
        super().__init__(f"{table} row not found: {row_id}")


class DuplicateRow(BrainError):
    def __init__(self, table: str, row_id: str):
        self.table = table
        self.row_id = row_id
        super().__init__(f"{table} already has a row with id {row_id}")
