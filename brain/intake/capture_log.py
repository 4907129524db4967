"""
Capture Log

Append-only audit trail of every ingestion event. One row per capture in the
"captures" table; only the resolution fields ever change, and the change from
"needs review" to resolved happens at most once (compare-and-set).

Also owns the audit views over the log: filtered search, stats and CSV export.
"""

import csv
import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..common.errors import AlreadyResolved, NotFound, ValidationFailed
from ..common.schemas import Capture, CaptureStatus, ConfidenceBand, normalize_category
from ..common.store import RowStore

logger = logging.getLogger("brain.intake.capture_log")

EXPORT_HEADERS = [
    "Timestamp",
    "Raw Input",
    "Category",
    "Confidence",
    "Status",
    "Destination",
    "Correction Note",
]

SORT_OPTIONS = ("newest", "oldest", "confidence_low", "confidence_high", "category")


class CaptureLog:
    """
    Store for Capture rows.

    Rows are validated through the Capture model on the way in and out, so an
    invariant violation never reaches storage.
    """

    TABLE = "captures"

    # The only columns a resolution may touch
    MUTABLE_FIELDS = frozenset({
        "classified_category",
        "needs_review",
        "corrected",
        "correction_note",
        "destination_table",
        "destination_id",
    })

    def __init__(self, store: RowStore, user_id: Optional[str] = None):
        self._store = store
        self._user_id = user_id or None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def append(self, capture: Capture) -> Capture:
        """Write a new capture row. Returns the stored capture."""
        if capture.user_id is None and self._user_id:
            capture = capture.model_copy(update={"user_id": self._user_id})
        row = self._store.insert(self.TABLE, capture.to_row())
        logger.debug("Appended capture %s (needs_review=%s)", row["id"], row["needs_review"])
        return Capture.model_validate(row)

    def find(self, capture_id: str) -> Optional[Capture]:
        row = self._store.get(self.TABLE, capture_id)
        return Capture.model_validate(row) if row else None

    def get(self, capture_id: str) -> Capture:
        capture = self.find(capture_id)
        if capture is None:
            raise NotFound(self.TABLE, capture_id)
        return capture

    def list(self) -> List[Capture]:
        """All captures for the current user, newest first"""
        where = {"user_id": self._user_id} if self._user_id else None
        rows = self._store.select(self.TABLE, where=where, order_by="created_at", descending=True)
        return [Capture.model_validate(row) for row in rows]

    def pending(self) -> List[Capture]:
        """Captures awaiting review, newest first"""
        where = {"needs_review": True}
        if self._user_id:
            where["user_id"] = self._user_id
        rows = self._store.select(self.TABLE, where=where, order_by="created_at", descending=True)
        return [Capture.model_validate(row) for row in rows]

    def resolve(self, capture_id: str, *, expected: Dict[str, Any], **changes) -> Capture:
        """
        Apply resolution fields to a capture, only if it still matches `expected`.

        Args:
            capture_id: Capture to update
            expected: Column values the row must still hold (e.g. {"needs_review": True})
            **changes: New values for MUTABLE_FIELDS

        Returns:
            The updated capture

        Raises:
            NotFound: no such capture
            AlreadyResolved: the row no longer matches `expected`
            ValidationFailed: the result would break a capture invariant
        """
        illegal = set(changes) - self.MUTABLE_FIELDS
        if illegal:
            raise ValidationFailed(f"Capture fields are immutable: {', '.join(sorted(illegal))}")

        current = self.get(capture_id)
        row = current.to_row()
        if any(row.get(key) != value for key, value in expected.items()):
            raise AlreadyResolved(capture_id)

        try:
            updated = Capture.model_validate({**row, **changes})
        except ValidationError as e:
            raise ValidationFailed(f"Invalid capture resolution: {e.errors()[0]['msg']}") from e

        new_row = updated.to_row()
        applied = self._store.compare_and_update(
            self.TABLE,
            capture_id,
            expected,
            {key: new_row[key] for key in changes},
        )
        if not applied:
            raise AlreadyResolved(capture_id)
        return updated

    def delete(self, capture_id: str, *, expected: Optional[Dict[str, Any]] = None) -> bool:
        """
        Remove a capture row. With `expected`, only while the row still
        matches it; a missing row then raises NotFound.
        """
        if expected is None:
            return self._store.delete(self.TABLE, capture_id)
        return self._store.delete_if(self.TABLE, capture_id, expected)

    # ------------------------------------------------------------------
    # Audit views
    # ------------------------------------------------------------------

    def search(
        self,
        q: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        band: Optional[str] = None,
        days: Optional[int] = None,
        sort: str = "newest",
    ) -> List[Capture]:
        """
        Filter the log the way the audit view does.

        Args:
            q: Case-insensitive substring of the raw text
            category: Category name (aliases accepted)
            status: "filed", "needs_review" or "corrected" (display names accepted)
            band: "high", "medium" or "low"
            days: Only captures from the last N days
            sort: One of SORT_OPTIONS
        """
        if sort not in SORT_OPTIONS:
            raise ValidationFailed(f"Unknown sort option: {sort}")

        wanted_category = None
        if category:
            wanted_category = normalize_category(category)
            if wanted_category is None:
                raise ValidationFailed(f"Unknown category: {category}")
        wanted_status = _parse_status(status) if status else None
        wanted_band = _parse_band(band) if band else None
        since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
        needle = q.lower() if q else None

        results = []
        for capture in self.list():
            if needle and needle not in capture.raw_text.lower():
                continue
            if wanted_category and capture.classified_category != wanted_category:
                continue
            if wanted_status and capture.status != wanted_status:
                continue
            if wanted_band and capture.band != wanted_band:
                continue
            if since and capture.created_at < since:
                continue
            results.append(capture)

        if sort == "oldest":
            results.reverse()
        elif sort == "confidence_low":
            results.sort(key=lambda c: c.confidence_score or 0.0)
        elif sort == "confidence_high":
            results.sort(key=lambda c: c.confidence_score or 0.0, reverse=True)
        elif sort == "category":
            results.sort(key=lambda c: c.classified_category.value if c.classified_category else "")
        return results

    def stats(self, captures: Optional[Iterable[Capture]] = None) -> Dict[str, Any]:
        captures = list(self.list() if captures is None else captures)
        total = len(captures)
        corrected = sum(1 for c in captures if c.corrected)
        needs_review = sum(1 for c in captures if c.needs_review)

        by_category: Dict[str, int] = {}
        for c in captures:
            key = c.classified_category.value if c.classified_category else "unclassified"
            by_category[key] = by_category.get(key, 0) + 1

        return {
            "total": total,
            "filed": total - needs_review - corrected,
            "needs_review": needs_review,
            "corrected": corrected,
            "avg_confidence": (
                sum(c.confidence_score or 0.0 for c in captures) / total if total else 0.0
            ),
            "by_category": by_category,
        }

    def export_csv(self, captures: Optional[Iterable[Capture]] = None) -> str:
        """Render captures (default: the whole log, newest first) as CSV text"""
        captures = self.list() if captures is None else captures
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_HEADERS)
        for c in captures:
            writer.writerow([
                c.created_at.isoformat(),
                c.raw_text,
                c.classified_category.value if c.classified_category else "",
                f"{(c.confidence_score or 0.0) * 100:.0f}%",
                c.status.value,
                c.destination_table or "",
                c.correction_note or "",
            ])
        return buffer.getvalue()


def read_capture_export(text: str) -> List[Dict[str, str]]:
    """Parse an export produced by CaptureLog.export_csv back into rows keyed by header"""
    reader = csv.DictReader(io.StringIO(text))
    if reader.fieldnames != EXPORT_HEADERS:
        raise ValidationFailed(f"Unexpected export header: {reader.fieldnames}")
    return list(reader)


def _parse_status(value: str) -> CaptureStatus:
    key = value.strip().lower().replace(" ", "_")
    mapping = {
        "filed": CaptureStatus.FILED,
        "needs_review": CaptureStatus.NEEDS_REVIEW,
        "corrected": CaptureStatus.CORRECTED,
    }
    if key not in mapping:
        raise ValidationFailed(f"Unknown status: {value}")
    return mapping[key]


def _parse_band(value: str) -> ConfidenceBand:
    try:
        return ConfidenceBand(value.strip().lower())
    except ValueError:
        raise ValidationFailed(f"Unknown confidence band: {value}")
