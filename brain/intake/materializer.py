"""
Destination Record Materializer

Creates the concrete record a capture is filed as. Dispatch is keyed on the
payload's category; every category has exactly one handler and the table is
checked when this module is imported.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..common.errors import MaterializationFailed
from ..common.schemas import (
    Category,
    ContentPayload,
    DestinationRef,
    HealthPayload,
    LearningPayload,
    PersonPayload,
    ProjectPayload,
    QuestionPayload,
    TaskPayload,
    build_payload,
)
from ..common.store import RowStore

logger = logging.getLogger("brain.intake.materializer")

TASKS = "tasks"
PROJECTS = "projects"
DOMAINS = "domains"
CONTACTS = "contacts"
LEARNING_INSIGHTS = "learning_insights"
HEALTH_ENTRIES = "health_entries"
CONTENT_ITEMS = "content_items"
QUESTIONS = "questions"

NEXT_ACTION_PRIORITY = 2

_HANDLER_NAMES = {
    Category.TASK: "_create_task",
    Category.PROJECT: "_create_project",
    Category.PERSON: "_create_contact",
    Category.LEARNING: "_create_insight",
    Category.HEALTH: "_create_health_entry",
    Category.CONTENT: "_create_content_item",
    Category.QUESTION: "_create_question",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _same_name(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


class Materializer:
    """
    Creates destination records for one user.

    Resolve-or-create of a task's parent project holds a process-wide lock,
    so two captures naming the same new project in one process share it.
    Separate processes can still both create it.
    """

    def __init__(self, store: RowStore, user_id: Optional[str] = None, default_domain: Optional[str] = "General"):
        self._store = store
        self._user_id = user_id or None
        self._default_domain = default_domain
        self._project_lock = threading.Lock()

    def materialize(self, payload) -> DestinationRef:
        """
        Create the record for a validated payload.

        Raises:
            MaterializationFailed: the store rejected the write
        """
        category = Category(payload.category)
        handler = getattr(self, _HANDLER_NAMES[category])
        try:
            ref = handler(payload)
        except MaterializationFailed:
            raise
        except Exception as e:
            raise MaterializationFailed(category, payload.record_fields(), str(e)) from e
        logger.info("Materialized %s as %s/%s", category.value, ref.table, ref.id)
        return ref

    def materialize_fields(
        self,
        category,
        fields: Optional[Dict[str, Any]] = None,
        text: Optional[str] = None,
        prefill_title: bool = False,
    ) -> DestinationRef:
        """Validate raw fields into a payload and materialize it (ValidationFailed on bad fields)"""
        return self.materialize(build_payload(category, fields, text=text, prefill_title=prefill_title))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _owned(self, table: str) -> List[Dict[str, Any]]:
        where = {"user_id": self._user_id} if self._user_id else None
        return self._store.select(table, where=where)

    def project_names(self) -> List[str]:
        return [row["name"] for row in self._owned(PROJECTS) if row.get("name")]

    def domain_names(self) -> List[str]:
        return [row["name"] for row in self._owned(DOMAINS) if row.get("name")]

    def find_project(self, name: Optional[str]) -> Optional[Dict[str, Any]]:
        for row in self._owned(PROJECTS):
            if _same_name(row.get("name"), name):
                return row
        return None

    def resolve_domain_id(self, suggested: Optional[str]) -> Optional[str]:
        """Suggested domain, else the configured default, else None (case-insensitive)"""
        domains = self._owned(DOMAINS)
        for name in (suggested, self._default_domain):
            for row in domains:
                if _same_name(row.get("name"), name):
                    return row["id"]
        return None

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _insert(self, table: str, record: Dict[str, Any]) -> DestinationRef:
        record = {"user_id": self._user_id, "created_at": _now(), **record}
        row = self._store.insert(table, record)
        return DestinationRef(table=table, id=row["id"])

    def _resolve_or_create_project(self, name: str, domain: Optional[str], priority: int) -> str:
        with self._project_lock:
            existing = self.find_project(name)
            if existing:
                return existing["id"]
            ref = self._insert(PROJECTS, {
                "name": name,
                "domain_id": self.resolve_domain_id(domain),
                "status": "active",
                "priority": priority,
            })
            logger.info("Created project %r for new task", name)
            return ref.id

    def _create_task(self, payload: TaskPayload) -> DestinationRef:
        project_id = None
        if payload.project:
            project_id = self._resolve_or_create_project(payload.project, payload.domain, payload.priority)
        return self._insert(TASKS, {
            "name": payload.name,
            "description": payload.description or "",
            "project_id": project_id,
            "priority": payload.priority,
            "is_top_priority": payload.priority == 1,
            "due_date": payload.due_date,
        })

    def _create_project(self, payload: ProjectPayload) -> DestinationRef:
        ref = self._insert(PROJECTS, {
            "name": payload.name,
            "description": payload.description,
            "domain_id": self.resolve_domain_id(payload.domain),
            "status": payload.status,
        })
        if payload.next_action:
            try:
                self._insert(TASKS, {
                    "name": payload.next_action[:255],
                    "description": "",
                    "project_id": ref.id,
                    "priority": NEXT_ACTION_PRIORITY,
                    "is_top_priority": False,
                    "due_date": None,
                })
            except Exception:
                # Roll back the project row
                self._store.delete(PROJECTS, ref.id)
                raise
        return ref

    def _create_contact(self, payload: PersonPayload) -> DestinationRef:
        return self._insert(CONTACTS, {
            "name": payload.name,
            "context": payload.context,
            "follow_up": payload.follow_up,
            "tags": payload.tags,
        })

    def _create_insight(self, payload: LearningPayload) -> DestinationRef:
        return self._insert(LEARNING_INSIGHTS, {
            "title": payload.title,
            "key_insight": payload.key_insight,
            "category": payload.insight_category,
            "application": payload.application,
            "source": payload.source,
        })

    def _create_health_entry(self, payload: HealthPayload) -> DestinationRef:
        return self._insert(HEALTH_ENTRIES, {
            "entry_type": payload.entry_type,
            "details": payload.details,
            "metrics": payload.metrics,
            "reflection": payload.reflection,
        })

    def _create_content_item(self, payload: ContentPayload) -> DestinationRef:
        return self._insert(CONTENT_ITEMS, {
            "title": payload.title,
            "content_type": payload.content_type,
            "topic": payload.topic,
            "audience": payload.audience,
            "notes": payload.notes,
        })

    def _create_question(self, payload: QuestionPayload) -> DestinationRef:
        return self._insert(QUESTIONS, {
            "question": payload.question,
            "response": payload.response,
        })


_unhandled = set(Category) - set(_HANDLER_NAMES)
_undefined = [name for name in _HANDLER_NAMES.values() if not hasattr(Materializer, name)]
if _unhandled or _undefined:
    raise RuntimeError(f"Materializer dispatch incomplete: {sorted(c.value for c in _unhandled)} {_undefined}")
