"""
Knowledge search and task links

Loads a task and its candidate knowledge items from the store, ranks them
with the relevance scorer, and maintains the task <-> knowledge item links.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from ..common.errors import DuplicateRow, NotFound, ValidationFailed
from ..common.schemas import KnowledgeItem, TaskSummary
from ..common.store import RowStore
from .relevance import score_knowledge

logger = logging.getLogger("brain.retriever.knowledge")

TASKS = "tasks"
PROJECTS = "projects"
KNOWLEDGE_ITEMS = "knowledge_items"
TASK_KNOWLEDGE_LINKS = "task_knowledge_links"


def _link_id(task_id: str, knowledge_item_id: str) -> str:
    return f"{task_id}:{knowledge_item_id}"


class KnowledgeSearch:
    def __init__(self, store: RowStore, user_id: Optional[str] = None):
        self._store = store
        self._user_id = user_id or None

    def load_task(self, task_id: str) -> TaskSummary:
        if not task_id or not isinstance(task_id, str):
            raise ValidationFailed("Invalid task id")
        row = self._store.get(TASKS, task_id)
        if row is None:
            raise NotFound(TASKS, task_id)

        project_name = None
        if row.get("project_id"):
            project = self._store.get(PROJECTS, row["project_id"])
            project_name = project.get("name") if project else None
        return TaskSummary.model_validate({**row, "project_name": project_name})

    def linked_ids(self, task_id: str) -> List[str]:
        rows = self._store.select(TASK_KNOWLEDGE_LINKS, where={"task_id": task_id})
        return [row["knowledge_item_id"] for row in rows]

    def candidates(self, task: TaskSummary) -> List[KnowledgeItem]:
        """Items in the task's project (all items when it has none), newest first"""
        where = {"project_id": task.project_id} if task.project_id else None
        rows = self._store.select(KNOWLEDGE_ITEMS, where=where, order_by="created_at", descending=True)
        return [KnowledgeItem.model_validate(row) for row in rows]

    def search(self, task_id: str) -> Dict[str, Any]:
        """
        Rank knowledge for a task.

        Returns:
            {"task": {id, name, project}, "knowledgeItems": [...], "linkedCount": n}
        """
        task = self.load_task(task_id)
        linked = self.linked_ids(task_id)
        ranked = score_knowledge(task, self.candidates(task), linked)
        logger.debug("Knowledge search for task %s: %d linked, %d ranked", task_id, len(linked), len(ranked))
        return {
            "task": {"id": task.id, "name": task.name, "project": task.project_name},
            "knowledgeItems": [scored.to_dict() for scored in ranked],
            "linkedCount": len(linked),
        }

    def link(self, task_id: str, knowledge_item_id: str) -> bool:
        """Link a pair; False when it was already linked"""
        try:
            self._store.insert(TASK_KNOWLEDGE_LINKS, {
                "id": _link_id(task_id, knowledge_item_id),
                "task_id": task_id,
                "knowledge_item_id": knowledge_item_id,
                "user_id": self._user_id,
            })
        except DuplicateRow:
            return False
        return True

    def unlink(self, task_id: str, knowledge_item_id: str) -> bool:
        return self._store.delete(TASK_KNOWLEDGE_LINKS, _link_id(task_id, knowledge_item_id))

    def sync_links(self, task_id: str, selected_ids: Iterable[str]) -> Dict[str, List[str]]:
        """Make the task's links exactly `selected_ids`"""
        if self._store.get(TASKS, task_id) is None:
            raise NotFound(TASKS, task_id)

        selected: Set[str] = set(selected_ids)
        current = set(self.linked_ids(task_id))
        linked = sorted(item_id for item_id in selected - current if self.link(task_id, item_id))
        unlinked = sorted(item_id for item_id in current - selected if self.unlink(task_id, item_id))
        logger.info("Synced links for task %s: +%d -%d", task_id, len(linked), len(unlinked))
        return {"linked": linked, "unlinked": unlinked}
