"""Knowledge items and the task view the relevance scorer ranks them against."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class KnowledgeItem(BaseModel):
    """A stored note, link, transcript or idea. Read-only for the pipeline."""
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str = "note"
    content: Optional[str] = ""
    url: Optional[str] = None
    project_id: Optional[str] = None
    created_at: Optional[str] = None


class TaskSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    description: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None


class ScoredKnowledgeItem(BaseModel):
    item: KnowledgeItem
    score: int = Field(ge=0)
    is_linked: bool = False

    def to_dict(self) -> dict:
        data = self.item.model_dump()
        data["score"] = self.score
        data["isLinked"] = self.is_linked
        return data
