"""
Destination Payloads

One pydantic model per category, joined into a discriminated union on the
"category" key. Each model accepts the field names the classifier suggests
(task_name, suggested_project, insight_title, ...) as aliases of its own.
"""

from dataclasses import dataclass
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from ..errors import ValidationFailed
from .capture import Category, parse_category

MAX_TASK_NAME_LENGTH = 255
MAX_TASK_DESCRIPTION_LENGTH = 1000
DEFAULT_PRIORITY = 3


def _clamp_priority(value: Any) -> int:
    if value is None or value == "":
        return DEFAULT_PRIORITY
    try:
        priority = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PRIORITY
    return min(max(priority, 1), 5)


class _PayloadBase(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    # Filled from the raw text when a human files the capture and left it blank
    title_field: ClassVar[Optional[str]] = None
    # Always filled from the raw text when blank
    body_field: ClassVar[Optional[str]] = None

    def record_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"category"})


class TaskPayload(_PayloadBase):
    title_field: ClassVar[Optional[str]] = "name"

    category: Literal["task"] = "task"
    name: str = Field(..., min_length=1, validation_alias=AliasChoices("task_name", "name"))
    description: Optional[str] = Field(default=None, validation_alias=AliasChoices("description", "notes"))
    priority: int = DEFAULT_PRIORITY
    due_date: Optional[str] = None
    project: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("suggested_project", "project_name", "project")
    )
    domain: Optional[str] = Field(default=None, validation_alias=AliasChoices("suggested_domain", "domain"))

    @field_validator("name")
    @classmethod
    def _truncate_name(cls, value: str) -> str:
        return value[:MAX_TASK_NAME_LENGTH]

    @field_validator("description")
    @classmethod
    def _truncate_description(cls, value: Optional[str]) -> Optional[str]:
        return value[:MAX_TASK_DESCRIPTION_LENGTH] if value else value

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        return _clamp_priority(value)


class ProjectPayload(_PayloadBase):
    title_field: ClassVar[Optional[str]] = "name"

    category: Literal["project"] = "project"
    name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("project_name", "suggested_project", "name"),
    )
    description: Optional[str] = None
    domain: Optional[str] = Field(default=None, validation_alias=AliasChoices("suggested_domain", "domain"))
    status: str = "active"
    next_action: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        return str(value).strip().lower() if value else "active"


class PersonPayload(_PayloadBase):
    title_field: ClassVar[Optional[str]] = "name"

    category: Literal["person"] = "person"
    name: str = Field(..., min_length=1, validation_alias=AliasChoices("contact_name", "name"))
    context: Optional[str] = Field(default=None, validation_alias=AliasChoices("context", "contact_context"))
    follow_up: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [tag.strip() for tag in value.split(",") if tag.strip()]
        return value


class LearningPayload(_PayloadBase):
    title_field: ClassVar[Optional[str]] = "title"
    body_field: ClassVar[Optional[str]] = "key_insight"

    category: Literal["learning"] = "learning"
    title: str = Field(..., min_length=1, validation_alias=AliasChoices("insight_title", "title"))
    key_insight: Optional[str] = Field(default=None, validation_alias=AliasChoices("key_insight", "insight", "insight_content"))
    insight_category: Optional[str] = None
    application: Optional[str] = None
    source: Optional[str] = None


class HealthPayload(_PayloadBase):
    body_field: ClassVar[Optional[str]] = "details"

    category: Literal["health"] = "health"
    entry_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("entry_type", "health_type"))
    details: Optional[str] = None
    metrics: Optional[str] = None
    reflection: Optional[str] = None


class ContentPayload(_PayloadBase):
    body_field: ClassVar[Optional[str]] = "title"

    category: Literal["content"] = "content"
    title: Optional[str] = None
    content_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("content_type", "format"))
    topic: Optional[str] = None
    audience: Optional[str] = None
    notes: Optional[str] = None


class QuestionPayload(_PayloadBase):
    body_field: ClassVar[Optional[str]] = "question"

    category: Literal["question"] = "question"
    question: Optional[str] = None
    response: Optional[str] = None


Payload = Annotated[
    Union[
        TaskPayload,
        ProjectPayload,
        PersonPayload,
        LearningPayload,
        HealthPayload,
        ContentPayload,
        QuestionPayload,
    ],
    Field(discriminator="category"),
]

PAYLOAD_TYPES = {
    Category.TASK: TaskPayload,
    Category.PROJECT: ProjectPayload,
    Category.PERSON: PersonPayload,
    Category.LEARNING: LearningPayload,
    Category.HEALTH: HealthPayload,
    Category.CONTENT: ContentPayload,
    Category.QUESTION: QuestionPayload,
}

_payload_adapter = TypeAdapter(Payload)


def _field_keys(model: type, name: str) -> List[str]:
    """Every input key that populates `name` on `model`"""
    alias = model.model_fields[name].validation_alias
    keys = [name]
    if isinstance(alias, AliasChoices):
        keys.extend(choice for choice in alias.choices if isinstance(choice, str))
    return keys


def _is_blank(fields: Dict[str, Any], keys: List[str]) -> bool:
    return all(fields.get(key) in (None, "") for key in keys)


def build_payload(
    category,
    fields: Optional[Dict[str, Any]] = None,
    text: Optional[str] = None,
    prefill_title: bool = False,
):
    """
    Validate suggested or user-supplied fields into the payload for `category`.

    Args:
        category: Category or category name (aliases accepted)
        fields: Field values; unknown keys are ignored
        text: Raw (or edited) capture text used to fill blank body fields
        prefill_title: Also fill the title field from `text` (human filing paths)

    Raises:
        ValidationFailed: unknown category or a required field is missing
    """
    category = parse_category(category)
    model = PAYLOAD_TYPES[category]
    data = dict(fields or {})

    # "category" inside the fields is the learning's own category, not ours
    inner_category = data.pop("category", None)
    if category == Category.LEARNING and inner_category and not data.get("insight_category"):
        data["insight_category"] = inner_category

    if text:
        for attr in (model.body_field, model.title_field if prefill_title else None):
            keys = _field_keys(model, attr) if attr else []
            if keys and _is_blank(data, keys):
                # A blank alias would otherwise shadow the filled value
                for key in keys:
                    data.pop(key, None)
                data[attr] = text

    data["category"] = category.value
    try:
        return _payload_adapter.validate_python(data)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or err['loc'][0]}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationFailed(f"Invalid {category.value} fields ({problems})") from e


def missing_required_fields(category, fields: Optional[Dict[str, Any]]) -> List[str]:
    """Names of required payload fields that `fields` leaves blank"""
    model = PAYLOAD_TYPES[parse_category(category)]
    data = fields or {}
    return [
        name
        for name, info in model.model_fields.items()
        if info.is_required() and _is_blank(data, _field_keys(model, name))
    ]


@dataclass(frozen=True)
class DestinationRef:
    """Reference to a materialized record"""
    table: str
    id: str

    def to_dict(self) -> dict:
        return {"table": self.table, "id": self.id}
