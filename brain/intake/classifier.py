"""
Classification Collaborator

Turns raw capture text into a suggested category, suggested fields and a
confidence. The signal is treated as noisy: the router decides what to do
with it, this module only produces it.

Two implementations:
- LLMClassifier: Anthropic/OpenAI through LLMClient
- RuleBasedClassifier: offline keyword heuristics
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..common.errors import ClassificationUnavailable
from ..common.llm_utils import coerce_confidence, parse_llm_json
from ..common.schemas import Category, normalize_category

logger = logging.getLogger("brain.intake.classifier")


CLASSIFY_POLICY = """You sort short personal notes ("captures") into a personal knowledge system.

Pick exactly one type:
- task: something the user needs to do
- project: a multi-step effort or goal
- person: a note about someone (met, call, follow up)
- learning: an insight, lesson, idea or link worth keeping
- health: training, nutrition, sleep or recovery log
- content: an idea for a video, blog post or social post
- question: the user is asking something or wants research

Extract what applies:
- task_name, description, priority (1-5, 1 = most urgent), due_date (YYYY-MM-DD)
- suggested_project (an existing project when one fits), suggested_domain
- project_name, next_action
- contact_name, context, follow_up
- insight_title, key_insight, application, source
- response (for questions: a short answer)

Also give confidence: 0.0-1.0, how sure you are of the type.

Respond with JSON only: {"type": "...", "confidence": 0.0, ...fields}"""


class Classification(BaseModel):
    """
    Output of the collaborator.

    Unknown keys are kept: they are the suggested fields. A missing or
    malformed confidence counts as 0.
    """
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    confidence: float = 0.0
    response: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value):
        return coerce_confidence(value)

    @property
    def category(self) -> Optional[Category]:
        return normalize_category(self.type)

    @property
    def fields(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"type", "confidence"})
        return {key: value for key, value in data.items() if value is not None}


class Classifier(ABC):
    @abstractmethod
    def classify(self, text: str) -> Classification:
        """
        Raises:
            ClassificationUnavailable: the collaborator failed or timed out
        """


ContextProvider = Callable[[], Tuple[List[str], List[str]]]


class LLMClassifier(Classifier):
    """Asks an LLM for a JSON classification, with the user's domains and projects as context"""

    def __init__(self, llm, context_provider: Optional[ContextProvider] = None, timeout: float = 15.0):
        self._llm = llm
        self._context_provider = context_provider
        self._timeout = timeout

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def _system_prompt(self) -> str:
        if self._context_provider is None:
            return CLASSIFY_POLICY
        domains, projects = self._context_provider()
        return (
            f"{CLASSIFY_POLICY}\n\n"
            f"Available domains: {', '.join(domains) or '(none)'}\n"
            f"Existing projects: {', '.join(projects) or '(none)'}"
        )

    def classify(self, text: str) -> Classification:
        if not self.is_available:
            raise ClassificationUnavailable("LLM classifier is not configured")

        try:
            raw = self._llm.generate(
                text,
                system=self._system_prompt(),
                max_tokens=512,
                timeout=self._timeout,
            )
        except Exception as e:
            raise ClassificationUnavailable(f"LLM classification failed: {e}") from e

        data = parse_llm_json(raw)
        if not data:
            logger.warning("Unparseable classifier output, treating as question")
            return Classification(type=Category.QUESTION.value, response=raw)

        logger.debug("Classified as %s (confidence=%s)", data.get("type"), data.get("confidence"))
        try:
            return Classification.model_validate(data)
        except ValidationError as e:
            malformed = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            logger.warning("Dropping malformed classifier fields: %s", ", ".join(malformed))
            cleaned = {key: value for key, value in data.items() if key not in malformed}
            return Classification.model_validate(cleaned)


# Substring keywords per category; first category wins ties
CATEGORY_KEYWORDS = {
    Category.TASK: ["todo", "to do", "need to", "remind", "submit", "pay ", "renew", "schedule", "finish", "fix "],
    Category.PROJECT: ["project", "build", "launch", "ship", "deadline", "milestone"],
    Category.PERSON: ["meet", "met with", "call with", "coffee", "intro", "follow up", "connect with"],
    Category.LEARNING: ["learned", "lesson", "insight", "realized", "what if", "idea"],
    Category.HEALTH: ["workout", "training", "sleep", "nutrition", "gym", "recovery", "protein"],
    Category.CONTENT: ["video", "blog", "newsletter", "podcast", "thread", "post about"],
    Category.QUESTION: ["?", "how do", "what is", "should i", "research"],
}


def _simple_title(text: str, max_words: int = 6) -> str:
    words = re.findall(r"\w+", text)
    return " ".join(words[:max_words]) if words else "Untitled"


def _best_category(text: str) -> Tuple[Optional[Category], float]:
    text_lower = text.lower()
    scores = {
        category: sum(1 for keyword in keywords if keyword in text_lower)
        for category, keywords in CATEGORY_KEYWORDS.items()
    }
    best = max(scores, key=scores.get)
    hits = scores[best]
    if hits == 0:
        return None, 0.0
    return best, min(0.5 + hits * 0.15, 0.9)


class RuleBasedClassifier(Classifier):
    """Keyword heuristics. Never unavailable; never more than 0.9 confident."""

    def classify(self, text: str) -> Classification:
        category, confidence = _best_category(text)
        if category is None:
            return Classification(type=None, confidence=0.0)

        title = _simple_title(text)
        if category == Category.TASK:
            fields = {"task_name": title, "description": text}
        elif category == Category.PROJECT:
            fields = {"project_name": title, "description": text}
        elif category == Category.PERSON:
            fields = {"contact_name": title, "context": text}
        elif category == Category.LEARNING:
            fields = {"insight_title": title, "key_insight": text}
        elif category == Category.HEALTH:
            fields = {"details": text}
        elif category == Category.CONTENT:
            fields = {"title": title, "notes": text}
        else:
            fields = {"question": text}

        return Classification(type=category.value, confidence=confidence, **fields)
