"""
Knowledge Relevance Scorer

Ranks stored knowledge items against a task with a deterministic additive
score. Pure: no storage, no clock.

Scoring:
- +10 when the item belongs to the task's project
- +2 for each task keyword found in the item's content or url
- +1 for notes
"""

from typing import Iterable, List, Sequence

from ..common.schemas import KnowledgeItem, ScoredKnowledgeItem, TaskSummary

PROJECT_MATCH_SCORE = 10
KEYWORD_SCORE = 2
NOTE_SCORE = 1

MIN_KEYWORD_LENGTH = 4
MAX_KEYWORDS = 10
MAX_RESULTS = 10


def extract_keywords(name: str, description: str = "") -> List[str]:
    """
    Lowercased whitespace tokens longer than three characters, first ten in order.

    Duplicates are kept and each counts separately when scoring.
    """
    text = f"{name or ''} {description or ''}".lower()
    return [word for word in text.split() if len(word) >= MIN_KEYWORD_LENGTH][:MAX_KEYWORDS]


def score_item(task: TaskSummary, item: KnowledgeItem, keywords: Sequence[str]) -> int:
    score = 0
    # Plain equality: a task without a project matches items without one
    if item.project_id == task.project_id:
        score += PROJECT_MATCH_SCORE

    haystack = f"{item.content or ''} {item.url or ''}".lower()
    score += KEYWORD_SCORE * sum(1 for keyword in keywords if keyword in haystack)

    if item.type == "note":
        score += NOTE_SCORE
    return score


def score_knowledge(
    task: TaskSummary,
    candidates: Iterable[KnowledgeItem],
    linked_ids: Iterable[str] = (),
) -> List[ScoredKnowledgeItem]:
    """
    Score, filter and rank candidates for a task.

    Items scoring 0 are dropped. Linked items come first, then higher
    scores; equal items keep their candidate order. At most ten are returned.
    """
    keywords = extract_keywords(task.name, task.description or "")
    linked = set(linked_ids)

    scored = []
    for item in candidates:
        score = score_item(task, item, keywords)
        if score > 0:
            scored.append(ScoredKnowledgeItem(item=item, score=score, is_linked=item.id in linked))

    scored.sort(key=lambda s: (not s.is_linked, -s.score))
    return scored[:MAX_RESULTS]
