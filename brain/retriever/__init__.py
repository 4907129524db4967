"""
Brain Retriever

Ranks stored knowledge against tasks and keeps task <-> knowledge links.
"""

from .relevance import extract_keywords, score_item, score_knowledge
from .knowledge import KnowledgeSearch

__all__ = [
    "extract_keywords",
    "score_item",
    "score_knowledge",
    "KnowledgeSearch",
]
