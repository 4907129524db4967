"""
Brain Common Module

Shared infrastructure for the intake pipeline and the knowledge retriever.
"""

from .config import BrainConfig, load_config
from .errors import (
    BrainError,
    ValidationFailed,
    ClassificationUnavailable,
    MaterializationFailed,
    AlreadyResolved,
    NotFound,
    DuplicateRow,
)
from .llm_client import LLMClient
from .store import RowStore, MemoryStore, SqliteStore

__all__ = [
    "BrainConfig",
    "load_config",
    "BrainError",
    "ValidationFailed",
    "ClassificationUnavailable",
    "MaterializationFailed",
    "AlreadyResolved",
    "NotFound",
    "DuplicateRow",
    "LLMClient",
    "RowStore",
    "MemoryStore",
    "SqliteStore",
]
