"""
Brain

Capture triage and knowledge resurfacing for a personal second brain.

Philosophy:
- Every capture leaves exactly one row in the capture log, whatever happens downstream
- Uncertain classifications wait for a human instead of being guessed into a table
- Resolution is final: a capture leaves the review queue once and never re-enters
- Corrections add history, they never rewrite what was originally captured

Usage:
    from brain.common import load_config, MemoryStore
    from brain.intake import build_pipeline
    from brain.retriever import KnowledgeSearch, score_knowledge
"""

__version__ = "0.1.0"
