"""
Pipeline wiring

Builds the store, classifier and the intake components from a BrainConfig.
The server and the CLI both go through build_pipeline().
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..common.config import BrainConfig
from ..common.llm_client import LLMClient
from ..common.store import MemoryStore, RowStore, SqliteStore
from ..retriever.knowledge import KnowledgeSearch
from .capture_log import CaptureLog
from .classifier import Classifier, LLMClassifier, RuleBasedClassifier
from .correction import CorrectionWorkflow
from .intake_queue import IntakeQueue
from .materializer import Materializer
from .review_queue import ReviewQueue
from .router import TriageRouter

logger = logging.getLogger("brain.intake.pipeline")

DB_FILENAME = "brain.db"


@dataclass
class Pipeline:
    store: RowStore
    captures: CaptureLog
    intake: IntakeQueue
    materializer: Materializer
    classifier: Optional[Classifier]
    router: TriageRouter
    correction: CorrectionWorkflow
    review: ReviewQueue
    knowledge: KnowledgeSearch


def build_store(config: BrainConfig) -> RowStore:
    backend = config.storage.backend.lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SqliteStore(Path(config.storage.data_dir) / DB_FILENAME)
    raise ValueError(f"Unknown storage backend: {config.storage.backend}")


def build_classifier(config: BrainConfig, materializer: Materializer) -> Optional[Classifier]:
    """
    LLM classifier when configured and reachable, rule-based when asked for.

    An unreachable LLM still yields an LLMClassifier: every capture is then
    queued unclassified instead of silently switching strategies.
    """
    if config.triage.classifier == "rules":
        logger.info("Using rule-based classifier")
        return RuleBasedClassifier()

    llm = LLMClient.from_config(config.llm)
    if llm.is_available:
        logger.info("Using %s classifier (%s)", llm.provider, llm.model)
    else:
        logger.warning("LLM classifier not available; captures will be queued for review")
    return LLMClassifier(
        llm,
        context_provider=lambda: (materializer.domain_names(), materializer.project_names()),
        timeout=config.llm.timeout,
    )


def build_pipeline(
    config: BrainConfig,
    store: Optional[RowStore] = None,
    classifier: Optional[Classifier] = None,
) -> Pipeline:
    store = store if store is not None else build_store(config)
    user_id = config.user_id or None

    captures = CaptureLog(store, user_id=user_id)
    intake = IntakeQueue(store, user_id=user_id)
    materializer = Materializer(store, user_id=user_id, default_domain=config.triage.default_domain)
    if classifier is None:
        classifier = build_classifier(config, materializer)
    correction = CorrectionWorkflow(captures, intake, materializer)

    return Pipeline(
        store=store,
        captures=captures,
        intake=intake,
        materializer=materializer,
        classifier=classifier,
        router=TriageRouter(
            captures,
            intake,
            materializer,
            classifier=classifier,
            review_threshold=config.triage.review_threshold,
            user_id=user_id,
        ),
        correction=correction,
        review=ReviewQueue(captures, intake, materializer, correction),
        knowledge=KnowledgeSearch(store, user_id=user_id),
    )
