"""
Brain Intake

Capture triage: classification, routing, materialization, human review and
correction, plus the HTTP server.
"""

from .capture_log import CaptureLog, read_capture_export
from .intake_queue import IntakeQueue, IntakeItem, QueueReason
from .classifier import Classification, Classifier, LLMClassifier, RuleBasedClassifier
from .materializer import Materializer
from .router import TriageRouter, RouteResult, RouteStatus
from .correction import CorrectionWorkflow
from .review_queue import ReviewQueue, ReviewSession, ItemResult, PendingCapture
from .pipeline import Pipeline, build_pipeline

__all__ = [
    "CaptureLog",
    "read_capture_export",
    "IntakeQueue",
    "IntakeItem",
    "QueueReason",
    "Classification",
    "Classifier",
    "LLMClassifier",
    "RuleBasedClassifier",
    "Materializer",
    "TriageRouter",
    "RouteResult",
    "RouteStatus",
    "CorrectionWorkflow",
    "ReviewQueue",
    "ReviewSession",
    "ItemResult",
    "PendingCapture",
    "Pipeline",
    "build_pipeline",
]
