"""Shared fixtures: in-memory store, scripted classifier, wired pipeline."""

import pytest

from brain.common.config import BrainConfig
from brain.common.errors import ClassificationUnavailable
from brain.common.store import MemoryStore
from brain.intake.classifier import Classification, Classifier
from brain.intake.pipeline import build_pipeline


class ScriptedClassifier(Classifier):
    """Returns queued classifications in order; an exception in the queue is raised instead"""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def push(self, result):
        self.results.append(result)

    def classify(self, text):
        self.calls.append(text)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        if isinstance(result, dict):
            return Classification.model_validate(result)
        return result


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def config():
    cfg = BrainConfig()
    cfg.storage.backend = "memory"
    cfg.triage.classifier = "rules"
    cfg.triage.default_domain = "General"
    return cfg


@pytest.fixture
def classifier():
    return ScriptedClassifier()


@pytest.fixture
def pipeline(config, store, classifier):
    return build_pipeline(config, store=store, classifier=classifier)


@pytest.fixture
def unavailable():
    return ClassificationUnavailable("classifier timed out")
