"""
Shared test setup: isolated settings and in-memory stores.

Settings are read at import time, so the environment is pinned here
before any test module imports app.config.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_TOKENS"] = "test-token=user-1,other-token=user-2"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from app.core.analytics.stores import (  # noqa: E402
    InMemoryFeedbackRepository,
    InMemoryInsightRepository,
    InMemoryPatternRepository,
    InMemoryPipelineRepository,
    InMemoryRecordProvider,
)


class Stores:
    """One set of in-memory repositories per test."""

    def __init__(self):
        self.records = InMemoryRecordProvider()
        self.patterns = InMemoryPatternRepository()
        self.feedback = InMemoryFeedbackRepository()
        self.insights = InMemoryInsightRepository()
        self.pipelines = InMemoryPipelineRepository()


@pytest.fixture
def stores():
    return Stores()
