"""Pytest configuration and fixtures."""

import pytest

from context_engine.domain.context.context_manager import ContextManager
from context_engine.infrastructure.config import ContextSettings
from context_engine.infrastructure.observability.logging import metrics
from tests.fakes import FakeClock, RecordingSummarizer, word_count


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return ContextSettings(
        configure_logging=False,
        max_items_per_session=3,
        scorer_timeout_seconds=0.05,
        summarizer_timeout_seconds=0.05,
        summary_cache_ttl_seconds=300,
    )


@pytest.fixture
def summarizer():
    return RecordingSummarizer()


@pytest.fixture
def manager(settings, clock):
    return ContextManager(settings=settings, clock=clock, token_counter=word_count)
