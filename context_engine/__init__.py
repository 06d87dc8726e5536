"""Session context for AI coding agents: registration, ranked retrieval, pruning and summaries."""

from context_engine.domain.context.context_manager import ContextManager
from context_engine.domain.context.context_ranker import EmbeddingScorer, KeywordScorer, Scorer
from context_engine.domain.context.context_retriever import RetrievalResult
from context_engine.domain.llm.summarizer import ExtractiveSummarizer, LLMSummarizer, Summarizer
from context_engine.domain.models.context_item import (
    ContextItem,
    ContextSession,
    ContextSummary,
    ContextType,
    NewContextItem,
    PruneOptions,
    RetrievalOptions,
)
from context_engine.domain.models.errors import (
    ContextError,
    DegradedRetrievalWarning,
    NotFoundError,
    PromptNotFoundError,
    ScorerError,
    SummarizationError,
    ValidationError,
)
from context_engine.infrastructure.config import ContextSettings, get_settings

__version__ = "0.1.0"

__all__ = [
    "ContextManager",
    "EmbeddingScorer",
    "KeywordScorer",
    "Scorer",
    "RetrievalResult",
    "ExtractiveSummarizer",
    "LLMSummarizer",
    "Summarizer",
    "ContextItem",
    "ContextSession",
    "ContextSummary",
    "ContextType",
    "NewContextItem",
    "PruneOptions",
    "RetrievalOptions",
    "ContextError",
    "DegradedRetrievalWarning",
    "NotFoundError",
    "PromptNotFoundError",
    "ScorerError",
    "SummarizationError",
    "ValidationError",
    "ContextSettings",
    "get_settings",
]
