from typing import Dict, List, Any, Optional, Union
import structlog

from langchain_core.language_models.chat_models import BaseChatModel

from context_engine.domain.models.context_item import (
    Clock, ContextItem, ContextSession, ContextSummary, ContextType, NewContextItem,
    PruneOptions, RetrievalOptions, utcnow, validate_identifier
)
from context_engine.domain.models.errors import ValidationError
from context_engine.domain.llm.prompt_loader import PromptLoader
from context_engine.domain.llm.summarizer import ExtractiveSummarizer, LLMSummarizer, Summarizer
from context_engine.domain.llm.token_counter import TokenCounter, TokenCounterFn
from context_engine.infrastructure.config import ContextSettings, get_settings
from context_engine.infrastructure.observability.logging import setup_logging
from .memory.session_store import SessionStore
from .memory.item_registry import ItemRegistry
from .memory.summary_cache import SummaryCache
from .context_ranker import KeywordScorer, Scorer
from .context_retriever import RetrievalEngine, RetrievalResult
from .context_pruner import PruningEngine
from .context_summarizer import SummarizationCoordinator

logger = structlog.get_logger(__name__)


class ContextManager:
    """Public entry point for session context: items, retrieval, pruning, summaries.

    Collaborators are optional and default to offline implementations: keyword
    scoring and an extractive summarizer. Pass ``chat_model`` to summarize
    through an LLM with the packaged summary prompt instead.
    """

    def __init__(
        self,
        settings: Optional[ContextSettings] = None,
        scorer: Optional[Scorer] = None,
        summarizer: Optional[Summarizer] = None,
        chat_model: Optional[BaseChatModel] = None,
        token_counter: Optional[TokenCounterFn] = None,
        clock: Clock = utcnow
    ):
        self.settings = settings or get_settings()
        self.token_counter = token_counter or TokenCounter(self.settings.token_encoding)
        self.prompt_loader = PromptLoader(self.settings.prompts_path)

        if summarizer is None:
            if chat_model is not None:
                summarizer = LLMSummarizer(
                    chat_model,
                    self.prompt_loader,
                    prompt_name=self.settings.summary_prompt_name,
                    token_counter=self.token_counter
                )
            else:
                summarizer = ExtractiveSummarizer(self.token_counter)
        self.summarizer = summarizer

        self.session_store = SessionStore(clock)
        self.item_registry = ItemRegistry(self.session_store)
        self.summary_cache = SummaryCache(ttl=self.settings.summary_cache_ttl_seconds, clock=clock)
        self.retrieval_engine = RetrievalEngine(self.item_registry, scorer or KeywordScorer(), self.settings)
        self.pruning_engine = PruningEngine(self.item_registry, self.settings)
        self.summarization_coordinator = SummarizationCoordinator(
            self.item_registry,
            self.summarizer,
            self.settings,
            self.token_counter,
            summary_cache=self.summary_cache
        )
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Prepare logging and verify the summary prompt; safe to call more than once"""

        if self._initialized:
            return

        if self.settings.configure_logging:
            setup_logging(self.settings.log_level, self.settings.log_format)

        if isinstance(self.summarizer, LLMSummarizer):
            await self.prompt_loader.load_prompt_template(self.summarizer.prompt_name)

        self._initialized = True
        logger.info(
            "Context manager initialized",
            relevance_weight=self.settings.relevance_weight,
            query_weight=self.settings.query_weight,
            max_items_per_session=self.settings.max_items_per_session,
            summarizer=type(self.summarizer).__name__
        )

    # Sessions

    async def create_session(self, project_id: str, metadata: Optional[Dict[str, Any]] = None) -> ContextSession:
        return await self.session_store.create_session(project_id, metadata)

    async def get_session(self, session_id: str) -> Optional[ContextSession]:
        return await self.session_store.get_session(session_id)

    async def list_sessions(self, project_id: Optional[str] = None) -> List[ContextSession]:
        return await self.session_store.list_sessions(project_id)

    async def delete_session(self, session_id: str) -> bool:
        deleted = await self.session_store.delete_session(session_id)
        await self.summary_cache.invalidate_session(session_id)
        return deleted

    async def clear_session(self, session_id: str) -> int:
        """Remove every item but keep the session; returns the number removed"""

        removed = await self.item_registry.clear_items(session_id)
        await self.summary_cache.invalidate_items(session_id, removed)
        return len(removed)

    # Items

    async def add_context_item(
        self,
        session_id: str,
        item: Union[NewContextItem, Dict[str, Any]]
    ) -> ContextItem:
        return await self.item_registry.add_item(session_id, item)

    async def get_context_item(self, session_id: str, item_id: str) -> ContextItem:
        return await self.item_registry.get_item(session_id, item_id)

    async def remove_context_item(self, session_id: str, item_id: str) -> bool:
        """Remove an item; removing something that is not there succeeds quietly"""

        removed = await self.item_registry.remove_item(session_id, item_id)
        if removed:
            await self.summary_cache.invalidate_items(session_id, [item_id])
        return removed

    async def update_item_relevance(self, session_id: str, item_id: str, relevance: float) -> ContextItem:
        return await self.item_registry.update_relevance(session_id, item_id, relevance)

    async def register_conversation(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        relevance: Optional[float] = None
    ) -> ContextItem:
        """Register one conversation turn, tagged with its speaker role"""

        validate_identifier(role, "role")
        return await self.item_registry.add_item(
            session_id,
            {
                "type": ContextType.CONVERSATION,
                "content": content,
                "relevance": relevance if relevance is not None else self.settings.default_conversation_relevance,
                "source": role,
                "metadata": {**(metadata or {}), "role": role},
            }
        )

    async def register_code_file(
        self,
        session_id: str,
        file_path: str,
        content: str,
        language: str,
        metadata: Optional[Dict[str, Any]] = None,
        relevance: Optional[float] = None
    ) -> ContextItem:
        """Register a source file, tagged with its path and language"""

        validate_identifier(file_path, "file_path")
        if not isinstance(language, str):
            raise ValidationError("language must be a string")

        return await self.item_registry.add_item(
            session_id,
            {
                "type": ContextType.CODE,
                "content": content,
                "relevance": relevance if relevance is not None else self.settings.default_code_relevance,
                "source": file_path,
                "metadata": {**(metadata or {}), "file_path": file_path, "language": language},
            }
        )

    # Retrieval, summaries, pruning

    async def retrieve_relevant_context(
        self,
        session_id: str,
        text: str,
        options: Union[RetrievalOptions, Dict[str, Any], None] = None
    ) -> RetrievalResult:
        with structlog.contextvars.bound_contextvars(session_id=session_id):
            return await self.retrieval_engine.retrieve(session_id, text, options)

    async def generate_context_summary(self, session_id: str, max_tokens: Optional[int] = None) -> ContextSummary:
        with structlog.contextvars.bound_contextvars(session_id=session_id):
            return await self.summarization_coordinator.summarize(session_id, max_tokens)

    async def prune_context(
        self,
        session_id: str,
        options: Union[PruneOptions, Dict[str, Any], None] = None
    ) -> int:
        """Prune the session and return how many items were removed"""

        with structlog.contextvars.bound_contextvars(session_id=session_id):
            removed = await self.pruning_engine.prune(session_id, options)
        await self.summary_cache.invalidate_items(session_id, removed)
        return len(removed)
