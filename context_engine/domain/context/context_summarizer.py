from typing import Any, List, Optional, Tuple
import asyncio
import time
import structlog

from context_engine.domain.context.context_retriever import rank_by_relevance
from context_engine.domain.context.memory.item_registry import ItemRegistry
from context_engine.domain.context.memory.summary_cache import SummaryCache
from context_engine.domain.llm.summarizer import Summarizer
from context_engine.domain.llm.token_counter import TokenCounterFn
from context_engine.domain.models.context_item import Clock, ContextItem, ContextSummary
from context_engine.domain.models.errors import SummarizationError, ValidationError
from context_engine.infrastructure.config import ContextSettings
from context_engine.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)


class SummarizationCoordinator:
    """Selects the most relevant items under a token budget and has them summarized"""

    def __init__(
        self,
        item_registry: ItemRegistry,
        summarizer: Summarizer,
        settings: ContextSettings,
        token_counter: TokenCounterFn,
        summary_cache: Optional[SummaryCache] = None,
        clock: Optional[Clock] = None
    ):
        self.item_registry = item_registry
        self.summarizer = summarizer
        self.settings = settings
        self.token_counter = token_counter
        self.summary_cache = summary_cache
        self.clock = clock or item_registry.clock

    async def summarize(self, session_id: str, max_tokens: Optional[int] = None) -> ContextSummary:
        """Build a summary of the session's highest-relevance items within ``max_tokens``"""

        max_tokens = self._resolve_budget(max_tokens)
        snapshot = await self.item_registry.snapshot(session_id)

        if self.summary_cache is not None:
            cached = await self.summary_cache.get(session_id, max_tokens, snapshot.version)
            if cached is not None:
                logger.debug("Summary cache hit", session_id=session_id, max_tokens=max_tokens)
                return cached

        selected = self.select_within_budget(rank_by_relevance(snapshot.items), max_tokens)

        if selected:
            text, tokens = await self._call_summarizer(session_id, selected, max_tokens)
        else:
            text, tokens = "", 0

        summary = ContextSummary(
            summary=text,
            tokens=tokens,
            timestamp=self.clock(),
            source_items=[item.id for item in selected]
        )

        if self.summary_cache is not None:
            await self.summary_cache.set(session_id, max_tokens, summary, snapshot.version)

        logger.info(
            "Generated context summary",
            session_id=session_id,
            max_tokens=max_tokens,
            source_items=len(selected),
            available_items=len(snapshot.items),
            tokens=tokens
        )
        return summary

    def select_within_budget(self, ranked: List[ContextItem], max_tokens: int) -> List[ContextItem]:
        """Greedy prefix of ``ranked`` whose estimated cost fits the budget.

        Stops at the first item that would overflow; items are never cut.
        """

        selected = []
        used = 0
        for item in ranked:
            cost = self.token_counter(item.content)
            if used + cost > max_tokens:
                break
            selected.append(item)
            used += cost
        return selected

    async def _call_summarizer(
        self,
        session_id: str,
        items: List[ContextItem],
        max_tokens: int
    ) -> Tuple[str, int]:
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self.summarizer.summarize(items, max_tokens),
                timeout=self.settings.summarizer_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            metrics.increment_counter("summarization.failed", tags={"reason": "timeout"})
            logger.error("Summarizer timed out", session_id=session_id)
            raise SummarizationError(session_id, "summarizer timed out") from e
        except Exception as e:
            metrics.increment_counter("summarization.failed", tags={"reason": "error"})
            logger.error("Summarizer failed", session_id=session_id, error=str(e))
            raise SummarizationError(session_id, str(e) or type(e).__name__) from e

        metrics.record_latency("summarization", (time.perf_counter() - started) * 1000)
        return self._check_result(session_id, result)

    @staticmethod
    def _check_result(session_id: str, result: Any) -> Tuple[str, int]:
        if not isinstance(result, tuple) or len(result) != 2:
            raise SummarizationError(session_id, "summarizer returned a malformed result")

        text, tokens = result
        if not isinstance(text, str) or isinstance(tokens, bool) or not isinstance(tokens, int) or tokens < 0:
            raise SummarizationError(session_id, "summarizer returned a malformed result")
        return text, tokens

    def _resolve_budget(self, max_tokens: Optional[int]) -> int:
        if max_tokens is None:
            return self.settings.default_summary_max_tokens
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
            raise ValidationError(f"max_tokens must be a positive integer, got {max_tokens!r}")
        return max_tokens
