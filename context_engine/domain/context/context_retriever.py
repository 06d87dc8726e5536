from typing import Dict, List, Any, Optional, Iterator, Union
from dataclasses import dataclass
from datetime import datetime
import asyncio
import time
import structlog

from context_engine.domain.context.context_ranker import Scorer, ensure_score
from context_engine.domain.context.memory.item_registry import ItemRegistry
from context_engine.domain.models.context_item import (
    Clock, ContextItem, RetrievalOptions, coerce_model
)
from context_engine.domain.models.errors import DegradedRetrievalWarning, ValidationError
from context_engine.infrastructure.config import ContextSettings
from context_engine.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)


@dataclass
class RetrievalResult:
    """Ranked items plus a warning when scoring was unavailable.

    Behaves like the ordered item list for iteration, indexing and len().
    """
    items: List[ContextItem]
    warning: Optional[DegradedRetrievalWarning] = None

    @property
    def degraded(self) -> bool:
        return self.warning is not None

    def __iter__(self) -> Iterator[ContextItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]


def rank_by_relevance(items: List[ContextItem]) -> List[ContextItem]:
    """Order by stored relevance, most recent first on ties"""
    return sorted(items, key=lambda item: (-item.relevance, -item.timestamp.timestamp()))


def matches_where(item: ContextItem, where: Dict[str, Any]) -> bool:
    return all(key in item.metadata and item.metadata[key] == value for key, value in where.items())


class RetrievalEngine:
    """Ranks and filters a session's items for a query"""

    def __init__(
        self,
        item_registry: ItemRegistry,
        scorer: Scorer,
        settings: ContextSettings,
        clock: Optional[Clock] = None
    ):
        self.item_registry = item_registry
        self.scorer = scorer
        self.settings = settings
        self.clock = clock or item_registry.clock

    async def retrieve(
        self,
        session_id: str,
        query_text: str,
        options: Union[RetrievalOptions, Dict[str, Any], None] = None
    ) -> RetrievalResult:
        """Filter, score and rank the session's items against ``query_text``"""

        options = coerce_model(RetrievalOptions, options, "retrieval options")
        if not isinstance(query_text, str):
            raise ValidationError("query_text must be a string")

        started = time.perf_counter()

        # Lock is held only while copying; scoring runs on the copy
        snapshot = await self.item_registry.snapshot(session_id)
        candidates = self.filter_items(snapshot.items, options, self.clock())

        warning = None
        if candidates:
            try:
                query_scores = await self._score_candidates(query_text, candidates)
                ranked = self._rank_by_combined_score(candidates, query_scores)
            except Exception as e:
                reason = "scorer timed out" if isinstance(e, asyncio.TimeoutError) else f"scorer failed: {e}"
                warning = DegradedRetrievalWarning(session_id, reason)
                metrics.increment_counter("retrieval.degraded")
                logger.warning(
                    "Scorer unavailable, ranking by stored relevance",
                    session_id=session_id,
                    reason=reason,
                    candidates=len(candidates)
                )
                ranked = rank_by_relevance(candidates)
        else:
            ranked = []

        if options.max_items is not None:
            ranked = ranked[:options.max_items]

        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_latency("retrieval", duration_ms, tags={"degraded": str(warning is not None).lower()})
        logger.info(
            "Retrieved context",
            session_id=session_id,
            query=query_text[:50],
            candidates=len(candidates),
            returned=len(ranked),
            degraded=warning is not None
        )

        return RetrievalResult(items=ranked, warning=warning)

    def filter_items(self, items: List[ContextItem], options: RetrievalOptions, now: datetime) -> List[ContextItem]:
        """Apply type, relevance, age and metadata filters in that order"""

        if options.include_types is not None:
            included = set(options.include_types)
            items = [item for item in items if item.type in included]

        if options.exclude_types:
            excluded = set(options.exclude_types)
            items = [item for item in items if item.type not in excluded]

        items = [item for item in items if item.relevance >= options.min_relevance]

        if options.max_age is not None:
            items = [item for item in items if item.age_ms(now) <= options.max_age]

        if options.where:
            items = [item for item in items if matches_where(item, options.where)]

        return items

    async def _score_candidates(self, query_text: str, candidates: List[ContextItem]) -> List[float]:
        tasks = [asyncio.ensure_future(self.scorer.score(query_text, item.content)) for item in candidates]
        try:
            raw_scores = await asyncio.wait_for(
                asyncio.gather(*tasks),
                timeout=self.settings.scorer_timeout_seconds
            )
        finally:
            # No scorer call outlives the retrieval
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return [ensure_score(score) for score in raw_scores]

    def _rank_by_combined_score(self, candidates: List[ContextItem], query_scores: List[float]) -> List[ContextItem]:
        relevance_weight = self.settings.relevance_weight
        query_weight = self.settings.query_weight

        scored = [
            (relevance_weight * item.relevance + query_weight * query_score, item)
            for item, query_score in zip(candidates, query_scores)
        ]
        scored.sort(key=lambda pair: (-pair[0], -pair[1].timestamp.timestamp()))
        return [item for _, item in scored]
