from typing import Dict, List, Any, Optional, Union
from datetime import datetime
import structlog

from context_engine.domain.context.memory.item_registry import ItemRegistry
from context_engine.domain.models.context_item import Clock, ContextItem, PruneOptions, coerce_model
from context_engine.infrastructure.config import ContextSettings
from context_engine.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)


class PruningEngine:
    """Removes items to keep a session within age, relevance and capacity bounds.

    Two policies:

    * thresholds: an item goes only when it is older than ``min_age`` AND at
      or below ``max_relevance``; old-but-relevant and fresh-but-irrelevant
      items both stay.
    * capacity (no thresholds given): above ``max_items_per_session`` the
      lowest-relevance items go first, oldest first among equals.

    Pruning only happens when a caller asks for it.
    """

    def __init__(self, item_registry: ItemRegistry, settings: ContextSettings, clock: Optional[Clock] = None):
        self.item_registry = item_registry
        self.settings = settings
        self.clock = clock or item_registry.clock

    async def prune(
        self,
        session_id: str,
        options: Union[PruneOptions, Dict[str, Any], None] = None
    ) -> List[str]:
        """Prune the session and return the removed item ids"""

        options = coerce_model(PruneOptions, options, "prune options")

        if options.has_thresholds:
            max_relevance = (
                options.max_relevance if options.max_relevance is not None
                else self.settings.prune_default_max_relevance
            )
            now = self.clock()
            policy = "thresholds"
            removed = await self.item_registry.remove_selected(
                session_id,
                lambda items: self.select_by_thresholds(items, now, options.min_age, max_relevance)
            )
        else:
            policy = "capacity"
            removed = await self.item_registry.remove_selected(
                session_id,
                lambda items: self.select_over_capacity(items, self.settings.max_items_per_session)
            )

        if removed:
            metrics.increment_counter("context.items_pruned", len(removed), tags={"policy": policy})
        logger.info("Pruned context", session_id=session_id, policy=policy, removed=len(removed))
        return removed

    @staticmethod
    def select_by_thresholds(
        items: List[ContextItem],
        now: datetime,
        min_age: Optional[float],
        max_relevance: float
    ) -> List[str]:
        return [
            item.id for item in items
            if (min_age is None or item.age_ms(now) > min_age) and item.relevance <= max_relevance
        ]

    @staticmethod
    def select_over_capacity(items: List[ContextItem], capacity: int) -> List[str]:
        overflow = len(items) - capacity
        if overflow <= 0:
            return []

        eviction_order = sorted(items, key=lambda item: (item.relevance, item.timestamp))
        return [item.id for item in eviction_order[:overflow]]
