from typing import Dict, List, Any, Optional, Callable, Iterable, AsyncIterator, Union
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
import copy
import structlog

from context_engine.domain.context.memory.session_store import SessionRecord, SessionStore
from context_engine.domain.models.context_item import (
    Clock, ContextItem, NewContextItem, coerce_model, generate_id, validate_relevance
)
from context_engine.domain.models.errors import NotFoundError, ValidationError
from context_engine.infrastructure.observability.logging import context_logger

logger = structlog.get_logger(__name__)

ItemSelector = Callable[[List[ContextItem]], Iterable[str]]


@dataclass
class SessionSnapshot:
    """Point-in-time copy of a session's items, safe to use without the lock"""
    session_id: str
    project_id: str
    updated_at: datetime
    version: int
    items: List[ContextItem]


class ItemRegistry:
    """Per-session CRUD over context items"""

    def __init__(self, session_store: SessionStore, clock: Optional[Clock] = None):
        self.session_store = session_store
        self.clock = clock or session_store.clock

    @asynccontextmanager
    async def _writing(self, session_id: str) -> AsyncIterator[SessionRecord]:
        record = await self.session_store.require(session_id)
        async with record.lock.write():
            if record.deleted:
                raise NotFoundError(f"Session not found: {session_id}", session_id=session_id)
            yield record

    @asynccontextmanager
    async def _reading(self, session_id: str) -> AsyncIterator[SessionRecord]:
        record = await self.session_store.require(session_id)
        async with record.lock.read():
            if record.deleted:
                raise NotFoundError(f"Session not found: {session_id}", session_id=session_id)
            yield record

    def _touch(self, record: SessionRecord) -> datetime:
        now = self.clock()
        record.updated_at = max(now, record.updated_at)
        record.version += 1
        return now

    async def add_item(self, session_id: str, item: Union[NewContextItem, Dict[str, Any]]) -> ContextItem:
        """Validate and append an item, stamping its id and timestamp"""

        new_item = coerce_model(NewContextItem, item, "context item")
        relevance = validate_relevance(new_item.relevance)

        async with self._writing(session_id) as record:
            if new_item.id is not None:
                if new_item.id in record.items:
                    raise ValidationError(f"Item id already exists in session {session_id}: {new_item.id}")
                item_id = new_item.id
            else:
                item_id = generate_id()
                while item_id in record.items:
                    item_id = generate_id()

            context_item = ContextItem(
                id=item_id,
                type=new_item.type,
                content=new_item.content,
                relevance=relevance,
                source=new_item.source,
                timestamp=self.clock(),
                metadata=copy.deepcopy(new_item.metadata),
            )
            record.items[item_id] = context_item
            self._touch(record)
            stored = context_item.model_copy(deep=True)
            item_count = len(record.items)

        context_logger.log_context_update(
            session_id,
            context_type=stored.type.value,
            action="add",
            details={"item_id": item_id, "source": stored.source, "item_count": item_count}
        )
        return stored

    async def remove_item(self, session_id: str, item_id: str) -> bool:
        """Remove an item; unknown sessions and ids are a no-op returning False"""

        record = await self.session_store.find(session_id)
        if record is None:
            logger.debug("Remove on unknown session ignored", session_id=session_id, item_id=item_id)
            return False

        async with record.lock.write():
            if record.deleted or item_id not in record.items:
                return False
            removed = record.items.pop(item_id)
            self._touch(record)

        context_logger.log_context_update(
            session_id,
            context_type=removed.type.value,
            action="remove",
            details={"item_id": item_id}
        )
        return True

    async def update_relevance(self, session_id: str, item_id: str, relevance: float) -> ContextItem:
        """Set an item's stored relevance and return the updated copy"""

        relevance = validate_relevance(relevance)

        async with self._writing(session_id) as record:
            current = record.items.get(item_id)
            if current is None:
                raise NotFoundError(
                    f"Item not found in session {session_id}: {item_id}",
                    session_id=session_id,
                    item_id=item_id
                )
            updated = current.model_copy(update={"relevance": relevance})
            record.items[item_id] = updated
            self._touch(record)
            result = updated.model_copy(deep=True)

        context_logger.log_context_update(
            session_id,
            context_type=result.type.value,
            action="update_relevance",
            details={"item_id": item_id, "previous": current.relevance, "relevance": relevance}
        )
        return result

    async def get_item(self, session_id: str, item_id: str) -> ContextItem:
        async with self._reading(session_id) as record:
            item = record.items.get(item_id)
            if item is None:
                raise NotFoundError(
                    f"Item not found in session {session_id}: {item_id}",
                    session_id=session_id,
                    item_id=item_id
                )
            return item.model_copy(deep=True)

    async def snapshot(self, session_id: str) -> SessionSnapshot:
        """Copy the session's items under the shared lock"""

        async with self._reading(session_id) as record:
            return SessionSnapshot(
                session_id=record.id,
                project_id=record.project_id,
                updated_at=record.updated_at,
                version=record.version,
                items=[item.model_copy(deep=True) for item in record.items.values()],
            )

    async def list_items(self, session_id: str) -> List[ContextItem]:
        return (await self.snapshot(session_id)).items

    async def clear_items(self, session_id: str) -> List[str]:
        """Remove every item from the session, keeping the session itself"""

        async with self._writing(session_id) as record:
            removed_ids = list(record.items)
            record.items.clear()
            if removed_ids:
                self._touch(record)

        context_logger.log_context_update(
            session_id,
            context_type="all",
            action="clear",
            details={"removed": len(removed_ids)}
        )
        return removed_ids

    async def remove_selected(self, session_id: str, selector: ItemSelector, action: str = "prune") -> List[str]:
        """Remove the ids ``selector`` picks, choosing and removing under one exclusive hold"""

        async with self._writing(session_id) as record:
            picked = dict.fromkeys(selector(list(record.items.values())))
            selected = [item_id for item_id in picked if item_id in record.items]
            for item_id in selected:
                del record.items[item_id]
            if selected:
                self._touch(record)
            remaining = len(record.items)

        if selected:
            context_logger.log_context_update(
                session_id,
                context_type="all",
                action=action,
                details={"removed": len(selected), "item_ids": selected, "item_count": remaining}
            )
        return selected
