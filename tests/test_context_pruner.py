"""Tests for threshold and capacity pruning."""

import pytest

from context_engine.domain.context.context_pruner import PruningEngine
from context_engine.domain.context.memory.item_registry import ItemRegistry
from context_engine.domain.context.memory.session_store import SessionStore
from context_engine.domain.models.errors import NotFoundError, ValidationError
from context_engine.infrastructure.config import ContextSettings
from context_engine.infrastructure.observability.logging import metrics


@pytest.fixture
def registry(clock):
    return ItemRegistry(SessionStore(clock=clock))


@pytest.fixture
def pruner(registry):
    return PruningEngine(registry, ContextSettings(max_items_per_session=3, prune_default_max_relevance=0.1))


async def add(registry, session_id, name, relevance):
    return await registry.add_item(session_id, {"type": "feature", "content": name, "relevance": relevance})


async def contents(registry, session_id):
    return [item.content for item in await registry.list_items(session_id)]


class TestThresholdPruning:
    @pytest.mark.asyncio
    async def test_requires_both_age_and_relevance(self, registry, pruner, clock):
        session = await registry.session_store.create_session("p1")
        await add(registry, session.id, "old-irrelevant", 0.1)
        await add(registry, session.id, "old-relevant", 0.8)
        await add(registry, session.id, "old-at-ceiling", 0.2)
        clock.advance(ms=1500)
        await add(registry, session.id, "fresh-irrelevant", 0.1)
        clock.advance(ms=500)

        removed = await pruner.prune(session.id, {"minAge": 1000, "maxRelevance": 0.2})

        assert len(removed) == 2
        assert await contents(registry, session.id) == ["old-relevant", "fresh-irrelevant"]

    @pytest.mark.asyncio
    async def test_age_must_exceed_threshold(self, registry, pruner, clock):
        session = await registry.session_store.create_session("p1")
        await add(registry, session.id, "exactly-min-age", 0.0)
        clock.advance(ms=1000)

        assert await pruner.prune(session.id, {"min_age": 1000, "max_relevance": 0.5}) == []

    @pytest.mark.asyncio
    async def test_age_only_uses_default_relevance_ceiling(self, registry, pruner, clock):
        session = await registry.session_store.create_session("p1")
        await add(registry, session.id, "near-zero", 0.05)
        await add(registry, session.id, "modest", 0.3)
        clock.advance(ms=10)

        await pruner.prune(session.id, {"minAge": 0})

        assert await contents(registry, session.id) == ["modest"]

    @pytest.mark.asyncio
    async def test_relevance_only_ignores_age(self, registry, pruner):
        session = await registry.session_store.create_session("p1")
        await add(registry, session.id, "junk", 0.2)
        await add(registry, session.id, "keep", 0.6)

        removed = await pruner.prune(session.id, {"maxRelevance": 0.5})

        assert len(removed) == 1
        assert await contents(registry, session.id) == ["keep"]

    @pytest.mark.asyncio
    async def test_touches_session_only_when_something_was_removed(self, registry, pruner, clock):
        session = await registry.session_store.create_session("p1")
        await add(registry, session.id, "keep", 0.9)
        before = (await registry.session_store.get_session(session.id)).updated_at
        clock.advance(seconds=5)

        await pruner.prune(session.id, {"maxRelevance": 0.1})

        assert (await registry.session_store.get_session(session.id)).updated_at == before


class TestCapacityPruning:
    @pytest.mark.asyncio
    async def test_under_capacity_is_untouched(self, registry, pruner):
        session = await registry.session_store.create_session("p1")
        for n in range(3):
            await add(registry, session.id, f"item {n}", 0.0)

        assert await pruner.prune(session.id) == []
        assert len(await registry.list_items(session.id)) == 3

    @pytest.mark.asyncio
    async def test_evicts_lowest_relevance_then_oldest(self, registry, pruner, clock):
        session = await registry.session_store.create_session("p1")
        await add(registry, session.id, "low-older", 0.2)
        clock.advance(seconds=1)
        await add(registry, session.id, "top", 0.9)
        clock.advance(seconds=1)
        await add(registry, session.id, "low-newer", 0.2)
        clock.advance(seconds=1)
        await add(registry, session.id, "mid", 0.7)

        removed = await pruner.prune(session.id)

        assert len(removed) == 1
        assert await contents(registry, session.id) == ["top", "low-newer", "mid"]
        assert metrics.get_metrics_summary()["context.items_pruned"] == 1

    @pytest.mark.asyncio
    async def test_evicts_until_back_at_capacity(self, registry, pruner):
        session = await registry.session_store.create_session("p1")
        for n, relevance in enumerate([0.5, 0.1, 0.9, 0.3, 0.8, 0.2]):
            await add(registry, session.id, f"item {n}", relevance)

        removed = await pruner.prune(session.id, {})

        assert len(removed) == 3
        assert await contents(registry, session.id) == ["item 0", "item 2", "item 4"]


class TestPruneErrors:
    @pytest.mark.asyncio
    async def test_unknown_session(self, pruner):
        with pytest.raises(NotFoundError):
            await pruner.prune("missing")

    @pytest.mark.asyncio
    async def test_invalid_options(self, registry, pruner):
        session = await registry.session_store.create_session("p1")

        with pytest.raises(ValidationError):
            await pruner.prune(session.id, {"minAge": -1})
