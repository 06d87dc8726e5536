"""Tests for per-session item CRUD."""

import asyncio

import pytest

from context_engine.domain.context.memory.item_registry import ItemRegistry
from context_engine.domain.context.memory.session_store import SessionStore
from context_engine.domain.models.context_item import ContextType, NewContextItem
from context_engine.domain.models.errors import NotFoundError, ValidationError
from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return ItemRegistry(SessionStore(clock=clock))


async def new_session(registry):
    session = await registry.session_store.create_session("p1")
    return session.id


def code_item(content="print('hi')", relevance=0.5, **extra):
    return {"type": "code", "content": content, "relevance": relevance, **extra}


class TestAddItem:
    @pytest.mark.asyncio
    async def test_stamps_id_and_timestamp(self, registry, clock):
        session_id = await new_session(registry)
        clock.advance(seconds=5)

        item = await registry.add_item(session_id, code_item(source="a.py", metadata={"k": "v"}))

        assert item.id
        assert item.type is ContextType.CODE
        assert item.timestamp == clock()
        assert item.source == "a.py"
        assert item.metadata == {"k": "v"}

        session = await registry.session_store.get_session(session_id)
        assert [i.id for i in session.items] == [item.id]
        assert session.updated_at == clock()

    @pytest.mark.asyncio
    async def test_accepts_model_input(self, registry):
        session_id = await new_session(registry)

        item = await registry.add_item(
            session_id,
            NewContextItem(type=ContextType.FEATURE, content="dark mode", relevance=0.7)
        )

        assert item.type is ContextType.FEATURE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("relevance", [-0.1, 1.1])
    async def test_out_of_range_relevance_rejected(self, registry, relevance):
        session_id = await new_session(registry)

        with pytest.raises(ValidationError):
            await registry.add_item(session_id, code_item(relevance=relevance))

        assert await registry.list_items(session_id) == []

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, registry):
        session_id = await new_session(registry)

        with pytest.raises(ValidationError):
            await registry.add_item(session_id, {"type": "email", "content": "x", "relevance": 0.5})

        assert await registry.list_items(session_id) == []

    @pytest.mark.asyncio
    async def test_missing_session(self, registry):
        with pytest.raises(NotFoundError):
            await registry.add_item("missing", code_item())

    @pytest.mark.asyncio
    async def test_generated_ids_are_distinct(self, registry):
        session_id = await new_session(registry)

        first = await registry.add_item(session_id, code_item())
        second = await registry.add_item(session_id, code_item())

        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_explicit_id_must_be_unique_per_session(self, registry):
        session_id = await new_session(registry)
        other_session_id = await new_session(registry)

        await registry.add_item(session_id, code_item(id="item-1"))
        with pytest.raises(ValidationError, match="already exists"):
            await registry.add_item(session_id, code_item(id="item-1"))

        # Same id in another session is fine
        other = await registry.add_item(other_session_id, code_item(id="item-1"))
        assert other.id == "item-1"
        assert len(await registry.list_items(session_id)) == 1

    @pytest.mark.asyncio
    async def test_returned_item_is_a_copy(self, registry):
        session_id = await new_session(registry)
        item = await registry.add_item(session_id, code_item(metadata={"tags": ["x"]}))

        item.metadata["tags"].append("y")
        item.relevance = 0.0

        stored = await registry.get_item(session_id, item.id)
        assert stored.metadata == {"tags": ["x"]}
        assert stored.relevance == 0.5

    @pytest.mark.asyncio
    async def test_preserves_insertion_order(self, registry):
        session_id = await new_session(registry)
        ids = [(await registry.add_item(session_id, code_item(relevance=r))).id for r in (0.1, 0.9, 0.5)]

        assert [i.id for i in await registry.list_items(session_id)] == ids

    @pytest.mark.asyncio
    async def test_concurrent_adds_are_not_lost(self, registry):
        session_id = await new_session(registry)

        items = await asyncio.gather(
            *(registry.add_item(session_id, code_item(content=f"chunk {n}")) for n in range(20))
        )

        assert len({item.id for item in items}) == 20
        stored = await registry.list_items(session_id)
        assert {item.id for item in stored} == {item.id for item in items}


class TestRemoveItem:
    @pytest.mark.asyncio
    async def test_removes_and_touches_session(self, registry, clock):
        session_id = await new_session(registry)
        item = await registry.add_item(session_id, code_item())
        clock.advance(seconds=1)

        assert await registry.remove_item(session_id, item.id) is True

        session = await registry.session_store.get_session(session_id)
        assert session.items == []
        assert session.updated_at == clock()

    @pytest.mark.asyncio
    async def test_unknown_item_is_noop(self, registry, clock):
        session_id = await new_session(registry)
        item = await registry.add_item(session_id, code_item())
        before = await registry.session_store.get_session(session_id)
        clock.advance(seconds=1)

        assert await registry.remove_item(session_id, "missing") is False

        after = await registry.session_store.get_session(session_id)
        assert after == before
        assert [i.id for i in after.items] == [item.id]

    @pytest.mark.asyncio
    async def test_unknown_session_is_noop(self, registry):
        assert await registry.remove_item("missing", "missing") is False


class TestUpdateRelevance:
    @pytest.mark.asyncio
    async def test_updates_value(self, registry, clock):
        session_id = await new_session(registry)
        item = await registry.add_item(session_id, code_item(relevance=0.2))
        clock.advance(seconds=3)

        updated = await registry.update_relevance(session_id, item.id, 0.95)

        assert updated.relevance == 0.95
        assert updated.timestamp == item.timestamp
        assert (await registry.get_item(session_id, item.id)).relevance == 0.95
        assert (await registry.session_store.get_session(session_id)).updated_at == clock()

    @pytest.mark.asyncio
    async def test_rejects_out_of_range(self, registry):
        session_id = await new_session(registry)
        item = await registry.add_item(session_id, code_item(relevance=0.2))

        with pytest.raises(ValidationError):
            await registry.update_relevance(session_id, item.id, 1.5)

        assert (await registry.get_item(session_id, item.id)).relevance == 0.2

    @pytest.mark.asyncio
    async def test_missing_item_or_session(self, registry):
        session_id = await new_session(registry)

        with pytest.raises(NotFoundError) as exc_info:
            await registry.update_relevance(session_id, "missing", 0.5)
        assert exc_info.value.item_id == "missing"

        with pytest.raises(NotFoundError):
            await registry.update_relevance("missing", "missing", 0.5)


class TestBulkOperations:
    @pytest.mark.asyncio
    async def test_clear_items(self, registry):
        session_id = await new_session(registry)
        first = await registry.add_item(session_id, code_item())
        second = await registry.add_item(session_id, code_item())

        removed = await registry.clear_items(session_id)

        assert removed == [first.id, second.id]
        assert await registry.list_items(session_id) == []

    @pytest.mark.asyncio
    async def test_remove_selected_ignores_unknown_and_duplicate_ids(self, registry):
        session_id = await new_session(registry)
        keep = await registry.add_item(session_id, code_item(relevance=0.9))
        drop = await registry.add_item(session_id, code_item(relevance=0.1))

        removed = await registry.remove_selected(
            session_id,
            lambda items: [i.id for i in items if i.relevance < 0.5] + [drop.id, "missing"]
        )

        assert removed == [drop.id]
        assert [i.id for i in await registry.list_items(session_id)] == [keep.id]

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self, registry):
        session_id = await new_session(registry)
        await registry.add_item(session_id, code_item())

        snapshot = await registry.snapshot(session_id)
        snapshot.items.clear()

        assert len(await registry.list_items(session_id)) == 1
        assert snapshot.project_id == "p1"
