"""
Group store tests against the SQLite key-value backend.
"""

import asyncio
import gc
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from supervisor_bot.errors import GroupAlreadyExists, GroupNotFound, StoreUnavailable, ValidationError
from supervisor_bot.models import GroupRecord


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test_round_trip(self, store, active_record):
        await store.create(-100123, active_record)
        loaded = await store.get("-100123")
        assert loaded == active_record

    @pytest.mark.asyncio
    async def test_round_trip_keeps_created_at(self, store):
        created = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        record = GroupRecord(name="G", language="Deutsch", created_at=created)
        await store.create("-1", record)
        assert (await store.get("-1")).created_at == created

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self, store, active_record):
        await store.create("-1", active_record)
        with pytest.raises(GroupAlreadyExists):
            await store.create("-1", active_record)

    @pytest.mark.asyncio
    async def test_get_unknown(self, store):
        with pytest.raises(GroupNotFound):
            await store.get("-404")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "record",
        [
            GroupRecord(name="", language="Deutsch"),
            GroupRecord(name="x" * 256, language="Deutsch"),
            GroupRecord(name="G", language=" "),
            GroupRecord(name="G", language="Deutsch", credit_purchased=Decimal("-1")),
            GroupRecord(name="G", language="Deutsch", credit_purchased=Decimal("1"), credit_used=Decimal("2")),
        ],
    )
    async def test_create_validates(self, store, record):
        with pytest.raises(ValidationError):
            await store.create("-1", record)
        assert not await store.exists("-1")

    @pytest.mark.asyncio
    async def test_empty_group_id_rejected(self, store, active_record):
        with pytest.raises(ValidationError):
            await store.create("  ", active_record)


class TestUpdates:
    @pytest.mark.asyncio
    async def test_set_language_same_value_is_noop(self, store, active_record, monkeypatch):
        await store.create("-1", active_record)
        spy = AsyncMock(wraps=store.kv.set)
        monkeypatch.setattr(store.kv, "set", spy)

        assert await store.set_language("-1", "Deutsch") is False
        spy.assert_not_called()

        assert await store.set_language("-1", "Englisch") is True
        spy.assert_called_once()
        assert (await store.get("-1")).language == "Englisch"

    @pytest.mark.asyncio
    async def test_set_active_same_value_is_noop(self, store, active_record, monkeypatch):
        await store.create("-1", active_record)
        spy = AsyncMock(wraps=store.kv.set)
        monkeypatch.setattr(store.kv, "set", spy)

        assert await store.set_active("-1", True) is False
        spy.assert_not_called()

        assert await store.set_active("-1", False) is True
        assert (await store.get("-1")).is_active is False

    @pytest.mark.asyncio
    async def test_update_refreshes_cache(self, store, cache, active_record):
        await store.create("-1", active_record)
        await store.set_language("-1", "Spanisch")
        await store.set_active("-1", False)
        assert cache.get_language("-1") == "Spanisch"
        assert cache.get_active("-1") is False

    @pytest.mark.asyncio
    async def test_add_credit(self, store, active_record):
        await store.create("-1", active_record)
        record = await store.add_credit("-1", "0.25")
        assert record.credit_purchased == Decimal("1.25")
        assert (await store.get("-1")).credit_purchased == Decimal("1.25")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-1", "abc"])
    async def test_add_credit_rejects_bad_amounts(self, store, active_record, amount):
        await store.create("-1", active_record)
        with pytest.raises(ValidationError):
            await store.add_credit("-1", amount)

    @pytest.mark.asyncio
    async def test_add_credit_keeps_group_inactive(self, store):
        await store.create("-1", GroupRecord(name="G", language="Deutsch"))
        await store.add_credit("-1", 5)
        assert await store.is_active("-1") is False

    @pytest.mark.asyncio
    async def test_rename(self, store, active_record):
        await store.create("-1", active_record)
        assert await store.rename("-1", "Deutschkurs B1") is True
        assert await store.rename("-1", "Deutschkurs B1") is False
        assert (await store.get("-1")).name == "Deutschkurs B1"

    @pytest.mark.asyncio
    async def test_update_record_requires_existing(self, store, active_record):
        with pytest.raises(GroupNotFound):
            await store.update_record("-1", active_record)

    @pytest.mark.asyncio
    async def test_update_record_replaces(self, store, active_record):
        await store.create("-1", active_record)
        replacement = active_record.with_changes(credit_used=Decimal("0.5"))
        await store.update_record("-1", replacement)
        assert (await store.get("-1")).credit_used == Decimal("0.5")

    @pytest.mark.asyncio
    async def test_mutation_on_unknown_group(self, store):
        with pytest.raises(GroupNotFound):
            await store.set_active("-404", True)


class TestRemoveAndList:
    @pytest.mark.asyncio
    async def test_group_locks_released(self, store, active_record):
        await store.create("-1", active_record)
        await store.add_credit("-1", "1")
        await store.remove("-1")
        with pytest.raises(GroupNotFound):
            await store.set_active("-404", True)

        gc.collect()
        assert len(store._locks) == 0

    @pytest.mark.asyncio
    async def test_concurrent_credit_updates_serialize(self, store, active_record):
        await store.create("-1", active_record)

        await asyncio.gather(*(store.add_credit("-1", "0.1") for _ in range(20)))

        assert (await store.get("-1")).credit_purchased == Decimal("3.00")

    @pytest.mark.asyncio
    async def test_remove_unknown_returns_false(self, store, active_record):
        await store.create("-1", active_record)
        assert await store.remove("-404") is False
        ids = [group_id for group_id, _ in await store.list_all()]
        assert "-404" not in ids
        assert ids == ["-1"]

    @pytest.mark.asyncio
    async def test_remove_existing(self, store, cache, active_record):
        await store.create("-1", active_record)
        assert await store.remove("-1") is True
        assert cache.get_active("-1") is None
        assert await store.list_all() == []
        assert await store.is_active("-1") is False

    @pytest.mark.asyncio
    async def test_list_only_group_keys(self, store, kv, active_record):
        await store.create("-1", active_record)
        await store.create("-2", active_record.with_changes(name="Other"))
        await kv.set("unrelated", "value")

        groups = dict(await store.list_all())
        assert set(groups) == {"-1", "-2"}
        assert groups["-2"].name == "Other"

    @pytest.mark.asyncio
    async def test_list_skips_unreadable_records(self, store, kv, active_record):
        await store.create("-1", active_record)
        await kv.set("group:-2", "not json")

        assert [group_id for group_id, _ in await store.list_all()] == ["-1"]

    @pytest.mark.asyncio
    async def test_get_unreadable_record(self, store, kv):
        await kv.set("group:-2", "{broken")
        with pytest.raises(StoreUnavailable):
            await store.get("-2")


class TestCachedReads:
    @pytest.mark.asyncio
    async def test_is_active_served_from_cache(self, store, kv, active_record, monkeypatch):
        await store.create("-1", active_record)
        spy = AsyncMock(wraps=kv.get)
        monkeypatch.setattr(kv, "get", spy)

        assert await store.is_active("-1") is True
        assert await store.get_language("-1") == "Deutsch"
        spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_cache_miss_reads_store(self, store, cache, active_record):
        await store.create("-1", active_record)
        cache.clear()

        assert await store.get_language("-1") == "Deutsch"
        assert cache.get_active("-1") is True

    @pytest.mark.asyncio
    async def test_unknown_group_reads(self, store):
        assert await store.is_active("-404") is False
        assert await store.get_language("-404") is None

    @pytest.mark.asyncio
    async def test_store_failure_is_not_masked(self, store, kv, cache, monkeypatch):
        cache.clear()
        monkeypatch.setattr(kv, "get", AsyncMock(side_effect=StoreUnavailable("down")))
        with pytest.raises(StoreUnavailable):
            await store.is_active("-1")
