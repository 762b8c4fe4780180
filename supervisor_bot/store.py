"""
Authoritative per-group records on top of a key-value backend.

Every read-modify-write runs under a per-group asyncio lock, so credit and
activation changes for one group are applied one at a time within the
process. Locks are only held around store I/O, never around provider calls.
"""

import asyncio
import logging
import weakref
from decimal import InvalidOperation
from typing import AsyncIterator, Callable, List, Optional, Tuple, TypeVar

from .cache import GroupCache
from .errors import GroupAlreadyExists, GroupNotFound, StoreUnavailable, ValidationError
from .kvstore import KeyValueStore
from .models import GroupId, GroupRecord, normalize_group_id, quantize_credit, to_decimal

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutation = Callable[[GroupRecord], Tuple[Optional[GroupRecord], T]]


class GroupStore:
    def __init__(
        self,
        kv: KeyValueStore,
        cache: Optional[GroupCache] = None,
        key_prefix: str = "group:",
    ):
        self.kv = kv
        self.cache = cache if cache is not None else GroupCache()
        self.key_prefix = key_prefix
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock(self, group_id: str) -> asyncio.Lock:
        # Entries disappear once no coroutine holds or waits on the lock.
        lock = self._locks.get(group_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[group_id] = lock
        return lock

    def _key(self, group_id: str) -> str:
        return f"{self.key_prefix}{group_id}"

    def _refresh_cache(self, group_id: str, record: GroupRecord) -> None:
        self.cache.set_language(group_id, record.language)
        self.cache.set_active(group_id, record.is_active)

    async def _read(self, group_id: str) -> Optional[GroupRecord]:
        raw = await self.kv.get(self._key(group_id))
        if raw is None:
            return None
        try:
            return GroupRecord.from_json(raw)
        except (ValueError, TypeError, InvalidOperation) as exc:
            logger.error("Unreadable record for group %s: %s", group_id, exc)
            raise StoreUnavailable(f"Unreadable record for group {group_id}") from exc

    async def _write(self, group_id: str, record: GroupRecord) -> None:
        record.validate()
        await self.kv.set(self._key(group_id), record.to_json())
        self._refresh_cache(group_id, record)

    async def get(self, group_id: GroupId) -> GroupRecord:
        key = normalize_group_id(group_id)
        record = await self._read(key)
        if record is None:
            raise GroupNotFound(key)
        return record

    async def exists(self, group_id: GroupId) -> bool:
        return await self.kv.exists(self._key(normalize_group_id(group_id)))

    async def create(self, group_id: GroupId, record: GroupRecord) -> GroupRecord:
        key = normalize_group_id(group_id)
        record.validate()
        async with self._lock(key):
            if await self.kv.exists(self._key(key)):
                raise GroupAlreadyExists(key)
            await self._write(key, record)
        logger.info("Group created: %s (%s)", record.name, key)
        return record

    async def update_record(self, group_id: GroupId, record: GroupRecord) -> GroupRecord:
        key = normalize_group_id(group_id)
        record.validate()
        async with self._lock(key):
            if await self._read(key) is None:
                raise GroupNotFound(key)
            await self._write(key, record)
        return record

    async def mutate(self, group_id: GroupId, change: Mutation) -> T:
        """Apply ``change`` to the current record under the group's lock.

        ``change`` returns ``(new_record, result)``; the record is written only
        when ``new_record`` is not None and differs from the stored one.
        """
        key = normalize_group_id(group_id)
        async with self._lock(key):
            current = await self._read(key)
            if current is None:
                raise GroupNotFound(key)
            updated, result = change(current)
            if updated is not None and updated != current:
                await self._write(key, updated)
            return result

    async def set_language(self, group_id: GroupId, language: str) -> bool:
        if not language or not language.strip():
            raise ValidationError("Language must not be null or empty.")
        language = language.strip()

        def change(record: GroupRecord):
            if record.language == language:
                return None, False
            return record.with_changes(language=language), True

        changed = await self.mutate(group_id, change)
        if changed:
            logger.info("Language for group %s set to %s", group_id, language)
        return changed

    async def set_active(self, group_id: GroupId, is_active: bool) -> bool:
        def change(record: GroupRecord):
            if record.is_active == is_active:
                return None, False
            return record.with_changes(is_active=is_active), True

        changed = await self.mutate(group_id, change)
        if changed:
            logger.info("Group %s %s", group_id, "activated" if is_active else "deactivated")
        return changed

    async def add_credit(self, group_id: GroupId, amount) -> GroupRecord:
        credit = to_decimal(amount, "Credit amount")
        if credit <= 0:
            raise ValidationError("Credit amount must be positive.")

        def change(record: GroupRecord):
            updated = record.with_changes(
                credit_purchased=quantize_credit(record.credit_purchased + credit)
            )
            return updated, updated

        record = await self.mutate(group_id, change)
        logger.info("Added %s credit to group %s (purchased=%s)", credit, group_id, record.credit_purchased)
        return record

    async def rename(self, group_id: GroupId, new_name: str) -> bool:
        name = (new_name or "").strip()

        def change(record: GroupRecord):
            if record.name == name:
                return None, False
            return record.with_changes(name=name), True

        changed = await self.mutate(group_id, change)
        if changed:
            logger.info("Group name updated to '%s' for group ID: %s", name, group_id)
        return changed

    async def remove(self, group_id: GroupId) -> bool:
        key = normalize_group_id(group_id)
        async with self._lock(key):
            existed = await self.kv.delete(self._key(key))
            self.cache.invalidate(key)
        if existed:
            logger.info("Group removed: %s", key)
        return existed

    async def iter_groups(self) -> AsyncIterator[Tuple[str, GroupRecord]]:
        async for full_key in self.kv.scan(self.key_prefix):
            group_id = full_key[len(self.key_prefix):]
            raw = await self.kv.get(full_key)
            if raw is None:
                continue
            try:
                record = GroupRecord.from_json(raw)
            except (ValueError, TypeError, InvalidOperation) as exc:
                logger.warning("Skipping unreadable record %s: %s", full_key, exc)
                continue
            yield group_id, record

    async def list_all(self) -> List[Tuple[str, GroupRecord]]:
        return [item async for item in self.iter_groups()]

    async def is_active(self, group_id: GroupId) -> bool:
        key = normalize_group_id(group_id)
        cached = self.cache.get_active(key)
        if cached is not None:
            return cached
        record = await self._read(key)
        if record is None:
            return False
        self._refresh_cache(key, record)
        return record.is_active

    async def get_language(self, group_id: GroupId) -> Optional[str]:
        key = normalize_group_id(group_id)
        cached = self.cache.get_language(key)
        if cached is not None:
            return cached
        record = await self._read(key)
        if record is None:
            return None
        self._refresh_cache(key, record)
        return record.language

    async def health_check(self) -> bool:
        return await self.kv.health_check()

    async def close(self) -> None:
        await self.kv.close()
