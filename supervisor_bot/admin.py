import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from .errors import GroupAlreadyExists, ValidationError
from .models import MAX_GROUP_NAME_LENGTH, GroupId, GroupRecord, normalize_group_id
from .store import GroupStore

logger = logging.getLogger(__name__)


def _require_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Group name must not be null or empty.")
    if len(name) > MAX_GROUP_NAME_LENGTH:
        raise ValidationError(f"Group name must not exceed {MAX_GROUP_NAME_LENGTH} characters.")
    return name


def _require_language(language: str) -> str:
    language = (language or "").strip()
    if not language:
        raise ValidationError("Language must not be null or empty.")
    return language


class GroupAdmin:
    """Operator-facing operations over the group store, with input validation."""

    def __init__(self, store: GroupStore, default_language: str = "Deutsch"):
        self.store = store
        self.default_language = default_language

    async def add_group(
        self,
        group_id: GroupId,
        name: str,
        language: Optional[str] = None,
        is_active: bool = False,
        credit_purchased: Decimal = Decimal("0"),
    ) -> GroupRecord:
        key = normalize_group_id(group_id)
        record = GroupRecord(
            name=_require_name(name),
            language=_require_language(language or self.default_language),
            is_active=is_active,
            credit_purchased=credit_purchased,
        )
        return await self.store.create(key, record)

    async def remove_group(self, group_id: GroupId) -> bool:
        return await self.store.remove(normalize_group_id(group_id))

    async def rename_group(self, group_id: GroupId, name: str) -> bool:
        return await self.store.rename(normalize_group_id(group_id), _require_name(name))

    async def set_language(self, group_id: GroupId, language: str) -> bool:
        return await self.store.set_language(normalize_group_id(group_id), _require_language(language))

    async def toggle_active(self, group_id: GroupId, is_active: bool) -> bool:
        return await self.store.set_active(normalize_group_id(group_id), is_active)

    async def add_credit(self, group_id: GroupId, amount) -> GroupRecord:
        return await self.store.add_credit(normalize_group_id(group_id), amount)

    async def list_groups(self) -> List[Tuple[str, GroupRecord]]:
        groups = await self.store.list_all()
        return sorted(groups, key=lambda item: item[1].created_at)

    async def register_chat(self, group_id: GroupId, title: str) -> GroupRecord:
        """Bot was added to a chat: create an inactive record, or rename an existing one."""
        key = normalize_group_id(group_id)
        name = _require_name(title or key)
        try:
            record = await self.store.create(key, GroupRecord(name=name, language=self.default_language))
        except GroupAlreadyExists:
            await self.store.rename(key, name)
            return await self.store.get(key)
        logger.info("Bot added to new group %s (%s)", name, key)
        return record
