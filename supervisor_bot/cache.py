import logging
import time
from typing import Callable, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 24 * 60 * 60


class GroupCache:
    """Advisory read cache for per-group language and activation flags.

    Entries are refreshed by the group store on every successful write of the
    matching field. Credit accounting never reads from here.
    """

    def __init__(
        self,
        maxsize: int = 10000,
        ttl: int = DEFAULT_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._entries = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)

    @staticmethod
    def _language_key(group_id: str) -> str:
        return f"groupLanguage-{group_id}"

    @staticmethod
    def _active_key(group_id: str) -> str:
        return f"groupActive-{group_id}"

    def get_language(self, group_id: str) -> Optional[str]:
        value = self._entries.get(self._language_key(group_id))
        logger.debug("Language cache %s for %s", "hit" if value is not None else "miss", group_id)
        return value

    def set_language(self, group_id: str, language: str) -> None:
        self._entries[self._language_key(group_id)] = language

    def get_active(self, group_id: str) -> Optional[bool]:
        value = self._entries.get(self._active_key(group_id))
        logger.debug("Active cache %s for %s", "hit" if value is not None else "miss", group_id)
        return value

    def set_active(self, group_id: str, is_active: bool) -> None:
        self._entries[self._active_key(group_id)] = is_active

    def invalidate(self, group_id: str) -> None:
        self._entries.pop(self._language_key(group_id), None)
        self._entries.pop(self._active_key(group_id), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
