import logging
import time
import traceback
from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message, TelegramObject
from cachetools import TTLCache

from .config import settings
from .texts import failure_notice

logger = logging.getLogger(__name__)

REPLY_TARGET_GONE = "message to reply not found"


class ErrorHandlingMiddleware(BaseMiddleware):
    """Catch and log exceptions with safe fallbacks."""

    def __init__(self, notice_language: Optional[str] = None) -> None:
        self.notice_language = notice_language or settings.default_language

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        try:
            return await handler(event, data)
        except TelegramBadRequest as exc:
            if REPLY_TARGET_GONE in str(exc).lower():
                logger.info("Reply target vanished: %s", exc)
                return None
            logger.error("Telegram rejected a request:\n%s", traceback.format_exc())
            return await self._notify(event)
        except Exception:
            logger.error("Unhandled exception in handler:\n%s", traceback.format_exc())
            return await self._notify(event)

    async def _notify(self, event: TelegramObject) -> None:
        if not isinstance(event, Message):
            return None
        try:
            await event.answer(failure_notice(self.notice_language))
        except TelegramBadRequest as exc:
            logger.warning("Failed to send failure notice: %s", exc)
        return None


class RateLimitMiddleware(BaseMiddleware):
    """Drops marker-terminated group messages beyond a per-user budget per window."""

    def __init__(
        self,
        limit: Optional[int] = None,
        window: int = 60,
        marker: Optional[str] = None,
    ) -> None:
        self.limit = limit if limit is not None else settings.rate_limit_per_user
        self.window = window
        self.marker = marker or settings.message_marker
        self.user_cache = TTLCache(maxsize=10000, ttl=window)

    async def __call__(
        self,
        handler: Callable[[Message, Dict[str, Any]], Awaitable[Any]],
        event: Message,
        data: Dict[str, Any],
    ) -> Any:
        if not event.from_user or event.chat.type not in {"group", "supergroup"}:
            return await handler(event, data)
        if not event.text or not event.text.rstrip().endswith(self.marker):
            return await handler(event, data)

        key = (event.chat.id, event.from_user.id)
        current_time = time.time()
        user_data = self.user_cache.get(key, {"count": 0, "first_request": current_time})

        if user_data["count"] >= self.limit:
            elapsed = current_time - user_data["first_request"]
            if elapsed < self.window:
                logger.info(
                    "Rate limit hit for user %s in group %s; message dropped",
                    event.from_user.id,
                    event.chat.id,
                )
                return None
            user_data = {"count": 1, "first_request": current_time}
        else:
            user_data["count"] += 1

        self.user_cache[key] = user_data
        return await handler(event, data)
