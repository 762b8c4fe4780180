import asyncio
import logging
from logging import Logger
from pathlib import Path

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import BotCommand, BotCommandScopeAllPrivateChats

from .admin import GroupAdmin
from .cache import GroupCache
from .config import Settings, settings
from .gate import EligibilityGate
from .handlers import router
from .kvstore import KeyValueStore, RedisKeyValueStore, SqliteKeyValueStore
from .llm import build_provider
from .middlewares import ErrorHandlingMiddleware, RateLimitMiddleware
from .pipeline import MeteredPipeline
from .processor import MessageProcessor
from .store import GroupStore
from .texts import BOT_COMMANDS, ERROR_MESSAGES


def setup_logging() -> Logger:
    logger = logging.getLogger()
    logger.setLevel(settings.log_level)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        try:
            log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_dir / "supervisor.log")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError:
            logger.warning("Could not write logs/supervisor.log; continuing with console logging only")

    return logging.getLogger(__name__)


def build_kv(config: Settings = settings) -> KeyValueStore:
    if config.store_backend == "sqlite":
        return SqliteKeyValueStore(config.db_path)
    return RedisKeyValueStore(config.redis_url)


def build_store(config: Settings = settings) -> GroupStore:
    cache = GroupCache(maxsize=config.cache_maxsize, ttl=config.cache_ttl_seconds)
    return GroupStore(build_kv(config), cache=cache, key_prefix=config.group_key_prefix)


def build_processor(store: GroupStore, config: Settings = settings) -> MessageProcessor:
    gate = EligibilityGate(
        store,
        marker=config.message_marker,
        min_words=config.min_words,
        max_words=config.max_words,
    )
    pipeline = MeteredPipeline(
        store,
        build_provider(config),
        timeout=config.provider_timeout,
        admin_contact=config.admin_contact,
    )
    return MessageProcessor.from_settings(gate, store, pipeline, config)


async def main() -> None:
    logger = setup_logging()
    logger.info(
        "Config: backend=%s provider=%s detection=%s words=%s-%s",
        settings.store_backend,
        settings.provider_mode,
        settings.language_detection_enabled,
        settings.min_words,
        settings.max_words,
    )

    if not settings.bot_token_valid:
        logger.error("BOT_TOKEN is missing. Update your .env file.")
        print(ERROR_MESSAGES["config_missing"])
        return

    store = build_store(settings)
    if not await store.health_check():
        logger.warning("Store health check failed for backend %s", settings.store_backend)

    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = Dispatcher()

    dp["admin"] = GroupAdmin(store, default_language=settings.default_language)
    dp["processor"] = build_processor(store, settings)

    dp.message.outer_middleware(ErrorHandlingMiddleware())
    dp.my_chat_member.outer_middleware(ErrorHandlingMiddleware())
    dp.message.middleware(RateLimitMiddleware())

    dp.include_router(router)

    try:
        bot_info = await bot.get_me()
        logger.info("Starting supervisor bot: @%s", bot_info.username)
    except Exception as exc:
        logger.error("Failed to fetch bot info: %s", exc)

    try:
        await bot.set_my_commands(
            [BotCommand(command=command, description=description) for command, description in BOT_COMMANDS],
            scope=BotCommandScopeAllPrivateChats(),
        )
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    except Exception as exc:
        logger.error("Bot failed: %s", exc)
        raise
    finally:
        await store.close()
        await bot.session.close()
        logger.info("Bot stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
