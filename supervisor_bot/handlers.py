import html
import logging
from typing import Any, Awaitable, Optional, Tuple

from aiogram import Bot, F, Router
from aiogram.filters import JOIN_TRANSITION, ChatMemberUpdatedFilter, Command, CommandObject
from aiogram.types import ChatMemberUpdated, Message, ReactionTypeEmoji

from .admin import GroupAdmin
from .config import settings
from .errors import GroupNotFound, StoreUnavailable, ValidationError
from .languages import SUPPORTED_LANGUAGES, normalize_language
from .models import MessageOutcome, OutcomeKind
from .processor import MessageProcessor
from .texts import (
    ERROR_MESSAGES,
    OPERATOR_HELP,
    REACTION_UNCHANGED,
    format_author,
    render_correction,
    render_group_list,
)

logger = logging.getLogger(__name__)

router = Router()

GROUP_CHAT_TYPES = {"group", "supergroup"}


def is_operator(msg: Message) -> bool:
    return bool(msg.from_user and msg.from_user.id in settings.operator_ids)


async def _require_operator(msg: Message) -> bool:
    if msg.chat.type != "private":
        return False
    if not is_operator(msg):
        await msg.answer(ERROR_MESSAGES["not_operator"])
        return False
    return True


def _split_args(command: CommandObject, count: int) -> Optional[Tuple[str, ...]]:
    """Split command arguments; the last one keeps its spaces."""
    args = (command.args or "").split(maxsplit=count - 1)
    if len(args) < count:
        return None
    return tuple(args)


async def _usage(msg: Message, usage: str) -> None:
    await msg.answer(ERROR_MESSAGES["usage"].format(usage=html.escape(usage)))


async def _admin_call(msg: Message, operation: Awaitable[Any]) -> Tuple[bool, Any]:
    try:
        return True, await operation
    except GroupNotFound as exc:
        await msg.answer(ERROR_MESSAGES["not_found"].format(group_id=html.escape(exc.group_id)))
    except ValidationError as exc:
        await msg.answer(ERROR_MESSAGES["invalid"].format(detail=html.escape(str(exc))))
    except StoreUnavailable as exc:
        logger.error("Store unavailable during operator command: %s", exc)
        await msg.answer(ERROR_MESSAGES["store"])
    return False, None


@router.my_chat_member(ChatMemberUpdatedFilter(member_status_changed=JOIN_TRANSITION))
async def on_bot_added(event: ChatMemberUpdated, admin: GroupAdmin):
    if event.chat.type not in GROUP_CHAT_TYPES:
        return
    record = await admin.register_chat(event.chat.id, event.chat.title or str(event.chat.id))
    logger.info("Bot added to group %s (%s); active=%s", record.name, event.chat.id, record.is_active)


@router.message(F.new_chat_title)
async def on_title_changed(msg: Message, admin: GroupAdmin):
    try:
        await admin.rename_group(msg.chat.id, msg.new_chat_title)
    except GroupNotFound:
        logger.info("Title changed in unregistered group %s", msg.chat.id)


@router.message(Command("help"), F.chat.type == "private")
async def cmd_help(msg: Message):
    if not await _require_operator(msg):
        return
    await msg.answer(OPERATOR_HELP)


@router.message(Command("groups"), F.chat.type == "private")
async def cmd_groups(msg: Message, admin: GroupAdmin):
    if not await _require_operator(msg):
        return
    ok, groups = await _admin_call(msg, admin.list_groups())
    if ok:
        await msg.answer(render_group_list(groups))


@router.message(Command("addgroup"), F.chat.type == "private")
async def cmd_addgroup(msg: Message, command: CommandObject, admin: GroupAdmin):
    if not await _require_operator(msg):
        return
    args = _split_args(command, 3)
    if args is None:
        await _usage(msg, "/addgroup <id> <language> <name>")
        return
    group_id, language, name = args
    canonical = normalize_language(language)
    if canonical is None:
        await msg.answer(ERROR_MESSAGES["unsupported_language"].format(languages=", ".join(SUPPORTED_LANGUAGES)))
        return
    ok, record = await _admin_call(msg, admin.add_group(group_id, name, canonical))
    if ok:
        await msg.answer(f"Group <b>{html.escape(record.name)}</b> added (inactive).")


@router.message(Command("removegroup"), F.chat.type == "private")
async def cmd_removegroup(msg: Message, command: CommandObject, admin: GroupAdmin):
    if not await _require_operator(msg):
        return
    args = _split_args(command, 1)
    if args is None:
        await _usage(msg, "/removegroup <id>")
        return
    ok, existed = await _admin_call(msg, admin.remove_group(args[0]))
    if ok:
        await msg.answer("Group removed." if existed else "No such group.")


@router.message(Command("rename"), F.chat.type == "private")
async def cmd_rename(msg: Message, command: CommandObject, admin: GroupAdmin):
    if not await _require_operator(msg):
        return
    args = _split_args(command, 2)
    if args is None:
        await _usage(msg, "/rename <id> <name>")
        return
    ok, changed = await _admin_call(msg, admin.rename_group(*args))
    if ok:
        await msg.answer("Group renamed." if changed else "Name unchanged.")


@router.message(Command("setlang"), F.chat.type == "private")
async def cmd_setlang(msg: Message, command: CommandObject, admin: GroupAdmin):
    if not await _require_operator(msg):
        return
    args = _split_args(command, 2)
    if args is None:
        await _usage(msg, "/setlang <id> <language>")
        return
    group_id, language = args
    canonical = normalize_language(language)
    if canonical is None:
        await msg.answer(ERROR_MESSAGES["unsupported_language"].format(languages=", ".join(SUPPORTED_LANGUAGES)))
        return
    ok, changed = await _admin_call(msg, admin.set_language(group_id, canonical))
    if ok:
        await msg.answer(f"Language set to {canonical}." if changed else "Language unchanged.")


async def _toggle(msg: Message, command: CommandObject, admin: GroupAdmin, is_active: bool) -> None:
    if not await _require_operator(msg):
        return
    args = _split_args(command, 1)
    if args is None:
        await _usage(msg, f"/{command.command} <id>")
        return
    ok, changed = await _admin_call(msg, admin.toggle_active(args[0], is_active))
    if ok:
        state = "active" if is_active else "inactive"
        await msg.answer(f"Group is now {state}." if changed else f"Group was already {state}.")


@router.message(Command("activate"), F.chat.type == "private")
async def cmd_activate(msg: Message, command: CommandObject, admin: GroupAdmin):
    await _toggle(msg, command, admin, True)


@router.message(Command("deactivate"), F.chat.type == "private")
async def cmd_deactivate(msg: Message, command: CommandObject, admin: GroupAdmin):
    await _toggle(msg, command, admin, False)


@router.message(Command("addcredit"), F.chat.type == "private")
async def cmd_addcredit(msg: Message, command: CommandObject, admin: GroupAdmin):
    if not await _require_operator(msg):
        return
    args = _split_args(command, 2)
    if args is None:
        await _usage(msg, "/addcredit <id> <amount>")
        return
    ok, record = await _admin_call(msg, admin.add_credit(*args))
    if ok:
        await msg.answer(
            f"Credit for <b>{html.escape(record.name)}</b>: "
            f"{record.credit_used}/{record.credit_purchased} used."
        )


async def deliver_outcome(msg: Message, bot: Bot, outcome: MessageOutcome) -> None:
    if outcome.kind is OutcomeKind.REPLY:
        author = format_author(msg.from_user.username, msg.from_user.first_name, msg.from_user.last_name)
        await msg.reply(render_correction(author, outcome.text))
    elif outcome.kind is OutcomeKind.REACT:
        await bot.set_message_reaction(
            chat_id=msg.chat.id,
            message_id=msg.message_id,
            reaction=[ReactionTypeEmoji(emoji=REACTION_UNCHANGED)],
            is_big=True,
        )

    if outcome.notice:
        await msg.reply(outcome.notice)


@router.message(F.chat.type.in_(GROUP_CHAT_TYPES), F.text)
async def on_group_message(msg: Message, bot: Bot, processor: MessageProcessor):
    if not msg.from_user or msg.from_user.is_bot:
        return
    if msg.text.startswith("/"):
        return

    outcome = await processor.handle_message(msg.text, msg.chat.id)
    if outcome.kind is OutcomeKind.IGNORE and not outcome.notice:
        if outcome.reason is not None:
            logger.debug("Message %s in %s ignored: %s", msg.message_id, msg.chat.id, outcome.reason.value)
        return
    await deliver_outcome(msg, bot, outcome)
