from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message

from supervisor_bot import handlers
from supervisor_bot.handlers import deliver_outcome, on_group_message
from supervisor_bot.middlewares import ErrorHandlingMiddleware, RateLimitMiddleware
from supervisor_bot.models import MessageOutcome, OutcomeKind, RejectReason


def make_message(text="ich habe heute keine zeit..", chat_type="group", user_id=42, is_bot=False):
    msg = MagicMock()
    msg.text = text
    msg.message_id = 7
    msg.chat.id = -100
    msg.chat.type = chat_type
    msg.from_user.id = user_id
    msg.from_user.is_bot = is_bot
    msg.from_user.username = "anna"
    msg.from_user.first_name = "Anna"
    msg.from_user.last_name = None
    msg.reply = AsyncMock()
    msg.answer = AsyncMock()
    return msg


class TestDeliverOutcome:
    @pytest.mark.asyncio
    async def test_reply_with_correction(self):
        msg, bot = make_message(), AsyncMock()

        await deliver_outcome(msg, bot, MessageOutcome(OutcomeKind.REPLY, text="Ich habe heute keine Zeit."))

        msg.reply.assert_awaited_once()
        sent = msg.reply.await_args.args[0]
        assert sent.startswith("<i>@anna</i>")
        assert "Ich habe heute keine Zeit." in sent

    @pytest.mark.asyncio
    async def test_reaction_for_unchanged_text(self):
        msg, bot = make_message(), AsyncMock()

        await deliver_outcome(msg, bot, MessageOutcome(OutcomeKind.REACT))

        kwargs = bot.set_message_reaction.await_args.kwargs
        assert kwargs["chat_id"] == -100
        assert kwargs["message_id"] == 7
        assert kwargs["reaction"][0].emoji == "🏆"
        msg.reply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notice_follows_reply(self):
        msg, bot = make_message(), AsyncMock()

        await deliver_outcome(msg, bot, MessageOutcome(OutcomeKind.REPLY, text="Fixed.", notice="Depleted"))

        assert [call.args[0] for call in msg.reply.await_args_list][-1] == "Depleted"

    @pytest.mark.asyncio
    async def test_notify_only(self):
        msg, bot = make_message(), AsyncMock()

        await deliver_outcome(msg, bot, MessageOutcome(OutcomeKind.NOTIFY, notice="Inactive"))

        msg.reply.assert_awaited_once_with("Inactive")


class TestGroupMessageHandler:
    @pytest.mark.asyncio
    async def test_bots_and_commands_skipped(self):
        processor = MagicMock()
        processor.handle_message = AsyncMock()

        await on_group_message(make_message(is_bot=True), AsyncMock(), processor)
        await on_group_message(make_message(text="/groups"), AsyncMock(), processor)

        processor.handle_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ignored_message_sends_nothing(self):
        msg, bot = make_message(text="hallo"), AsyncMock()
        processor = MagicMock()
        processor.handle_message = AsyncMock(
            return_value=MessageOutcome(OutcomeKind.IGNORE, reason=RejectReason.NO_MARKER)
        )

        await on_group_message(msg, bot, processor)

        processor.handle_message.assert_awaited_once_with("hallo", -100)
        msg.reply.assert_not_awaited()
        bot.set_message_reaction.assert_not_awaited()


class TestOperatorCheck:
    def test_operator_ids_from_settings(self, monkeypatch):
        monkeypatch.setattr(handlers.settings, "operator_ids_raw", "42")
        assert handlers.is_operator(make_message(user_id=42))
        assert not handlers.is_operator(make_message(user_id=43))


class TestErrorHandlingMiddleware:
    @pytest.mark.asyncio
    async def test_vanished_reply_target_swallowed(self):
        event = MagicMock(spec=Message)
        event.answer = AsyncMock()
        error = TelegramBadRequest(method=MagicMock(), message="Bad Request: message to reply not found")
        handler = AsyncMock(side_effect=error)

        result = await ErrorHandlingMiddleware("Englisch")(handler, event, {})

        assert result is None
        event.answer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_errors_send_failure_notice(self):
        event = MagicMock(spec=Message)
        event.answer = AsyncMock()
        handler = AsyncMock(side_effect=RuntimeError("boom"))

        await ErrorHandlingMiddleware("Englisch")(handler, event, {})

        event.answer.assert_awaited_once()
        assert "could not be processed" in event.answer.await_args.args[0]

    @pytest.mark.asyncio
    async def test_passes_result_through(self):
        handler = AsyncMock(return_value="done")
        assert await ErrorHandlingMiddleware("Englisch")(handler, MagicMock(), {}) == "done"


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_excess_marked_messages_dropped(self):
        middleware = RateLimitMiddleware(limit=2, window=60, marker="..")
        handler = AsyncMock(return_value="handled")

        results = [await middleware(handler, make_message(), {}) for _ in range(3)]

        assert results == ["handled", "handled", None]
        assert handler.await_count == 2

    @pytest.mark.asyncio
    async def test_unmarked_and_private_messages_not_counted(self):
        middleware = RateLimitMiddleware(limit=1, window=60, marker="..")
        handler = AsyncMock(return_value="handled")

        for _ in range(3):
            await middleware(handler, make_message(text="just chatting"), {})
            await middleware(handler, make_message(chat_type="private"), {})

        assert handler.await_count == 6
        assert await middleware(handler, make_message(), {}) == "handled"

    @pytest.mark.asyncio
    async def test_limit_is_per_user(self):
        middleware = RateLimitMiddleware(limit=1, window=60, marker="..")
        handler = AsyncMock(return_value="handled")

        assert await middleware(handler, make_message(user_id=1), {}) == "handled"
        assert await middleware(handler, make_message(user_id=2), {}) == "handled"
        assert await middleware(handler, make_message(user_id=1), {}) is None
