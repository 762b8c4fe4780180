from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from conftest import make_request
from supervisor_bot.config import Settings
from supervisor_bot.errors import ProviderError
from supervisor_bot.llm import (
    ChatCompletionProvider,
    LegacyCompletionProvider,
    build_provider,
    clean_response,
)
from supervisor_bot.models import TokenUsage


def _chat_response(content, usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


def test_clean_response():
    assert clean_response('"Ich habe heute keine Zeit."\n') == "Ich habe heute keine Zeit."
    assert clean_response(" Hallo\r\nWelt ") == "HalloWelt"
    assert clean_response(None) == ""


class TestChatCompletionProvider:
    @pytest.mark.asyncio
    async def test_sends_message_pair(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            return_value=_chat_response(
                "Hallo Welt", SimpleNamespace(prompt_tokens=12, completion_tokens=3)
            )
        )
        request = make_request("-1")

        result = await ChatCompletionProvider(client).complete(request)

        assert result.text == "Hallo Welt"
        assert result.usage == TokenUsage(prompt_tokens=12, completion_tokens=3)
        client.chat.completions.create.assert_awaited_once_with(
            model=request.model,
            messages=request.messages,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )

    @pytest.mark.asyncio
    async def test_missing_usage(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_chat_response("ok"))

        result = await ChatCompletionProvider(client).complete(make_request("-1"))

        assert result.usage is None

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=openai.OpenAIError("quota exceeded"))

        with pytest.raises(ProviderError) as excinfo:
            await ChatCompletionProvider(client).complete(make_request("-1"))
        assert excinfo.value.timeout is False
        assert "quota exceeded" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_timeout_flagged(self):
        client = MagicMock()
        timeout = openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        client.chat.completions.create = AsyncMock(side_effect=timeout)

        with pytest.raises(ProviderError) as excinfo:
            await ChatCompletionProvider(client).complete(make_request("-1"))
        assert excinfo.value.timeout is True


class TestLegacyCompletionProvider:
    @pytest.mark.asyncio
    async def test_sends_flattened_prompt(self):
        client = MagicMock()
        client.completions.create = AsyncMock(
            return_value=SimpleNamespace(
                choices=[SimpleNamespace(text="\n'Hallo Welt'")],
                usage=SimpleNamespace(prompt_tokens=7, completion_tokens=2),
            )
        )
        request = make_request("-1")

        result = await LegacyCompletionProvider(client).complete(request)

        assert result.text == "'Hallo Welt'"
        assert result.usage.total_tokens == 9
        kwargs = client.completions.create.await_args.kwargs
        assert kwargs["prompt"] == request.prompt


class TestBuildProvider:
    def test_chat_mode(self):
        config = Settings(_env_file=None, OPENAI_API_KEY="sk-test", PROVIDER_MODE="chat")
        assert isinstance(build_provider(config), ChatCompletionProvider)

    def test_completions_mode(self):
        config = Settings(_env_file=None, OPENAI_API_KEY="sk-test", PROVIDER_MODE="completions")
        assert isinstance(build_provider(config), LegacyCompletionProvider)
