import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from .config import Settings, settings
from .errors import ProviderError
from .models import CompletionResult, ProcessingRequest, TokenUsage

logger = logging.getLogger(__name__)


def clean_response(text: Optional[str]) -> str:
    """Drop line breaks and the quotes the prompt wraps user text in."""
    return (text or "").replace("\n", "").replace("\r", "").strip("\" ")


def _usage_from(response) -> Optional[TokenUsage]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    return TokenUsage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
    )


class CompletionProvider:
    """Sends a processing request to a language model and returns its text."""

    def __init__(self, client: AsyncOpenAI):
        self.client = client

    async def complete(self, request: ProcessingRequest) -> CompletionResult:
        try:
            return await self._complete(request)
        except openai.APITimeoutError as exc:
            logger.warning("Provider timed out for group %s: %s", request.group_id, exc)
            raise ProviderError(f"Provider timed out: {exc}", timeout=True) from exc
        except openai.OpenAIError as exc:
            logger.warning("Provider call failed for group %s: %s", request.group_id, exc)
            raise ProviderError(f"OpenAI API error: {exc}") from exc

    async def _complete(self, request: ProcessingRequest) -> CompletionResult:
        raise NotImplementedError


class ChatCompletionProvider(CompletionProvider):
    """System/user message pair against the chat completions endpoint."""

    async def _complete(self, request: ProcessingRequest) -> CompletionResult:
        response = await self.client.chat.completions.create(
            model=request.model,
            messages=request.messages,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )
        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        return CompletionResult(text=clean_response(content), usage=_usage_from(response))


class LegacyCompletionProvider(CompletionProvider):
    """Single flattened prompt against the legacy completions endpoint."""

    async def _complete(self, request: ProcessingRequest) -> CompletionResult:
        response = await self.client.completions.create(
            model=request.model,
            prompt=request.prompt,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )
        text = response.choices[0].text if response.choices else ""
        return CompletionResult(text=clean_response(text), usage=_usage_from(response))


def build_provider(config: Settings = settings) -> CompletionProvider:
    client = AsyncOpenAI(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url,
        timeout=config.provider_timeout,
    )
    if config.provider_mode == "completions":
        logger.info("Using legacy completions provider")
        return LegacyCompletionProvider(client)
    logger.info("Using chat completions provider")
    return ChatCompletionProvider(client)
