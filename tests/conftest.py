import asyncio
from decimal import Decimal

import pytest

from supervisor_bot.cache import GroupCache
from supervisor_bot.kvstore import SqliteKeyValueStore
from supervisor_bot.models import CompletionResult, CostEstimate, GroupRecord, ProcessingRequest
from supervisor_bot.store import GroupStore


class FakeProvider:
    """Completion provider double; replays scripted responses in order.

    Each response is a string, a CompletionResult or an exception to raise.
    The last response is repeated once the script runs out.
    """

    def __init__(self, responses=("corrected text",), delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls = []

    async def complete(self, request: ProcessingRequest) -> CompletionResult:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, CompletionResult):
            return response
        return CompletionResult(text=response)


def fixed_estimator(cost: str):
    def estimate(text: str, max_output_tokens: int, model: str) -> CostEstimate:
        return CostEstimate(input_tokens=1, estimated_output_tokens=1, estimated_cost=Decimal(cost))

    return estimate


def make_request(group_id: str = "-100", text: str = "hello world this is fine", model: str = "gpt-4o-mini"):
    return ProcessingRequest(
        system_prompt="Correct the following text.",
        user_message=text,
        model=model,
        max_tokens=200,
        temperature=0.2,
        group_id=group_id,
    )


@pytest.fixture
def kv(tmp_path):
    return SqliteKeyValueStore(str(tmp_path / "groups.sqlite3"))


@pytest.fixture
def cache():
    return GroupCache()


@pytest.fixture
def store(kv, cache):
    return GroupStore(kv, cache=cache)


@pytest.fixture
def active_record():
    return GroupRecord(
        name="Deutschkurs A1",
        language="Deutsch",
        is_active=True,
        credit_purchased=Decimal("1.00"),
    )
