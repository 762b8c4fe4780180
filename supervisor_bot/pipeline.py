"""
Metered processing pipeline.

One request moves through: credit check and reservation, provider call,
settlement. The estimated cost is reserved on the group's ledger before the
provider is called, refunded exactly if the call fails, and replaced by the
actual cost once usage is known. Credit used never exceeds credit purchased.
"""

import asyncio
import logging
from decimal import Decimal
from functools import partial
from typing import Callable, Optional

from .errors import GroupNotFound, ProviderError, UnsupportedModel
from .llm import CompletionProvider
from .models import (
    CompletionResult,
    CostEstimate,
    GroupRecord,
    ProcessingRequest,
    ProcessingResult,
    RejectReason,
    quantize_credit,
)
from .pricing import PRICING_TABLE, PricingTable, calculate_cost, estimate_cost
from .store import GroupStore
from .texts import credit_depleted_notice, inactive_notice

logger = logging.getLogger(__name__)

Estimator = Callable[[str, int, str], CostEstimate]


class MeteredPipeline:
    def __init__(
        self,
        store: GroupStore,
        provider: CompletionProvider,
        estimator: Optional[Estimator] = None,
        pricing: PricingTable = PRICING_TABLE,
        timeout: float = 20.0,
        admin_contact: str = "@admin",
    ):
        self.store = store
        self.provider = provider
        self.estimator = estimator or partial(estimate_cost, table=pricing)
        self.pricing = pricing
        self.timeout = timeout
        self.admin_contact = admin_contact

    async def process(self, request: ProcessingRequest) -> ProcessingResult:
        """Run one metered provider call for ``request.group_id``.

        Raises:
            GroupNotFound: If the group has no record
            UnsupportedModel: If the request's model has no pricing entry
            StoreUnavailable: If the ledger cannot be read or written
        """
        estimate = self.estimator(request.prompt, request.max_tokens, request.model)
        reserved = quantize_credit(estimate.estimated_cost)

        rejection = await self.store.mutate(request.group_id, partial(self._reserve, reserved))
        if rejection is not None:
            return rejection

        try:
            completion = await asyncio.wait_for(self.provider.complete(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Provider call for group %s exceeded %ss", request.group_id, self.timeout)
            await self._refund(request.group_id, reserved)
            return ProcessingResult.rejected(
                RejectReason.PROVIDER_ERROR, is_active=True, detail="timeout"
            )
        except ProviderError as exc:
            await self._refund(request.group_id, reserved)
            return ProcessingResult.rejected(
                RejectReason.PROVIDER_ERROR,
                is_active=True,
                detail="timeout" if exc.timeout else str(exc),
            )
        except asyncio.CancelledError:
            await asyncio.shield(self._refund(request.group_id, reserved))
            raise
        except Exception as exc:
            logger.exception("Unexpected provider failure for group %s", request.group_id)
            await self._refund(request.group_id, reserved)
            return ProcessingResult.rejected(
                RejectReason.PROVIDER_ERROR, is_active=True, detail=str(exc)
            )

        actual = self._actual_cost(request, completion, reserved)
        try:
            return await self.store.mutate(
                request.group_id, partial(self._settle, reserved, actual, completion.text)
            )
        except GroupNotFound:
            logger.warning("Group %s was removed before settlement", request.group_id)
            return ProcessingResult(text=completion.text, is_active=False)

    def _actual_cost(self, request: ProcessingRequest, completion: CompletionResult, reserved: Decimal) -> Decimal:
        if completion.usage is None:
            return reserved
        try:
            return quantize_credit(calculate_cost(request.model, completion.usage, self.pricing))
        except UnsupportedModel:
            logger.warning("No pricing for %s; charging the estimate", request.model)
            return reserved

    def _reserve(self, reserved: Decimal, record: GroupRecord):
        if not record.is_active:
            return None, ProcessingResult.rejected(
                RejectReason.GROUP_INACTIVE,
                is_active=False,
                notice=inactive_notice(record.language, self.admin_contact),
            )

        if record.credit_used + reserved > record.credit_purchased:
            logger.info(
                "Credit exhausted for %s: used=%s estimate=%s purchased=%s",
                record.name,
                record.credit_used,
                reserved,
                record.credit_purchased,
            )
            return record.with_changes(is_active=False), ProcessingResult.rejected(
                RejectReason.CREDIT_EXHAUSTED,
                is_active=False,
                notice=credit_depleted_notice(record.language, self.admin_contact),
                detail=f"estimated cost {reserved}",
            )

        return record.with_changes(credit_used=quantize_credit(record.credit_used + reserved)), None

    async def _refund(self, group_id: str, reserved: Decimal) -> None:
        def change(record: GroupRecord):
            used = max(Decimal("0"), record.credit_used - reserved)
            return record.with_changes(credit_used=quantize_credit(used)), None

        try:
            await self.store.mutate(group_id, change)
        except GroupNotFound:
            logger.warning("Group %s was removed before refund", group_id)

    def _settle(self, reserved: Decimal, actual: Decimal, text: str, record: GroupRecord):
        used = record.credit_used - reserved + actual
        charged = actual
        is_active = record.is_active
        notice: Optional[str] = None

        if used > record.credit_purchased:
            charged = actual - (used - record.credit_purchased)
            used = record.credit_purchased
            is_active = False
            notice = credit_depleted_notice(record.language, self.admin_contact)
            logger.warning("Group %s overran its credit; deactivated", record.name)

        updated = record.with_changes(credit_used=quantize_credit(used), is_active=is_active)
        logger.info(
            "Settled request for %s: charged=%s used=%s/%s",
            record.name,
            charged,
            updated.credit_used,
            updated.credit_purchased,
        )
        return updated, ProcessingResult(text=text, is_active=is_active, notice=notice, cost=charged)
