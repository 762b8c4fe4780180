import logging
from typing import Optional

from .models import GateDecision, GroupId, RejectReason
from .pricing import count_words
from .store import GroupStore

logger = logging.getLogger(__name__)


class EligibilityGate:
    """Decides whether an inbound message is worth a provider call.

    Checks run cheapest first: trailing marker, word count, then the group's
    activation flag (cache-accelerated).
    """

    def __init__(self, store: GroupStore, marker: str = "..", min_words: int = 4, max_words: int = 35):
        if not marker:
            raise ValueError("marker must not be empty")
        if min_words < 0 or max_words < min_words:
            raise ValueError("min_words/max_words must form a non-negative range")
        self.store = store
        self.marker = marker
        self.min_words = min_words
        self.max_words = max_words

    def strip_marker(self, raw_text: str) -> Optional[str]:
        text = (raw_text or "").rstrip()
        if not text.endswith(self.marker):
            return None
        return text[: -len(self.marker)].strip()

    def in_range(self, text: str) -> bool:
        words = count_words(text)
        return self.min_words <= words <= self.max_words

    async def should_process(self, raw_text: str, group_id: GroupId) -> GateDecision:
        text = self.strip_marker(raw_text)
        if text is None:
            return GateDecision.reject(RejectReason.NO_MARKER)

        if not self.in_range(text):
            logger.debug("Message in group %s outside word range", group_id)
            return GateDecision.reject(RejectReason.OUT_OF_RANGE)

        if not await self.store.is_active(group_id):
            logger.info("Message from inactive group %s rejected", group_id)
            return GateDecision.reject(RejectReason.GROUP_INACTIVE)

        return GateDecision.accept(text)
