import logging
from typing import Optional

from .config import Settings, TaskSettings, settings
from .errors import GroupNotFound
from .gate import EligibilityGate
from .languages import is_valid_detected_language, matches_language
from .models import (
    GroupId,
    MessageOutcome,
    OutcomeKind,
    ProcessingResult,
    RejectReason,
    normalize_group_id,
)
from .pipeline import MeteredPipeline
from .prompts import build_request, resolve_language
from .store import GroupStore
from .texts import failure_notice, inactive_notice

logger = logging.getLogger(__name__)


class MessageProcessor:
    """Turns one inbound group message into an outcome for the chat adapter.

    Flow: eligibility gate, optional language detection, correction or
    translation through the metered pipeline.
    """

    def __init__(
        self,
        gate: EligibilityGate,
        store: GroupStore,
        pipeline: MeteredPipeline,
        default_language: str = "Deutsch",
        admin_contact: str = "@admin",
        detection: Optional[TaskSettings] = None,
        correction: Optional[TaskSettings] = None,
        translation: Optional[TaskSettings] = None,
    ):
        self.gate = gate
        self.store = store
        self.pipeline = pipeline
        self.default_language = default_language
        self.admin_contact = admin_contact
        self.detection = detection
        self.correction = correction or settings.correction
        self.translation = translation or settings.translation

    @classmethod
    def from_settings(
        cls,
        gate: EligibilityGate,
        store: GroupStore,
        pipeline: MeteredPipeline,
        config: Settings = settings,
    ) -> "MessageProcessor":
        return cls(
            gate,
            store,
            pipeline,
            default_language=config.default_language,
            admin_contact=config.admin_contact,
            detection=config.detection if config.language_detection_enabled else None,
            correction=config.correction,
            translation=config.translation,
        )

    async def handle_message(self, raw_text: str, group_id: GroupId) -> MessageOutcome:
        key = normalize_group_id(group_id)
        decision = await self.gate.should_process(raw_text, key)
        if not decision.accepted:
            if decision.reason is RejectReason.GROUP_INACTIVE:
                language = await self.store.get_language(key)
                return MessageOutcome(
                    OutcomeKind.NOTIFY,
                    notice=inactive_notice(language or self.default_language, self.admin_contact),
                    reason=decision.reason,
                )
            return MessageOutcome(OutcomeKind.IGNORE, reason=decision.reason)

        text = decision.text
        language = resolve_language(await self.store.get_language(key), self.default_language)

        try:
            task = self.correction
            if self.detection is not None:
                detected = await self.pipeline.process(build_request(text, language, self.detection, key))
                if not detected.settled:
                    return self._rejected(detected, language)
                if not detected.is_active:
                    return self._deactivated(detected, language)
                if not is_valid_detected_language(detected.text):
                    logger.warning("Invalid detected language for group %s: %r", key, detected.text)
                    return MessageOutcome(OutcomeKind.IGNORE, reason=RejectReason.INVALID_LANGUAGE)
                if not matches_language(detected.text, language):
                    task = self.translation
                logger.debug("Group %s: detected %s, target %s", key, detected.text, language)

            result = await self.pipeline.process(build_request(text, language, task, key))
        except GroupNotFound:
            logger.warning("Group %s disappeared while processing a message", key)
            return MessageOutcome(OutcomeKind.IGNORE)

        if not result.settled:
            return self._rejected(result, language)

        if not result.text:
            logger.warning("Empty provider response for group %s", key)
            return MessageOutcome(OutcomeKind.IGNORE, notice=result.notice)

        if result.text == text:
            return MessageOutcome(OutcomeKind.REACT, notice=result.notice)
        return MessageOutcome(OutcomeKind.REPLY, text=result.text, notice=result.notice)

    def _deactivated(self, result: ProcessingResult, language: str) -> MessageOutcome:
        """The group went inactive during a settled call; no further calls are made."""
        if result.notice:
            return MessageOutcome(OutcomeKind.NOTIFY, notice=result.notice, reason=RejectReason.CREDIT_EXHAUSTED)
        return MessageOutcome(
            OutcomeKind.NOTIFY,
            notice=inactive_notice(language, self.admin_contact),
            reason=RejectReason.GROUP_INACTIVE,
        )

    def _rejected(self, result: ProcessingResult, language: str) -> MessageOutcome:
        if result.reason is RejectReason.PROVIDER_ERROR:
            logger.warning("Provider error: %s", result.detail)
            return MessageOutcome(OutcomeKind.NOTIFY, notice=failure_notice(language), reason=result.reason)
        return MessageOutcome(OutcomeKind.NOTIFY, notice=result.notice, reason=result.reason)
