import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import ValidationError

MAX_GROUP_NAME_LENGTH = 255
CREDIT_QUANTUM = Decimal("0.000001")

GroupId = Union[str, int]


def normalize_group_id(group_id: GroupId) -> str:
    """Chat ids are stored under their string form."""
    if group_id is None:
        raise ValidationError("Group id must not be empty.")
    key = str(group_id).strip()
    if not key:
        raise ValidationError("Group id must not be empty.")
    return key


def quantize_credit(amount: Decimal) -> Decimal:
    return amount.quantize(CREDIT_QUANTUM, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a decimal number.") from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class GroupRecord:
    name: str
    language: str
    is_active: bool = False
    credit_purchased: Decimal = Decimal("0")
    credit_used: Decimal = Decimal("0")
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def credit_remaining(self) -> Decimal:
        return self.credit_purchased - self.credit_used

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Group name must not be null or empty.")
        if len(self.name) > MAX_GROUP_NAME_LENGTH:
            raise ValidationError(
                f"Group name must not exceed {MAX_GROUP_NAME_LENGTH} characters."
            )
        if not self.language or not self.language.strip():
            raise ValidationError("Language must not be null or empty.")
        if self.credit_purchased < 0:
            raise ValidationError("Credit purchased cannot be negative.")
        if self.credit_used < 0:
            raise ValidationError("Credit used cannot be negative.")
        if self.credit_used > self.credit_purchased:
            raise ValidationError("Credit used cannot exceed credit purchased.")

    def with_changes(self, **changes: Any) -> "GroupRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "language": self.language,
            "is_active": self.is_active,
            "credit_purchased": str(quantize_credit(self.credit_purchased)),
            "credit_used": str(quantize_credit(self.credit_used)),
            "created_at": self.created_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupRecord":
        created_at = data.get("created_at")
        return cls(
            name=data.get("name") or "",
            language=data.get("language") or "",
            is_active=bool(data.get("is_active", False)),
            credit_purchased=quantize_credit(Decimal(str(data.get("credit_purchased", "0")))),
            credit_used=quantize_credit(Decimal(str(data.get("credit_used", "0")))),
            created_at=datetime.fromisoformat(created_at) if created_at else _utcnow(),
        )

    @classmethod
    def from_json(cls, raw: str) -> "GroupRecord":
        return cls.from_dict(json.loads(raw))


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by the completion provider."""

    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class CostEstimate:
    input_tokens: int
    estimated_output_tokens: int
    estimated_cost: Decimal


@dataclass(frozen=True)
class CompletionResult:
    text: str
    usage: Optional[TokenUsage] = None


@dataclass(frozen=True)
class ProcessingRequest:
    system_prompt: str
    user_message: str
    model: str
    max_tokens: int
    temperature: float
    group_id: str

    @property
    def prompt(self) -> str:
        """Single flattened prompt for legacy completion endpoints."""
        return f"{self.system_prompt} '{self.user_message}'"

    @property
    def messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_message},
        ]


class RejectReason(Enum):
    NO_MARKER = "no_marker"
    OUT_OF_RANGE = "out_of_range"
    GROUP_INACTIVE = "group_inactive"
    CREDIT_EXHAUSTED = "credit_exhausted"
    PROVIDER_ERROR = "provider_error"
    INVALID_LANGUAGE = "invalid_language"


@dataclass(frozen=True)
class GateDecision:
    accepted: bool
    text: str = ""
    reason: Optional[RejectReason] = None

    @classmethod
    def accept(cls, text: str) -> "GateDecision":
        return cls(accepted=True, text=text)

    @classmethod
    def reject(cls, reason: RejectReason) -> "GateDecision":
        return cls(accepted=False, reason=reason)


@dataclass(frozen=True)
class ProcessingResult:
    text: Optional[str]
    is_active: bool
    notice: Optional[str] = None
    reason: Optional[RejectReason] = None
    detail: Optional[str] = None
    cost: Decimal = Decimal("0")

    @property
    def settled(self) -> bool:
        return self.reason is None

    @classmethod
    def rejected(
        cls,
        reason: RejectReason,
        is_active: bool,
        notice: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> "ProcessingResult":
        return cls(text=None, is_active=is_active, notice=notice, reason=reason, detail=detail)


class OutcomeKind(Enum):
    IGNORE = "ignore"
    NOTIFY = "notify"
    REACT = "react"
    REPLY = "reply"


@dataclass(frozen=True)
class MessageOutcome:
    """What the chat adapter should do with an inbound message."""

    kind: OutcomeKind
    text: Optional[str] = None
    notice: Optional[str] = None
    reason: Optional[RejectReason] = None
