"""Per-participant conversation aggregate and message records."""

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from norboy_bot.services.flows.base import GuidedFlow
from norboy_bot.services.spam_guard import SpamState
from norboy_bot.services.state_machine import (
    HUMAN_STATUSES,
    ConversationStatus,
    advisor_take,
    close_for_hours,
    escalate,
    transition,
)

CHANNEL_SUFFIXES = ("@s.whatsapp.net", "@c.us", "@lid", "@g.us")


class ConsentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    NOTED = "noted"


_CONSENT_ORDER = {ConsentStatus.PENDING: 0, ConsentStatus.NOTED: 1, ConsentStatus.ACCEPTED: 2}

_HAND_OFFS = {
    ConversationStatus.PENDING_ADVISOR: escalate,
    ConversationStatus.OUT_OF_HOURS: close_for_hours,
    ConversationStatus.ADVISOR_HANDLED: advisor_take,
}


class Direction(str, Enum):
    IN = "in"
    OUT = "out"


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"
    ADVISOR = "advisor"
    SYSTEM = "system"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def participant_phone(participant_id: str) -> str:
    """Participant id without its channel suffix ("573001234567@c.us" -> "573001234567")."""
    value = participant_id or ""
    for suffix in CHANNEL_SUFFIXES:
        if value.endswith(suffix):
            return value[: -len(suffix)]
    return value.split("@", 1)[0]


@dataclass(frozen=True)
class MessageRecord:
    id: str
    direction: Direction
    sender: Sender
    text: str
    type: str = "text"
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def inbound(cls, text: str, message_id: Optional[str] = None, **metadata: Any) -> "MessageRecord":
        return cls(
            id=message_id or f"in-{uuid.uuid4()}",
            direction=Direction.IN,
            sender=Sender.USER,
            text=text,
            metadata=metadata,
        )

    @classmethod
    def outbound(cls, text: str, sender: Sender = Sender.BOT, type: str = "text", **metadata: Any) -> "MessageRecord":
        return cls(
            id=f"out-{uuid.uuid4()}",
            direction=Direction.OUT,
            sender=sender,
            text=text,
            type=type,
            metadata=metadata,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "direction": self.direction.value,
            "sender": self.sender.value,
            "type": self.type,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
        }


@dataclass
class Conversation:
    participant_id: str
    status: ConversationStatus = ConversationStatus.AWAITING_GREETING
    bot_active: bool = True
    consent_status: ConsentStatus = ConsentStatus.PENDING
    consent_requested: bool = False
    pending_question: Optional[str] = None
    greeting_sent: bool = False
    interaction_count: int = 0
    last_interaction_at: Optional[datetime] = None
    needs_human: bool = False
    needs_human_reason: Optional[str] = None
    escalation_priority: Optional[str] = None
    escalation_message_sent: bool = False
    waiting_for_human: bool = False
    manually_reactivated: bool = False
    number_override: bool = False
    push_name: Optional[str] = None
    active_flow: Optional[GuidedFlow] = None
    spam: SpamState = field(default_factory=SpamState)
    window_size: int = 50
    messages: Deque[MessageRecord] = field(default_factory=deque)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.messages = deque(self.messages, maxlen=self.window_size)

    @property
    def phone_number(self) -> str:
        return participant_phone(self.participant_id)

    def touch(self) -> None:
        self.updated_at = utcnow()

    def append_message(self, record: MessageRecord) -> None:
        self.messages.append(record)
        self.touch()

    def move_to(self, status: ConversationStatus) -> None:
        if status == self.status:
            return
        self.status = transition(self.status, status)
        if status in HUMAN_STATUSES:
            self.bot_active = False
        self.touch()

    def advance_consent(self, status: ConsentStatus) -> bool:
        """Move consent forward; never backwards. Returns True when it changed."""
        if _CONSENT_ORDER[status] <= _CONSENT_ORDER[self.consent_status]:
            return False
        self.consent_status = status
        self.touch()
        return True

    def hand_to_human(self, reason: str, priority: Optional[str], status: ConversationStatus) -> None:
        if status != self.status:
            self.status = _HAND_OFFS[status](self.status)
        self.bot_active = False
        self.needs_human = True
        self.needs_human_reason = reason
        self.escalation_priority = priority
        self.escalation_message_sent = True
        self.waiting_for_human = True
        self.touch()

    def take_by_advisor(self) -> None:
        if self.status != ConversationStatus.ADVISOR_HANDLED:
            self.status = advisor_take(self.status)
        self.bot_active = False
        self.needs_human = True
        self.waiting_for_human = True
        self.touch()

    def clear_escalation(self) -> None:
        self.needs_human = False
        self.needs_human_reason = None
        self.escalation_priority = None
        self.escalation_message_sent = False
        self.waiting_for_human = False

    def reset(self) -> None:
        """Explicit full reset by an operator."""
        self.status = ConversationStatus.AWAITING_GREETING
        self.bot_active = not self.number_override
        self.consent_status = ConsentStatus.PENDING
        self.consent_requested = False
        self.pending_question = None
        self.greeting_sent = False
        self.interaction_count = 0
        self.manually_reactivated = False
        self.active_flow = None
        self.clear_escalation()
        self.spam.reset()
        self.touch()

    def cycle_expired(self, now: datetime, cycle: timedelta) -> bool:
        """Idle for a whole cycle since the last message."""
        if self.last_interaction_at is None or cycle <= timedelta(0):
            return False
        return now - self.last_interaction_at >= cycle

    def start_new_cycle(self) -> None:
        """Greeting and consent start over; human hand-offs and overrides are kept."""
        self.consent_status = ConsentStatus.PENDING
        self.consent_requested = False
        self.pending_question = None
        self.greeting_sent = False
        self.interaction_count = 0
        self.active_flow = None
        self.spam.reset()
        if self.status in (ConversationStatus.ACTIVE, ConversationStatus.AWAITING_CONSENT):
            self.status = ConversationStatus.AWAITING_GREETING
        self.touch()

    def check_invariants(self) -> List[str]:
        violations = []
        if self.bot_active and self.status in HUMAN_STATUSES:
            violations.append(f"bot_active with status {self.status.value}")
        if self.bot_active and self.number_override:
            violations.append("bot_active with number override set")
        if self.escalation_message_sent and not self.waiting_for_human:
            violations.append("escalation_message_sent without waiting_for_human")
        return violations

    def to_dict(self, include_messages: bool = False) -> dict:
        data = {
            "participant_id": self.participant_id,
            "phone_number": self.phone_number,
            "push_name": self.push_name,
            "status": self.status.value,
            "bot_active": self.bot_active,
            "consent_status": self.consent_status.value,
            "interaction_count": self.interaction_count,
            "last_interaction_at": self.last_interaction_at.isoformat() if self.last_interaction_at else None,
            "needs_human": self.needs_human,
            "needs_human_reason": self.needs_human_reason,
            "escalation_priority": self.escalation_priority,
            "escalation_message_sent": self.escalation_message_sent,
            "waiting_for_human": self.waiting_for_human,
            "manually_reactivated": self.manually_reactivated,
            "number_override": self.number_override,
            "active_flow": self.active_flow.to_dict() if self.active_flow else None,
            "spam": self.spam.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if include_messages:
            data["messages"] = [record.to_dict() for record in self.messages]
        return data
