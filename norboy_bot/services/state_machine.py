from enum import Enum


class ConversationStatus(str, Enum):
    AWAITING_GREETING = "awaiting_greeting"
    AWAITING_CONSENT = "awaiting_consent"
    ACTIVE = "active"
    OUT_OF_HOURS = "out_of_hours"
    PENDING_ADVISOR = "pending_advisor"
    ADVISOR_HANDLED = "advisor_handled"


# Statuses in which automated replies must stay off.
HUMAN_STATUSES = frozenset(
    {
        ConversationStatus.OUT_OF_HOURS,
        ConversationStatus.PENDING_ADVISOR,
        ConversationStatus.ADVISOR_HANDLED,
    }
)

_BOT_STATUSES = [
    ConversationStatus.AWAITING_GREETING,
    ConversationStatus.AWAITING_CONSENT,
    ConversationStatus.ACTIVE,
]

VALID_TRANSITIONS = {
    ConversationStatus.AWAITING_GREETING: [
        ConversationStatus.AWAITING_CONSENT,
        ConversationStatus.ACTIVE,
        ConversationStatus.OUT_OF_HOURS,
        ConversationStatus.PENDING_ADVISOR,
        ConversationStatus.ADVISOR_HANDLED,
    ],
    ConversationStatus.AWAITING_CONSENT: [
        ConversationStatus.ACTIVE,
        ConversationStatus.OUT_OF_HOURS,
        ConversationStatus.PENDING_ADVISOR,
        ConversationStatus.ADVISOR_HANDLED,
    ],
    ConversationStatus.ACTIVE: [
        ConversationStatus.OUT_OF_HOURS,
        ConversationStatus.PENDING_ADVISOR,
        ConversationStatus.ADVISOR_HANDLED,
    ],
    ConversationStatus.OUT_OF_HOURS: _BOT_STATUSES
    + [ConversationStatus.PENDING_ADVISOR, ConversationStatus.ADVISOR_HANDLED],
    ConversationStatus.PENDING_ADVISOR: _BOT_STATUSES
    + [ConversationStatus.OUT_OF_HOURS, ConversationStatus.ADVISOR_HANDLED],
    ConversationStatus.ADVISOR_HANDLED: _BOT_STATUSES + [ConversationStatus.PENDING_ADVISOR],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ConversationStatus, to_status: ConversationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: ConversationStatus, to_status: ConversationStatus) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_status, [])
    return to_status in allowed


def transition(from_status: ConversationStatus, to_status: ConversationStatus) -> ConversationStatus:
    """Perform status transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


def escalate(current: ConversationStatus) -> ConversationStatus:
    """Hand the conversation to the advisor queue."""
    return transition(current, ConversationStatus.PENDING_ADVISOR)


def close_for_hours(current: ConversationStatus) -> ConversationStatus:
    return transition(current, ConversationStatus.OUT_OF_HOURS)


def advisor_take(current: ConversationStatus) -> ConversationStatus:
    """An advisor writes to the participant and owns the conversation."""
    return transition(current, ConversationStatus.ADVISOR_HANDLED)


def hand_back(current: ConversationStatus, greeting_sent: bool = True) -> ConversationStatus:
    """Return the conversation to the bot.

    A participant that never got the greeting (first message arrived out of
    hours, for example) goes back to the greeting step.
    """
    target = ConversationStatus.ACTIVE if greeting_sent else ConversationStatus.AWAITING_GREETING
    return transition(current, target)
