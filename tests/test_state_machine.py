import pytest

from norboy_bot.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    advisor_take,
    can_transition,
    close_for_hours,
    escalate,
    hand_back,
    transition,
)


class TestValidTransitions:
    def test_greeting_to_consent(self):
        result = transition(ConversationStatus.AWAITING_GREETING, ConversationStatus.AWAITING_CONSENT)
        assert result == ConversationStatus.AWAITING_CONSENT

    def test_consent_to_active(self):
        result = transition(ConversationStatus.AWAITING_CONSENT, ConversationStatus.ACTIVE)
        assert result == ConversationStatus.ACTIVE

    def test_pending_to_advisor_handled(self):
        result = transition(ConversationStatus.PENDING_ADVISOR, ConversationStatus.ADVISOR_HANDLED)
        assert result == ConversationStatus.ADVISOR_HANDLED

    def test_out_of_hours_to_pending(self):
        assert can_transition(ConversationStatus.OUT_OF_HOURS, ConversationStatus.PENDING_ADVISOR) is True


class TestInvalidTransitions:
    def test_active_back_to_greeting(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationStatus.ACTIVE, ConversationStatus.AWAITING_GREETING)

    def test_active_back_to_consent(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationStatus.ACTIVE, ConversationStatus.AWAITING_CONSENT)

    def test_same_status(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationStatus.ACTIVE, ConversationStatus.ACTIVE)

    def test_advisor_handled_to_out_of_hours(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationStatus.ADVISOR_HANDLED, ConversationStatus.OUT_OF_HOURS)


class TestHelperFunctions:
    def test_escalate(self):
        assert escalate(ConversationStatus.ACTIVE) == ConversationStatus.PENDING_ADVISOR

    def test_escalate_from_pending_fails(self):
        with pytest.raises(InvalidTransitionError):
            escalate(ConversationStatus.PENDING_ADVISOR)

    def test_close_for_hours(self):
        assert close_for_hours(ConversationStatus.AWAITING_GREETING) == ConversationStatus.OUT_OF_HOURS

    def test_advisor_take(self):
        assert advisor_take(ConversationStatus.PENDING_ADVISOR) == ConversationStatus.ADVISOR_HANDLED

    def test_hand_back(self):
        assert hand_back(ConversationStatus.ADVISOR_HANDLED) == ConversationStatus.ACTIVE

    def test_hand_back_before_greeting(self):
        result = hand_back(ConversationStatus.OUT_OF_HOURS, greeting_sent=False)
        assert result == ConversationStatus.AWAITING_GREETING

    def test_hand_back_from_bot_status_fails(self):
        with pytest.raises(InvalidTransitionError):
            hand_back(ConversationStatus.ACTIVE)
