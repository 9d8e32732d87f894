from unittest.mock import Mock, patch

from norboy_bot.services.conversation import Conversation
from norboy_bot.services.spam_guard import SpamGuard
from norboy_bot.services.text_utils import dice_similarity, normalize_text
from tests.fakes import PARTICIPANT


def _conversation():
    return Conversation(participant_id=PARTICIPANT)


class TestTextUtils:
    def test_normalize_strips_accents_and_punctuation(self):
        assert normalize_text("  ¿Cuándo   VOTAMOS?! ") == "cuando votamos"

    def test_identical_strings_are_fully_similar(self):
        assert dice_similarity("a", "a") == 1.0

    def test_short_strings_are_not_similar(self):
        assert dice_similarity("a", "b") == 0.0

    def test_dice_coefficient(self):
        # {ho, ol, la} vs {ho, ol, le}
        assert dice_similarity("hola", "hole") == 2 * 2 / 6


@patch("norboy_bot.services.spam_guard.alert_warning")
class TestSpamGuard:
    def test_fourth_repeat_blocks(self, mock_alert):
        guard = SpamGuard(max_repeated=3, similarity_threshold=0.9)
        conversation = _conversation()

        verdicts = [guard.evaluate(conversation, "hola") for _ in range(4)]

        assert [v.consecutive_count for v in verdicts] == [1, 2, 3, 4]
        assert verdicts[2].is_spam is True
        assert verdicts[2].should_block is False
        assert verdicts[3].should_block is True
        assert conversation.spam.blocked is True

    def test_case_and_punctuation_do_not_break_a_run(self, mock_alert):
        guard = SpamGuard(max_repeated=3, similarity_threshold=0.9)
        conversation = _conversation()

        for text in ("Hola", "hola!", "HOLA", "¡hola!"):
            verdict = guard.evaluate(conversation, text)

        assert verdict.should_block is True

    def test_different_message_resets_count(self, mock_alert):
        guard = SpamGuard(max_repeated=3, similarity_threshold=0.9)
        conversation = _conversation()

        guard.evaluate(conversation, "hola")
        guard.evaluate(conversation, "hola")
        verdict = guard.evaluate(conversation, "adios")

        assert verdict.consecutive_count == 1
        assert verdict.is_spam is False

    def test_empty_text_is_ignored(self, mock_alert):
        guard = SpamGuard()
        conversation = _conversation()

        verdict = guard.evaluate(conversation, "  !! ")

        assert verdict.consecutive_count == 0
        assert len(conversation.spam.history) == 0

    def test_block_disables_number_once(self, mock_alert):
        number_control = Mock()
        guard = SpamGuard(number_control=number_control, max_repeated=3, similarity_threshold=0.9)
        conversation = _conversation()

        for _ in range(6):
            guard.evaluate(conversation, "precio")

        number_control.block_for_spam.assert_called_once_with("573001234567", text="precio", consecutive_count=4)
        mock_alert.assert_called_once()

    def test_persistence_failure_still_blocks(self, mock_alert):
        number_control = Mock()
        number_control.block_for_spam.side_effect = RuntimeError("db down")
        guard = SpamGuard(number_control=number_control, max_repeated=3, similarity_threshold=0.9)
        conversation = _conversation()

        for _ in range(4):
            verdict = guard.evaluate(conversation, "precio")

        assert verdict.should_block is True
        mock_alert.assert_not_called()

    def test_history_is_bounded(self, mock_alert):
        guard = SpamGuard(history_size=3)
        conversation = Conversation(participant_id=PARTICIPANT, spam=guard.new_state())

        for text in ("uno", "dos", "tres", "cuatro"):
            guard.evaluate(conversation, text)

        assert list(conversation.spam.history) == ["dos", "tres", "cuatro"]
