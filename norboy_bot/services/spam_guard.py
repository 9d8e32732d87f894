"""Detects runs of near-identical consecutive messages from one participant.

Each message is normalized and compared with the participant's previous
normalized message using the Dice coefficient over character bigrams. A run at
or above the similarity threshold grows the consecutive counter; anything below
restarts it at 1. At the warn threshold the run is only logged, one message
later the guard blocks and durably switches automated replies off for the
number (source ``spam``) until an operator lifts the block.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Optional

from norboy_bot.config import settings
from norboy_bot.logging_config import get_logger
from norboy_bot.services.alert_service import alert_warning
from norboy_bot.services.text_utils import dice_similarity, normalize_text

logger = get_logger("spam_guard")


@dataclass
class SpamState:
    history_size: int = 10
    history: Deque[str] = field(default_factory=deque)
    consecutive_count: int = 0
    blocked: bool = False
    last_message_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.history = deque(self.history, maxlen=self.history_size)

    @property
    def last_normalized(self) -> Optional[str]:
        return self.history[-1] if self.history else None

    def reset(self) -> None:
        self.history.clear()
        self.consecutive_count = 0
        self.blocked = False
        self.last_message_at = None

    def to_dict(self) -> dict:
        return {
            "recent": list(self.history),
            "consecutive_count": self.consecutive_count,
            "blocked": self.blocked,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
        }


@dataclass(frozen=True)
class SpamVerdict:
    is_spam: bool
    should_block: bool
    consecutive_count: int
    similarity: float = 0.0


class SpamGuard:
    def __init__(
        self,
        number_control=None,
        max_repeated: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
        history_size: Optional[int] = None,
    ):
        self.number_control = number_control
        self.warn_threshold = max_repeated if max_repeated is not None else settings.spam_max_repeated
        self.block_threshold = self.warn_threshold + 1
        self.similarity_threshold = (
            similarity_threshold if similarity_threshold is not None else settings.spam_similarity_threshold
        )
        self.history_size = history_size if history_size is not None else settings.spam_history_size

    def new_state(self) -> SpamState:
        return SpamState(history_size=self.history_size)

    def evaluate(self, conversation, text: str) -> SpamVerdict:
        """Score ``text`` against the participant's previous message.

        ``conversation.spam`` holds the participant's state; the caller must
        hold the participant's lock.
        """
        normalized = normalize_text(text)
        if not normalized:
            return SpamVerdict(is_spam=False, should_block=False, consecutive_count=0)

        state: SpamState = conversation.spam
        previous = state.last_normalized
        similarity = dice_similarity(normalized, previous) if previous is not None else 0.0

        if previous is not None and similarity >= self.similarity_threshold:
            state.consecutive_count += 1
        else:
            state.consecutive_count = 1
            state.blocked = False

        state.history.append(normalized)
        state.last_message_at = datetime.now(timezone.utc)
        count = state.consecutive_count
        context = {
            "participant_id": conversation.participant_id,
            "consecutive_count": count,
            "similarity": round(similarity, 3),
        }

        if count >= self.block_threshold:
            newly_blocked = not state.blocked
            state.blocked = True
            if newly_blocked:
                logger.warning("Spam run blocked", extra={"context": context})
                self._deactivate(conversation, text, count)
            return SpamVerdict(is_spam=True, should_block=True, consecutive_count=count, similarity=similarity)

        if count >= self.warn_threshold:
            logger.warning("Spam run warning", extra={"context": context})
            return SpamVerdict(is_spam=True, should_block=False, consecutive_count=count, similarity=similarity)

        return SpamVerdict(is_spam=False, should_block=False, consecutive_count=count, similarity=similarity)

    def _deactivate(self, conversation, text: str, count: int) -> None:
        if self.number_control is None:
            return
        try:
            self.number_control.block_for_spam(conversation.phone_number, text=text, consecutive_count=count)
        except Exception as e:
            logger.error(
                f"Failed to persist spam block: {e}",
                extra={"context": {"participant_id": conversation.participant_id}},
            )
            return
        alert_warning(
            "Automatic replies disabled for repeated messages",
            {"phone": conversation.phone_number, "consecutive_count": count, "text": text[:100]},
        )
