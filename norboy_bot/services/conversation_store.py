import asyncio
from typing import Dict, List, Optional

from norboy_bot.config import settings
from norboy_bot.logging_config import get_logger
from norboy_bot.services.conversation import Conversation
from norboy_bot.services.number_control_service import normalize_phone_number
from norboy_bot.services.spam_guard import SpamState

logger = get_logger("conversation_store")


class ConversationLookupError(Exception):
    pass


class ConversationStore:
    """In-memory conversations plus one asyncio lock per participant.

    Every mutation of a conversation (pipeline run or advisor action) happens
    while holding ``lock(participant_id)``.
    """

    def __init__(self, window_size: Optional[int] = None, spam_history_size: Optional[int] = None):
        self.window_size = window_size or settings.message_window_size
        self.spam_history_size = spam_history_size or settings.spam_history_size
        self._conversations: Dict[str, Conversation] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, participant_id: str) -> asyncio.Lock:
        lock = self._locks.get(participant_id)
        if lock is None:
            lock = self._locks[participant_id] = asyncio.Lock()
        return lock

    def get(self, participant_id: str) -> Optional[Conversation]:
        return self._conversations.get(participant_id)

    def get_or_create(self, participant_id: str) -> Conversation:
        if not participant_id or not participant_id.strip():
            raise ConversationLookupError("participant id is empty")

        conversation = self._conversations.get(participant_id)
        if conversation is None:
            conversation = Conversation(
                participant_id=participant_id,
                window_size=self.window_size,
                spam=SpamState(history_size=self.spam_history_size),
            )
            self._conversations[participant_id] = conversation
            logger.info("Conversation created", extra={"context": {"participant_id": participant_id}})
        return conversation

    def find_by_phone(self, phone: str) -> List[Conversation]:
        target = normalize_phone_number(phone)
        return [c for c in self._conversations.values() if normalize_phone_number(c.phone_number) == target]

    def all(self) -> List[Conversation]:
        return list(self._conversations.values())

    def __len__(self) -> int:
        return len(self._conversations)
