"""Operator actions on conversations: take over, hand back, transfer, reset.

Every action takes the participant's lock, so it never interleaves with a
pipeline run for the same participant.
"""

import asyncio
from typing import List, Optional

from norboy_bot.logging_config import get_logger
from norboy_bot.services import events as event_names
from norboy_bot.services import messages
from norboy_bot.services.conversation import Conversation, MessageRecord, Sender
from norboy_bot.services.conversation_store import ConversationStore
from norboy_bot.services.events import EventBus
from norboy_bot.services.message_repository import MessageRepository
from norboy_bot.services.number_control_service import normalize_phone_number
from norboy_bot.services.result import Result
from norboy_bot.services.schedule_gate import ScheduleGate
from norboy_bot.services.state_machine import HUMAN_STATUSES, ConversationStatus, hand_back
from norboy_bot.services.transport import Transport

logger = get_logger("advisor_service")


def _restore_bot_flag(conversation: Conversation) -> None:
    conversation.bot_active = not conversation.number_override and conversation.status not in HUMAN_STATUSES


class AdvisorService:
    def __init__(
        self,
        store: ConversationStore,
        transport: Transport,
        number_control=None,
        repository: Optional[MessageRepository] = None,
        events: Optional[EventBus] = None,
        schedule_gate: Optional[ScheduleGate] = None,
    ):
        self.store = store
        self.transport = transport
        self.number_control = number_control
        self.repository = repository
        self.events = events or EventBus()
        self.schedule_gate = schedule_gate

    async def _persist(self, conversation: Conversation, record: MessageRecord) -> None:
        conversation.append_message(record)
        if self.repository is not None:
            try:
                await asyncio.to_thread(self.repository.append, conversation.participant_id, record)
            except Exception as e:
                logger.warning(f"Durable log write failed for {record.id}: {e}")
        await self.events.publish(
            event_names.NEW_MESSAGE,
            {"participant_id": conversation.participant_id, "message": record.to_dict()},
        )

    async def record_advisor_message(self, participant_id: str, text: str, advisor: str = "advisor") -> Result[dict]:
        """An advisor writes to the participant; the bot goes quiet."""
        if not text or not text.strip():
            return Result.failure("Message text is empty", "invalid_input")

        async with self.store.lock(participant_id):
            conversation = self.store.get(participant_id)
            if conversation is None:
                return Result.failure(f"Conversation {participant_id} not found", "not_found")

            delivered = await self.transport.send(participant_id, text)
            if not delivered:
                return Result.failure("Message could not be delivered", "transport_error")

            conversation.take_by_advisor()
            record = MessageRecord.outbound(text, sender=Sender.ADVISOR, type="advisor", advisor=advisor)
            await self._persist(conversation, record)
            logger.info(
                "Advisor took over conversation",
                extra={"context": {"participant_id": participant_id, "advisor": advisor}},
            )
            return Result.success(conversation.to_dict())

    async def reactivate_bot(self, participant_id: str, by: str = "advisor") -> Result[dict]:
        """Hand the conversation back to the bot with a one-message escalation grace."""
        async with self.store.lock(participant_id):
            conversation = self.store.get(participant_id)
            if conversation is None:
                return Result.failure(f"Conversation {participant_id} not found", "not_found")

            if conversation.status in HUMAN_STATUSES:
                conversation.status = hand_back(conversation.status, greeting_sent=conversation.greeting_sent)
            conversation.clear_escalation()
            conversation.interaction_count = 0
            conversation.manually_reactivated = True
            _restore_bot_flag(conversation)
            conversation.touch()
            logger.info("Bot reactivated", extra={"context": {"participant_id": participant_id, "by": by}})
            return Result.success(conversation.to_dict())

    async def transfer_to_advisor(
        self, participant_id: str, reason: str = "operator_transfer", by: str = "advisor"
    ) -> Result[dict]:
        async with self.store.lock(participant_id):
            conversation = self.store.get(participant_id)
            if conversation is None:
                return Result.failure(f"Conversation {participant_id} not found", "not_found")

            notify = not conversation.escalation_message_sent
            if conversation.active_flow is not None:
                conversation.active_flow = None
            conversation.hand_to_human(reason, "high", ConversationStatus.PENDING_ADVISOR)
            if notify:
                delivered = await self.transport.send(participant_id, messages.ESCALATION)
                await self._persist(
                    conversation,
                    MessageRecord.outbound(messages.ESCALATION, type="escalation", delivered=delivered),
                )
            await self.events.publish(
                event_names.ESCALATION_DETECTED,
                {"participant_id": participant_id, "reason": reason, "priority": "high", "gate": "operator", "by": by},
            )
            return Result.success(conversation.to_dict())

    async def reset_conversation(self, participant_id: str, by: str = "admin") -> Result[dict]:
        async with self.store.lock(participant_id):
            conversation = self.store.get(participant_id)
            if conversation is None:
                return Result.failure(f"Conversation {participant_id} not found", "not_found")
            conversation.reset()
            logger.info("Conversation reset", extra={"context": {"participant_id": participant_id, "by": by}})
            return Result.success(conversation.to_dict())

    async def _sync_override(self, phone: str, override: bool) -> List[str]:
        touched = []
        for conversation in self.store.find_by_phone(phone):
            async with self.store.lock(conversation.participant_id):
                conversation.number_override = override
                if override:
                    conversation.bot_active = False
                else:
                    # A lifted override also lifts any in-memory spam block.
                    conversation.spam.reset()
                    _restore_bot_flag(conversation)
                conversation.touch()
                touched.append(conversation.participant_id)
        return touched

    async def set_number_override(
        self,
        phone: str,
        disabled: bool,
        by: str = "admin",
        reason: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Result[dict]:
        if self.number_control is None:
            return Result.failure("Number control is not configured", "not_configured")
        if not normalize_phone_number(phone):
            return Result.failure(f"Invalid phone number: {phone!r}", "invalid_input")

        if disabled:
            row = await asyncio.to_thread(self.number_control.disable, phone, reason, by, name)
        else:
            row = await asyncio.to_thread(self.number_control.enable, phone, by)
            if row is None:
                return Result.failure(f"Number {phone} is not controlled", "not_found")

        touched = await self._sync_override(phone, override=disabled)
        return Result.success({**row, "conversations": touched})

    async def remove_number_override(self, phone: str, by: str = "admin") -> Result[dict]:
        if self.number_control is None:
            return Result.failure("Number control is not configured", "not_configured")

        removed = await asyncio.to_thread(self.number_control.remove, phone)
        if not removed:
            return Result.failure(f"Number {phone} is not controlled", "not_found")

        touched = await self._sync_override(phone, override=False)
        logger.info("Number override removed", extra={"context": {"phone": normalize_phone_number(phone), "by": by}})
        return Result.success({"phone": normalize_phone_number(phone), "removed": True, "conversations": touched})

    async def reactivate_from_spam(self, phone: str, by: str = "admin") -> Result[dict]:
        if self.number_control is None:
            return Result.failure("Number control is not configured", "not_configured")

        row = await asyncio.to_thread(self.number_control.reactivate_from_spam, phone, by)
        if row is None:
            return Result.failure(f"No active spam block for {phone}", "not_found")

        touched = await self._sync_override(phone, override=False)
        logger.info("Spam block lifted", extra={"context": {"phone": row["phone"], "by": by}})
        return Result.success({**row, "conversations": touched})

    async def release_out_of_hours(self) -> int:
        """Give conversations parked out of hours back to the bot once service resumes."""
        if self.schedule_gate is None or self.schedule_gate.is_out_of_hours():
            return 0

        released = 0
        for conversation in self.store.all():
            if conversation.status != ConversationStatus.OUT_OF_HOURS:
                continue
            async with self.store.lock(conversation.participant_id):
                if conversation.status != ConversationStatus.OUT_OF_HOURS:
                    continue
                conversation.status = hand_back(conversation.status, greeting_sent=conversation.greeting_sent)
                conversation.clear_escalation()
                _restore_bot_flag(conversation)
                conversation.touch()
                released += 1
        if released:
            logger.info(f"Released {released} conversations parked out of hours")
        return released
