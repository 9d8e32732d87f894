"""Inbound-message control plane.

``MessagePipeline.process`` runs the gates below in this exact order and stops
at the first one that settles the turn:

 1. automated replies off for the conversation
 2. out of service hours / holiday
 3. first-contact greeting
 4. active guided flow (or an explicit "menu" trigger)
 5. manual per-number override
 6. spam guard
 7. legacy consent prompt / consent answer
 8. waiting for a human
 9. escalation rules
10. answer engine
11. fallback hand-off when the engine gives nothing usable

Before gate 1, a conversation the bot owns that sat idle for a whole cycle
starts over with a new greeting and consent step.

Runs for one participant are serialized by the store's per-participant lock.
The inbound record is stored once per run; durable writes and observer events
are queued and flushed in a background task after the turn is decided.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Set, Tuple

from norboy_bot.config import settings
from norboy_bot.logging_config import participant_logger
from norboy_bot.services import events as event_names
from norboy_bot.services import messages
from norboy_bot.services.alert_service import alert_error
from norboy_bot.services.answer_engine.base import AnswerEngine
from norboy_bot.services.conversation import ConsentStatus, Conversation, MessageRecord, Sender, utcnow
from norboy_bot.services.conversation_store import ConversationLookupError, ConversationStore
from norboy_bot.services.escalation_policy import EscalationPolicy
from norboy_bot.services.events import EventBus
from norboy_bot.services.flows import norboy_menu
from norboy_bot.services.flows.base import GuidedFlowEngine
from norboy_bot.services.message_repository import MessageRepository
from norboy_bot.services.schedule_gate import ScheduleGate
from norboy_bot.services.spam_guard import SpamGuard
from norboy_bot.services.state_machine import ConversationStatus
from norboy_bot.services.text_utils import normalize_text
from norboy_bot.services.transport import Transport

MENU_TRIGGERS = frozenset({"menu", "inicio", "opciones", "volver al menu"})

REASON_OUT_OF_HOURS = "out_of_hours"
REASON_ENGINE_ERROR = "answer_engine_error"
REASON_NO_ANSWER = "no_response_found"
REASON_TRANSPORT_ERROR = "transport_error"
REASON_PIPELINE_ERROR = "pipeline_error"


@dataclass(frozen=True)
class InboundMeta:
    message_id: Optional[str] = None
    push_name: Optional[str] = None
    timestamp: Optional[datetime] = None
    message_type: str = "text"


@dataclass
class TurnResult:
    reply: Optional[str]
    gate: str
    delivered: bool = False
    escalation_reason: Optional[str] = None


class RecentIds:
    """Bounded set of recently seen transport message ids."""

    def __init__(self, maxsize: int):
        self.maxsize = max(maxsize, 1)
        self._ids: "OrderedDict[str, None]" = OrderedDict()

    def check_and_add(self, message_id: str) -> bool:
        """True if ``message_id`` was already seen."""
        if message_id in self._ids:
            self._ids.move_to_end(message_id)
            return True
        self._ids[message_id] = None
        if len(self._ids) > self.maxsize:
            self._ids.popitem(last=False)
        return False

    def discard(self, message_id: str) -> None:
        self._ids.pop(message_id, None)

    def __len__(self) -> int:
        return len(self._ids)


@dataclass
class _Run:
    conversation: Conversation
    inbound: MessageRecord
    logger: object
    inbound_saved: bool = False
    records: List[MessageRecord] = field(default_factory=list)
    events: List[Tuple[str, dict]] = field(default_factory=list)
    escalated: bool = False

    @property
    def participant_id(self) -> str:
        return self.conversation.participant_id


class MessagePipeline:
    def __init__(
        self,
        store: ConversationStore,
        schedule_gate: ScheduleGate,
        spam_guard: SpamGuard,
        escalation_policy: EscalationPolicy,
        flow_engine: GuidedFlowEngine,
        answer_engine: AnswerEngine,
        transport: Transport,
        repository: Optional[MessageRepository] = None,
        events: Optional[EventBus] = None,
        number_control=None,
        dedup_size: Optional[int] = None,
        menu_flow_enabled: Optional[bool] = None,
        cycle_minutes: Optional[int] = None,
    ):
        self.store = store
        self.schedule_gate = schedule_gate
        self.spam_guard = spam_guard
        self.escalation_policy = escalation_policy
        self.flow_engine = flow_engine
        self.answer_engine = answer_engine
        self.transport = transport
        self.repository = repository
        self.events = events or EventBus()
        self.number_control = number_control
        self.menu_flow_enabled = settings.menu_flow_enabled if menu_flow_enabled is None else menu_flow_enabled
        self.recent_ids = RecentIds(dedup_size or settings.dedup_cache_size)
        self.cycle = timedelta(minutes=settings.conversation_cycle_minutes if cycle_minutes is None else cycle_minutes)
        self._background: Set[asyncio.Task] = set()

    async def process(self, participant_id: str, text: str, meta: Optional[InboundMeta] = None) -> Optional[str]:
        """Run one inbound message through the gates; returns the delivered reply or None."""
        result = await self.handle(participant_id, text, meta)
        return result.reply

    async def handle(self, participant_id: str, text: str, meta: Optional[InboundMeta] = None) -> TurnResult:
        meta = meta or InboundMeta()
        text = text or ""
        log = participant_logger("pipeline", participant_id)

        if meta.message_id and self.recent_ids.check_and_add(meta.message_id):
            log.info("Duplicate delivery ignored", context={"message_id": meta.message_id})
            return TurnResult(reply=None, gate="duplicate")

        async with self.store.lock(participant_id):
            try:
                conversation = self.store.get_or_create(participant_id)
            except Exception as e:
                if meta.message_id:
                    self.recent_ids.discard(meta.message_id)
                log.error(f"Conversation lookup failed: {e}", exc_info=True)
                await asyncio.to_thread(alert_error, "Conversation lookup failed", {"participant_id": participant_id})
                if isinstance(e, ConversationLookupError):
                    raise
                raise ConversationLookupError(str(e)) from e

            inbound = MessageRecord.inbound(
                text,
                message_id=meta.message_id,
                push_name=meta.push_name,
                message_type=meta.message_type,
            )
            run = _Run(conversation=conversation, inbound=inbound, logger=log)
            try:
                result = await self._run_gates(run, text, meta)
            except Exception as e:
                log.error(f"Pipeline failed, handing off to an advisor: {e}", exc_info=True)
                self._save_inbound(run)
                result = await self._fallback(run, REASON_PIPELINE_ERROR)
            finally:
                self._schedule_background(run)

        log.info(
            f"Turn settled at gate '{result.gate}'",
            context={"status": conversation.status.value, "replied": result.reply is not None},
        )
        return result

    async def _run_gates(self, run: _Run, text: str, meta: InboundMeta) -> TurnResult:
        conversation = run.conversation
        now = meta.timestamp or utcnow()
        # Conversations handed to a human keep their state across cycles.
        if conversation.bot_active and conversation.cycle_expired(now, self.cycle):
            run.logger.info("Conversation cycle expired, greeting and consent start over")
            conversation.start_new_cycle()
        conversation.last_interaction_at = now
        if meta.push_name:
            conversation.push_name = meta.push_name

        # 1
        if not conversation.bot_active:
            self._save_inbound(run)
            return TurnResult(reply=None, gate="bot_inactive")

        # 2
        if self.schedule_gate.is_out_of_hours():
            self._save_inbound(run)
            return await self._close_for_hours(run)

        conversation.interaction_count += 1

        # 3
        if not conversation.greeting_sent:
            self._save_inbound(run)
            conversation.greeting_sent = True
            if conversation.status == ConversationStatus.AWAITING_GREETING:
                conversation.move_to(ConversationStatus.AWAITING_CONSENT)
            if self.menu_flow_enabled and self.flow_engine.has_flow(norboy_menu.FLOW_TYPE):
                greeting = self.flow_engine.start(conversation, norboy_menu.FLOW_TYPE).message
            else:
                greeting = messages.GREETING
            return await self._reply(run, greeting, gate="greeting")

        # 4
        free_form = False
        starts_menu = (
            conversation.active_flow is None
            and normalize_text(text) in MENU_TRIGGERS
            and self.flow_engine.has_flow(norboy_menu.FLOW_TYPE)
        )
        # A flow never replies to a number whose automated replies are off.
        if (conversation.active_flow is not None or starts_menu) and not self._number_allows(conversation):
            conversation.active_flow = None
            return self._silence_number(run)

        if conversation.active_flow is not None:
            outcome = self.flow_engine.handle_input(conversation, text)
            self._apply_flow_consent(conversation, outcome.collected)
            if outcome.free_form:
                free_form = True
                question = outcome.collected.get("question")
                if question:
                    text = question
            elif outcome.escalate is not None:
                self._save_inbound(run)
                return await self._escalate(
                    run,
                    outcome.escalate.reason,
                    outcome.escalate.priority,
                    outcome.escalate.message or messages.ESCALATION,
                    gate="flow",
                )
            elif outcome.error is None and outcome.message:
                self._save_inbound(run)
                return await self._reply(run, outcome.message, gate="flow")
        elif starts_menu:
            self._save_inbound(run)
            outcome = self.flow_engine.start(conversation, norboy_menu.FLOW_TYPE)
            return await self._reply(run, outcome.message, gate="flow")

        # 5
        if not self._number_allows(conversation):
            return self._silence_number(run)

        # 6
        verdict = self.spam_guard.evaluate(conversation, text)
        if verdict.should_block:
            self._save_inbound(run)
            conversation.number_override = True
            conversation.bot_active = False
            run.events.append(
                (
                    event_names.SPAM_BLOCKED,
                    {
                        "participant_id": run.participant_id,
                        "consecutive_count": verdict.consecutive_count,
                        "text": text,
                    },
                )
            )
            return TurnResult(reply=None, gate="spam_blocked")

        # 7
        if not free_form and conversation.consent_status == ConsentStatus.PENDING:
            if not conversation.consent_requested and conversation.interaction_count == 2:
                self._save_inbound(run)
                conversation.consent_requested = True
                conversation.pending_question = text if norboy_menu.looks_like_question(text) else None
                return await self._reply(run, messages.CONSENT_PROMPT, gate="consent")

            if conversation.consent_requested:
                answer = norboy_menu.parse_consent(text)
                conversation.advance_consent(ConsentStatus(answer) if answer else ConsentStatus.NOTED)
                self._activate(conversation)
                if answer is not None:
                    pending, conversation.pending_question = conversation.pending_question, None
                    if not pending:
                        self._save_inbound(run)
                        return await self._reply(run, messages.HOW_CAN_WE_HELP, gate="consent")
                    text = pending

        # 8
        if conversation.waiting_for_human:
            self._save_inbound(run)
            return TurnResult(reply=None, gate="waiting_for_human")

        # 9
        bypass = conversation.manually_reactivated
        decision = self.escalation_policy.evaluate(
            run.participant_id,
            text,
            conversation.interaction_count,
            manually_reactivated=bypass,
        )
        if bypass:
            conversation.manually_reactivated = False
        if decision.needs_human:
            self._save_inbound(run)
            return await self._escalate(run, decision.reason, decision.priority, messages.ESCALATION, gate="escalation")

        # 10
        self._save_inbound(run)
        self._activate(conversation)
        try:
            answer = await self.answer_engine.answer(run.participant_id, text)
        except Exception as e:
            run.logger.warning(f"Answer engine failed: {e}")
            return await self._fallback(run, REASON_ENGINE_ERROR)

        if answer is not None and answer.escalate is not None:
            return await self._escalate(
                run,
                answer.escalate.reason,
                answer.escalate.priority,
                messages.LOW_CONFIDENCE,
                gate="answer_engine",
            )

        # 11
        reply = (answer.text or "").strip() if answer is not None else ""
        if not reply:
            return await self._fallback(run, REASON_NO_ANSWER)
        return await self._reply(run, reply, gate="answer")

    def _number_allows(self, conversation: Conversation) -> bool:
        if self.number_control is None:
            return not conversation.number_override
        try:
            return self.number_control.should_bot_respond(conversation.phone_number)
        except Exception as e:
            # Unknown override state: keep answering rather than go silent.
            conversation_log = participant_logger("pipeline", conversation.participant_id)
            conversation_log.error(f"Number control lookup failed: {e}")
            return True

    def _silence_number(self, run: _Run) -> TurnResult:
        self._save_inbound(run)
        run.conversation.number_override = True
        run.conversation.bot_active = False
        return TurnResult(reply=None, gate="number_override")

    def _apply_flow_consent(self, conversation: Conversation, collected: dict) -> None:
        consent = collected.get("consent")
        if consent in (ConsentStatus.ACCEPTED.value, ConsentStatus.NOTED.value):
            conversation.advance_consent(ConsentStatus(consent))
            conversation.consent_requested = True
            self._activate(conversation)

    def _activate(self, conversation: Conversation) -> None:
        if conversation.status == ConversationStatus.AWAITING_CONSENT:
            conversation.move_to(ConversationStatus.ACTIVE)

    def _save_inbound(self, run: _Run) -> None:
        if run.inbound_saved:
            return
        run.inbound_saved = True
        run.conversation.append_message(run.inbound)
        run.records.append(run.inbound)
        run.events.append(
            (event_names.NEW_MESSAGE, {"participant_id": run.participant_id, "message": run.inbound.to_dict()})
        )

    def _record_outbound(self, run: _Run, text: str, message_type: str, delivered: bool) -> None:
        record = MessageRecord.outbound(text, sender=Sender.BOT, type=message_type, delivered=delivered)
        run.conversation.append_message(record)
        run.records.append(record)
        run.events.append(
            (event_names.NEW_MESSAGE, {"participant_id": run.participant_id, "message": record.to_dict()})
        )

    async def _send(self, run: _Run, text: str) -> bool:
        try:
            return bool(await self.transport.send(run.participant_id, text))
        except Exception as e:
            run.logger.error(f"Transport send failed: {e}")
            return False

    async def _reply(self, run: _Run, text: str, gate: str) -> TurnResult:
        delivered = await self._send(run, text)
        self._record_outbound(run, text, gate, delivered)
        if not delivered:
            run.logger.warning(f"Reply not delivered at gate '{gate}', handing off")
            return await self._fallback(run, REASON_TRANSPORT_ERROR)
        return TurnResult(reply=text, gate=gate, delivered=True)

    async def _close_for_hours(self, run: _Run) -> TurnResult:
        conversation = run.conversation
        if conversation.escalation_message_sent:
            return TurnResult(reply=None, gate="out_of_hours")

        conversation.hand_to_human(REASON_OUT_OF_HOURS, None, ConversationStatus.OUT_OF_HOURS)
        delivered = await self._send(run, messages.OUT_OF_HOURS)
        self._record_outbound(run, messages.OUT_OF_HOURS, "out_of_hours", delivered)
        return TurnResult(reply=None, gate="out_of_hours", delivered=delivered, escalation_reason=REASON_OUT_OF_HOURS)

    async def _escalate(
        self,
        run: _Run,
        reason: str,
        priority: Optional[str],
        message: str,
        gate: str,
    ) -> TurnResult:
        conversation = run.conversation
        already_notified = conversation.escalation_message_sent or run.escalated

        if conversation.active_flow is not None:
            self.flow_engine.cancel(conversation, message=None)
        conversation.hand_to_human(reason, priority, ConversationStatus.PENDING_ADVISOR)
        run.events.append(
            (
                event_names.ESCALATION_DETECTED,
                {"participant_id": run.participant_id, "reason": reason, "priority": priority, "gate": gate},
            )
        )
        run.logger.info(f"Escalated to advisor: {reason}", context={"priority": priority, "gate": gate})

        if already_notified:
            return TurnResult(reply=None, gate=gate, escalation_reason=reason)

        run.escalated = True
        delivered = await self._send(run, message)
        self._record_outbound(run, message, "escalation", delivered)
        if not delivered:
            run.logger.error("Escalation message not delivered")
        return TurnResult(reply=None, gate=gate, delivered=delivered, escalation_reason=reason)

    async def _fallback(self, run: _Run, reason: str) -> TurnResult:
        await asyncio.to_thread(
            alert_error,
            "Message handed to an advisor without an answer",
            {"participant_id": run.participant_id, "reason": reason},
        )
        return await self._escalate(run, reason, "high", messages.FALLBACK, gate="fallback")

    def _schedule_background(self, run: _Run) -> None:
        if not run.records and not run.events:
            return
        task = asyncio.create_task(self._flush(run.participant_id, list(run.records), list(run.events)))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _flush(self, participant_id: str, records: List[MessageRecord], pending_events: List[Tuple[str, dict]]):
        if self.repository is not None:
            for record in records:
                try:
                    await asyncio.to_thread(self.repository.append, participant_id, record)
                except Exception as e:
                    participant_logger("pipeline", participant_id).warning(
                        f"Durable log write failed for {record.id}: {e}"
                    )
        for event, payload in pending_events:
            await self.events.publish(event, payload)

    async def drain(self) -> None:
        """Wait for queued durable writes and observer events."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
