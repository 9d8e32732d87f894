"""Process-wide service graph, built lazily and shared by the routers."""

from functools import lru_cache
from pathlib import Path

from norboy_bot.config import settings
from norboy_bot.database import SessionLocal
from norboy_bot.services.advisor_service import AdvisorService
from norboy_bot.services.answer_engine import HttpAnswerEngine
from norboy_bot.services.clock import Clock
from norboy_bot.services.conversation_store import ConversationStore
from norboy_bot.services.escalation_policy import EscalationPolicy
from norboy_bot.services.events import EventBus, HttpEventObserver
from norboy_bot.services.flows import norboy_menu
from norboy_bot.services.flows.base import GuidedFlowEngine
from norboy_bot.services.holiday_service import (
    CombinedHolidayCalendar,
    DatabaseHolidayCalendar,
    StaticHolidayCalendar,
)
from norboy_bot.services.message_pipeline import MessagePipeline
from norboy_bot.services.message_repository import SqlMessageRepository
from norboy_bot.services.number_control_service import NumberControlService
from norboy_bot.services.schedule_gate import ScheduleGate
from norboy_bot.services.spam_guard import SpamGuard
from norboy_bot.services.transport import HttpTransport


@lru_cache
def get_store() -> ConversationStore:
    return ConversationStore()


@lru_cache
def get_number_control() -> NumberControlService:
    return NumberControlService(SessionLocal)


@lru_cache
def get_schedule_gate() -> ScheduleGate:
    calendar = CombinedHolidayCalendar(
        StaticHolidayCalendar.from_yaml(Path(settings.holidays_file) if settings.holidays_file else None),
        DatabaseHolidayCalendar(SessionLocal, cache_seconds=settings.holiday_cache_seconds),
    )
    return ScheduleGate(Clock(settings.timezone), calendar=calendar)


@lru_cache
def get_event_bus() -> EventBus:
    bus = EventBus()
    if settings.dashboard_events_url:
        bus.subscribe(HttpEventObserver(settings.dashboard_events_url))
    return bus


@lru_cache
def get_transport() -> HttpTransport:
    return HttpTransport()


@lru_cache
def get_pipeline() -> MessagePipeline:
    number_control = get_number_control()
    return MessagePipeline(
        store=get_store(),
        schedule_gate=get_schedule_gate(),
        spam_guard=SpamGuard(number_control=number_control),
        escalation_policy=EscalationPolicy(),
        flow_engine=GuidedFlowEngine([norboy_menu.build_definition()]),
        answer_engine=HttpAnswerEngine(),
        transport=get_transport(),
        repository=SqlMessageRepository(SessionLocal),
        events=get_event_bus(),
        number_control=number_control,
    )


@lru_cache
def get_advisor_service() -> AdvisorService:
    return AdvisorService(
        store=get_store(),
        transport=get_transport(),
        number_control=get_number_control(),
        repository=SqlMessageRepository(SessionLocal),
        events=get_event_bus(),
        schedule_gate=get_schedule_gate(),
    )
